from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from scribedesk.filters.state import FilterType, SortDirection, SortField


class FilterStatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    search_query: str | None = None
    filter_type: FilterType = FilterType.ALL
    start_date: date | None = None
    end_date: date | None = None
    sort_field: SortField = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC
