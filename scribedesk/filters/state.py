from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from scribedesk.db.models import RecordStatus
from scribedesk.duplicates.engine import group_by_checksum
from scribedesk.duplicates.types import FileRecord


class FilterType(str, Enum):
    ALL = "all"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    PROCESSING = "processing"
    PROTECTED = "protected"
    DUPLICATES = "duplicates"


class SortField(str, Enum):
    CREATED_AT = "created_at"
    TITLE = "title"
    STATUS = "status"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


_STATUS_FILTERS = {
    FilterType.COMPLETED: RecordStatus.COMPLETED,
    FilterType.FAILED: RecordStatus.FAILED,
    FilterType.PENDING: RecordStatus.PENDING,
    FilterType.PROCESSING: RecordStatus.PROCESSING,
}


@dataclass(frozen=True, slots=True)
class FilterState:
    search_query: str | None = None
    filter_type: FilterType = FilterType.ALL
    start_date: date | None = None
    end_date: date | None = None
    sort_field: SortField = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC

    def __post_init__(self) -> None:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchQuery": self.search_query,
            "filterType": self.filter_type.value,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "sortField": self.sort_field.value,
            "sortDirection": self.sort_direction.value,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FilterState":
        try:
            return cls(
                search_query=payload.get("searchQuery") or None,
                filter_type=FilterType(payload.get("filterType") or FilterType.ALL.value),
                start_date=_parse_date(payload.get("startDate")),
                end_date=_parse_date(payload.get("endDate")),
                sort_field=SortField(payload.get("sortField") or SortField.CREATED_AT.value),
                sort_direction=SortDirection(payload.get("sortDirection") or SortDirection.DESC.value),
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid filter state: {exc}") from exc


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _matches_type(record: FileRecord, filter_type: FilterType, duplicate_ids: frozenset[str]) -> bool:
    if filter_type == FilterType.ALL:
        return True
    if filter_type == FilterType.PROTECTED:
        return record.is_protected
    if filter_type == FilterType.DUPLICATES:
        return record.id in duplicate_ids
    return record.status == _STATUS_FILTERS[filter_type]


def apply_filters(records: Iterable[FileRecord], state: FilterState) -> list[FileRecord]:
    materialized = list(records)
    duplicate_ids: frozenset[str] = frozenset()
    if state.filter_type == FilterType.DUPLICATES:
        duplicate_ids = frozenset(
            record.id for members in group_by_checksum(materialized).values() for record in members
        )

    needle = state.search_query.lower() if state.search_query else None
    start = datetime.combine(state.start_date, time.min, tzinfo=timezone.utc) if state.start_date else None
    end = datetime.combine(state.end_date, time.max, tzinfo=timezone.utc) if state.end_date else None

    filtered: list[FileRecord] = []
    for record in materialized:
        if needle and needle not in record.title.lower():
            continue
        if not _matches_type(record, state.filter_type, duplicate_ids):
            continue
        created_at = _as_utc(record.created_at)
        if start is not None and created_at < start:
            continue
        if end is not None and created_at > end:
            continue
        filtered.append(record)

    reverse = state.sort_direction == SortDirection.DESC
    if state.sort_field == SortField.TITLE:
        filtered.sort(key=lambda item: item.title.lower(), reverse=reverse)
    elif state.sort_field == SortField.STATUS:
        filtered.sort(key=lambda item: item.status.value, reverse=reverse)
    else:
        filtered.sort(key=lambda item: _as_utc(item.created_at), reverse=reverse)
    return filtered
