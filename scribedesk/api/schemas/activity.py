from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ActivityResponse(BaseModel):
    id: int
    action_type: str
    action_description: str
    metadata: dict[str, Any] | None
    created_at: datetime


class ActivityListResponse(BaseModel):
    items: list[ActivityResponse]
    next_cursor: str | None
