from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class ActivitySnapshot:
    id: int
    owner_id: str
    action_type: str
    action_description: str
    metadata: dict[str, Any] | None
    created_at: datetime


@dataclass(slots=True)
class ActivityListResult:
    items: list[ActivitySnapshot]
    next_cursor: str | None
