from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from scribedesk.activity.types import ActivityListResult, ActivitySnapshot
from scribedesk.core.config import Settings
from scribedesk.db.models import ActivityLog

logger = logging.getLogger(__name__)

ACTION_CLEANUP = "cleanup"
ACTION_DELETE = "delete"
ACTION_PROTECT = "protect"
ACTION_PRESET = "preset"
ACTION_SETTINGS = "settings"


def record_activity(
    session: Session,
    *,
    owner_id: str,
    action_type: str,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Stage an activity row on a caller-owned session; the caller commits."""
    session.add(
        ActivityLog(
            owner_id=owner_id,
            action_type=action_type,
            action_description=description,
            details=metadata,
        )
    )
    logger.debug("activity owner=%s type=%s %s", owner_id, action_type, description)


class ActivityService:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _normalize_limit(self, limit: int | None) -> int:
        if limit is None:
            return int(self._settings.default_page_size)
        return max(1, min(int(limit), int(self._settings.max_page_size)))

    def _normalize_cursor(self, cursor: str | None) -> int | None:
        if cursor is None:
            return None
        try:
            anchor = int(cursor.strip())
        except ValueError as exc:
            raise ValueError("Invalid activity cursor") from exc
        if anchor < 1:
            raise ValueError("Invalid activity cursor")
        return anchor

    def list_activity(
        self,
        owner_id: str,
        *,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> ActivityListResult:
        bounded_limit = self._normalize_limit(limit)
        anchor = self._normalize_cursor(cursor)

        stmt = (
            select(ActivityLog)
            .where(ActivityLog.owner_id == owner_id)
            .order_by(ActivityLog.id.desc())
            .limit(bounded_limit + 1)
        )
        if anchor is not None:
            stmt = stmt.where(ActivityLog.id < anchor)

        with self._session_factory() as session:
            rows = list(session.scalars(stmt).all())

        items = [self._to_snapshot(row) for row in rows[:bounded_limit]]
        next_cursor = str(items[-1].id) if len(rows) > bounded_limit and items else None
        return ActivityListResult(items=items, next_cursor=next_cursor)

    def _to_snapshot(self, row: ActivityLog) -> ActivitySnapshot:
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return ActivitySnapshot(
            id=row.id,
            owner_id=row.owner_id,
            action_type=row.action_type,
            action_description=row.action_description,
            metadata=row.details,
            created_at=created_at,
        )


def activity_snapshot_to_dict(snapshot: ActivitySnapshot) -> dict[str, Any]:
    return asdict(snapshot)
