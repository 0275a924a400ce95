from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from scribedesk.core.config import Settings
from scribedesk.db.models import RecordStatus, TranscriptionRecord
from scribedesk.duplicates.types import FileRecord
from scribedesk.filters.state import FilterState, apply_filters

logger = logging.getLogger(__name__)


def _coerce_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def record_from_row(row: TranscriptionRecord) -> FileRecord:
    return FileRecord(
        id=row.id,
        title=row.title,
        checksum=row.checksum,
        created_at=_coerce_utc(row.created_at),
        is_protected=bool(row.is_protected),
        size_bytes=row.size_bytes,
        status=row.status,
    )


def load_owner_records(session: Session, owner_id: str, *, with_checksum_only: bool = False) -> list[FileRecord]:
    stmt = (
        select(TranscriptionRecord)
        .where(TranscriptionRecord.owner_id == owner_id)
        .order_by(TranscriptionRecord.created_at.desc(), TranscriptionRecord.id.asc())
    )
    if with_checksum_only:
        stmt = stmt.where(TranscriptionRecord.checksum.is_not(None))
    return [record_from_row(row) for row in session.scalars(stmt).all()]


class RecordService:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def create_record(
        self,
        owner_id: str,
        *,
        title: str,
        checksum: str | None = None,
        status: RecordStatus = RecordStatus.COMPLETED,
        size_bytes: int | None = None,
        is_protected: bool = False,
        created_at: datetime | None = None,
    ) -> FileRecord:
        normalized_title = title.strip()
        if not normalized_title:
            raise ValueError("title cannot be blank")
        normalized_checksum = checksum.strip() if checksum and checksum.strip() else None
        if size_bytes is not None and size_bytes < 0:
            raise ValueError("size_bytes must be >= 0")

        row = TranscriptionRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            title=normalized_title,
            checksum=normalized_checksum,
            status=status,
            size_bytes=size_bytes,
            is_protected=is_protected,
        )
        if created_at is not None:
            row.created_at = _coerce_utc(created_at)
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Stored record %s for owner %s", row.id, owner_id)
            return record_from_row(row)

    def list_records(self, owner_id: str, state: FilterState | None = None) -> list[FileRecord]:
        with self._session_factory() as session:
            records = load_owner_records(session, owner_id)
        return apply_filters(records, state or FilterState())


def file_record_to_dict(record: FileRecord) -> dict[str, Any]:
    payload = asdict(record)
    payload["status"] = record.status.value
    return payload
