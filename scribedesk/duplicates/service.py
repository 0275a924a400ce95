from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from scribedesk.activity.service import ACTION_CLEANUP, ACTION_DELETE, ACTION_PROTECT, ACTION_SETTINGS, record_activity
from scribedesk.core.config import Settings
from scribedesk.db.models import CleanupConfig, CleanupHistory, CleanupRunStatus, TranscriptionRecord
from scribedesk.duplicates.engine import resolve_duplicates, summarize_groups
from scribedesk.duplicates.types import (
    CleanupConfigSnapshot,
    CleanupHistorySnapshot,
    CleanupPreview,
    CleanupRunResult,
    DuplicateGroup,
    DuplicateReport,
    PreviewState,
    RetentionPolicy,
)
from scribedesk.records.service import load_owner_records

logger = logging.getLogger(__name__)


class DuplicateSelectionError(ValueError):
    pass


class RecordNotFoundError(RuntimeError):
    pass


class DuplicateStorageError(RuntimeError):
    pass


class DuplicateService:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _coerce_utc(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def _normalize_ids(self, record_ids: Sequence[str]) -> list[str]:
        normalized = list(dict.fromkeys(item.strip() for item in record_ids if item and item.strip()))
        if not normalized:
            raise DuplicateSelectionError("No records selected")
        return normalized

    def _default_config(self, owner_id: str) -> CleanupConfigSnapshot:
        return CleanupConfigSnapshot(
            owner_id=owner_id,
            enabled=False,
            keep_latest=self._settings.default_keep_latest,
            delete_older_than_days=self._settings.default_delete_older_than_days,
        )

    def get_config(self, owner_id: str) -> CleanupConfigSnapshot:
        with self._session_factory() as session:
            row = session.get(CleanupConfig, owner_id)
            if row is None:
                return self._default_config(owner_id)
            return CleanupConfigSnapshot(
                owner_id=row.owner_id,
                enabled=row.enabled,
                keep_latest=row.keep_latest,
                delete_older_than_days=row.delete_older_than_days,
            )

    def update_config(
        self,
        owner_id: str,
        *,
        enabled: bool,
        keep_latest: bool,
        delete_older_than_days: int,
    ) -> CleanupConfigSnapshot:
        RetentionPolicy(keep_latest=keep_latest, delete_older_than_days=delete_older_than_days)
        with self._session_factory() as session:
            row = session.get(CleanupConfig, owner_id)
            if row is None:
                row = CleanupConfig(owner_id=owner_id)
                session.add(row)
            row.enabled = enabled
            row.keep_latest = keep_latest
            row.delete_older_than_days = delete_older_than_days
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_SETTINGS,
                description="Duplicate cleanup settings updated",
                metadata={
                    "enabled": enabled,
                    "keep_latest": keep_latest,
                    "delete_older_than_days": delete_older_than_days,
                },
            )
            session.commit()
        return self.get_config(owner_id)

    def _resolve_for_owner(self, session: Session, owner_id: str, policy: RetentionPolicy, now: datetime) -> list[DuplicateGroup]:
        records = load_owner_records(session, owner_id, with_checksum_only=True)
        return resolve_duplicates(records, policy, now=now)

    def preview(self, owner_id: str, *, now: datetime | None = None) -> CleanupPreview:
        config = self.get_config(owner_id)
        if not config.enabled:
            return CleanupPreview(state=PreviewState.DISABLED)

        effective_now = self._coerce_utc(now) if now is not None else self._now()
        with self._session_factory() as session:
            groups = self._resolve_for_owner(session, owner_id, config.policy, effective_now)
        if not groups:
            return CleanupPreview(state=PreviewState.NO_DUPLICATES)
        return CleanupPreview(state=PreviewState.READY, groups=groups)

    def report(self, owner_id: str, *, now: datetime | None = None) -> DuplicateReport:
        effective_now = self._coerce_utc(now) if now is not None else self._now()
        informational = RetentionPolicy(keep_latest=True, delete_older_than_days=0)
        with self._session_factory() as session:
            records = load_owner_records(session, owner_id)
        groups = resolve_duplicates(records, informational, now=effective_now)
        return summarize_groups(
            groups,
            total_records=len(records),
            fallback_size_bytes=self._settings.estimated_record_size_bytes,
            now=effective_now,
        )

    def _load_selection(self, session: Session, owner_id: str, record_ids: list[str]) -> list[TranscriptionRecord]:
        rows = list(
            session.scalars(
                select(TranscriptionRecord).where(
                    TranscriptionRecord.owner_id == owner_id,
                    TranscriptionRecord.id.in_(record_ids),
                )
            ).all()
        )
        found = {row.id for row in rows}
        missing = [record_id for record_id in record_ids if record_id not in found]
        if missing:
            raise RecordNotFoundError(f"Records not found: {', '.join(missing)}")
        return rows

    def set_protected(self, owner_id: str, record_ids: Sequence[str], *, protected: bool) -> int:
        normalized = self._normalize_ids(record_ids)
        with self._session_factory() as session:
            self._load_selection(session, owner_id, normalized)
            try:
                result = session.execute(
                    update(TranscriptionRecord)
                    .where(TranscriptionRecord.owner_id == owner_id, TranscriptionRecord.id.in_(normalized))
                    .values(is_protected=protected)
                )
                record_activity(
                    session,
                    owner_id=owner_id,
                    action_type=ACTION_PROTECT,
                    description=f"{'Protected' if protected else 'Unprotected'} {len(normalized)} record(s)",
                    metadata={"record_ids": normalized, "protected": protected},
                )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise DuplicateStorageError("Failed to update record protection") from exc
        return int(result.rowcount or 0)

    def delete_records(self, owner_id: str, record_ids: Sequence[str]) -> int:
        normalized = self._normalize_ids(record_ids)
        with self._session_factory() as session:
            rows = self._load_selection(session, owner_id, normalized)
            protected = [row.id for row in rows if row.is_protected]
            if protected and len(protected) != len(rows):
                raise DuplicateSelectionError(
                    "Selection mixes protected and unprotected records; unprotect or deselect them first"
                )
            if protected:
                raise DuplicateSelectionError("Protected records cannot be deleted")
            try:
                result = session.execute(
                    delete(TranscriptionRecord).where(
                        TranscriptionRecord.owner_id == owner_id,
                        TranscriptionRecord.id.in_(normalized),
                    )
                )
                record_activity(
                    session,
                    owner_id=owner_id,
                    action_type=ACTION_DELETE,
                    description=f"Deleted {len(normalized)} record(s)",
                    metadata={"record_ids": normalized},
                )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise DuplicateStorageError("Failed to delete records") from exc
        logger.info("Deleted %d record(s) for owner %s", len(normalized), owner_id)
        return int(result.rowcount or 0)

    def run_cleanup(self, owner_id: str, *, now: datetime | None = None) -> CleanupRunResult:
        config = self.get_config(owner_id)
        dry_run = self._settings.dry_run
        if not config.enabled:
            logger.info("Cleanup is disabled for owner %s", owner_id)
            return CleanupRunResult(
                state=PreviewState.DISABLED,
                dry_run=dry_run,
                files_deleted=0,
                space_freed_bytes=0,
                groups_found=0,
                deleted_ids=[],
            )

        effective_now = self._coerce_utc(now) if now is not None else self._now()
        with self._session_factory() as session:
            groups = self._resolve_for_owner(session, owner_id, config.policy, effective_now)
            doomed = [item.record for group in groups for item in group.records if item.will_be_deleted]
            doomed_ids = [record.id for record in doomed]
            space_freed = sum(
                record.size_bytes if record.size_bytes is not None else self._settings.estimated_record_size_bytes
                for record in doomed
            )
            state = PreviewState.READY if groups else PreviewState.NO_DUPLICATES
            logger.info(
                "Cleanup for owner %s: %d group(s), %d record(s) eligible, dry_run=%s",
                owner_id,
                len(groups),
                len(doomed_ids),
                dry_run,
            )

            try:
                if doomed_ids and not dry_run:
                    session.execute(
                        delete(TranscriptionRecord).where(
                            TranscriptionRecord.owner_id == owner_id,
                            TranscriptionRecord.id.in_(doomed_ids),
                            TranscriptionRecord.is_protected.is_(False),
                        )
                    )
                files_deleted = 0 if dry_run else len(doomed_ids)
                session.add(
                    CleanupHistory(
                        owner_id=owner_id,
                        files_deleted=files_deleted,
                        space_freed_bytes=0 if dry_run else space_freed,
                        groups_found=len(groups),
                        dry_run=dry_run,
                        status=CleanupRunStatus.COMPLETED,
                    )
                )
                record_activity(
                    session,
                    owner_id=owner_id,
                    action_type=ACTION_CLEANUP,
                    description=f"Cleanup completed: {files_deleted} duplicates removed",
                    metadata={"files_deleted": files_deleted, "space_freed_bytes": space_freed, "dry_run": dry_run},
                )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                self._record_failed_run(owner_id, groups_found=len(groups), dry_run=dry_run, error=str(exc))
                raise DuplicateStorageError("Duplicate cleanup failed") from exc

        return CleanupRunResult(
            state=state,
            dry_run=dry_run,
            files_deleted=files_deleted,
            space_freed_bytes=0 if dry_run else space_freed,
            groups_found=len(groups),
            deleted_ids=[] if dry_run else doomed_ids,
        )

    def _record_failed_run(self, owner_id: str, *, groups_found: int, dry_run: bool, error: str) -> None:
        logger.error("Cleanup failed for owner %s: %s", owner_id, error)
        try:
            with self._session_factory() as session:
                session.add(
                    CleanupHistory(
                        owner_id=owner_id,
                        files_deleted=0,
                        space_freed_bytes=0,
                        groups_found=groups_found,
                        dry_run=dry_run,
                        status=CleanupRunStatus.FAILED,
                        error_message=error[:2048],
                    )
                )
                session.commit()
        except SQLAlchemyError:
            logger.exception("Could not record failed cleanup run for owner %s", owner_id)

    def list_history(self, owner_id: str, *, limit: int = 50) -> list[CleanupHistorySnapshot]:
        bounded_limit = max(1, min(int(limit), int(self._settings.max_page_size)))
        with self._session_factory() as session:
            rows = session.scalars(
                select(CleanupHistory)
                .where(CleanupHistory.owner_id == owner_id)
                .order_by(CleanupHistory.id.desc())
                .limit(bounded_limit)
            ).all()
            return [
                CleanupHistorySnapshot(
                    id=row.id,
                    files_deleted=row.files_deleted,
                    space_freed_bytes=row.space_freed_bytes,
                    groups_found=row.groups_found,
                    dry_run=row.dry_run,
                    status=row.status.value,
                    error_message=row.error_message,
                    created_at=self._coerce_utc(row.created_at),
                )
                for row in rows
            ]


def duplicate_group_to_dict(group: DuplicateGroup) -> dict[str, Any]:
    return {
        "checksum": group.checksum,
        "files": [
            {
                "id": item.record.id,
                "title": item.record.title,
                "created_at": item.record.created_at,
                "is_protected": item.record.is_protected,
                "will_be_deleted": item.will_be_deleted,
                "reason": item.reason.value,
            }
            for item in group.records
        ],
    }


def cleanup_preview_to_dict(preview: CleanupPreview) -> dict[str, Any]:
    return {
        "state": preview.state.value,
        "total_to_delete": preview.total_to_delete,
        "groups": [duplicate_group_to_dict(group) for group in preview.groups],
    }


def duplicate_report_to_dict(report: DuplicateReport) -> dict[str, Any]:
    payload = asdict(report)
    for group_payload, summary in zip(payload["groups"], report.groups):
        group_payload["priority"] = summary.priority.value
    return payload


def cleanup_run_to_dict(result: CleanupRunResult) -> dict[str, Any]:
    payload = asdict(result)
    payload["state"] = result.state.value
    return payload
