from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from scribedesk.activity.service import ACTION_PRESET, ACTION_SETTINGS, record_activity
from scribedesk.core.config import Settings
from scribedesk.db.models import BackupReason, BackupRetentionSettings, FilterPreset, PresetBackup
from scribedesk.presets.codec import export_filename, export_preset_json, export_presets_zip, parse_import_file
from scribedesk.presets.flow import ImportFlow
from scribedesk.presets.types import (
    BackupCleanupResult,
    BackupRecord,
    BackupRetentionSnapshot,
    BackupSnapshot,
    ConflictInfo,
    ConflictResolution,
    FilterData,
    ImportOutcome,
    ImportPlan,
    ParsedImport,
    Preset,
    PresetSnapshot,
    RestoreOutcome,
    validate_preset_name,
)

logger = logging.getLogger(__name__)


class PresetNotFoundError(RuntimeError):
    pass


class BackupNotFoundError(RuntimeError):
    pass


class PresetConflictError(RuntimeError):
    pass


class PresetStorageError(RuntimeError):
    pass


class PresetService:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _coerce_utc(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def _to_snapshot(self, row: FilterPreset) -> PresetSnapshot:
        return PresetSnapshot(
            id=row.id,
            owner_id=row.owner_id,
            name=row.name,
            description=row.description,
            filter_data=FilterData.from_dict(row.filter_data or {}),
            created_at=self._coerce_utc(row.created_at),
            updated_at=self._coerce_utc(row.updated_at),
        )

    def _to_backup_snapshot(self, row: PresetBackup) -> BackupSnapshot:
        return BackupSnapshot(
            id=row.id,
            owner_id=row.owner_id,
            original_preset_id=row.original_preset_id,
            preset_name=row.preset_name,
            preset_description=row.preset_description,
            preset_filter_data=FilterData.from_dict(row.preset_filter_data or {}),
            backup_reason=row.backup_reason,
            backed_up_at=self._coerce_utc(row.backed_up_at),
        )

    def _get_row(self, session: Session, owner_id: str, preset_id: str) -> FilterPreset:
        row = session.get(FilterPreset, preset_id)
        if row is None or row.owner_id != owner_id:
            raise PresetNotFoundError(f"Preset not found: {preset_id}")
        return row

    def _backup_row(self, owner_id: str, backup: BackupRecord, now: datetime) -> PresetBackup:
        return PresetBackup(
            id=str(uuid4()),
            owner_id=owner_id,
            original_preset_id=backup.original_preset_id,
            preset_name=backup.name,
            preset_description=backup.description,
            preset_filter_data=backup.filter_data.to_dict(),
            backup_reason=backup.reason,
            backed_up_at=now,
        )

    def list_presets(self, owner_id: str) -> list[PresetSnapshot]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(FilterPreset)
                .where(FilterPreset.owner_id == owner_id)
                .order_by(FilterPreset.name.asc(), FilterPreset.id.asc())
            ).all()
            return [self._to_snapshot(row) for row in rows]

    def get_preset(self, owner_id: str, preset_id: str) -> PresetSnapshot:
        with self._session_factory() as session:
            return self._to_snapshot(self._get_row(session, owner_id, preset_id))

    def create_preset(self, owner_id: str, preset: Preset) -> PresetSnapshot:
        name = validate_preset_name(preset.name)
        row = FilterPreset(
            id=str(uuid4()),
            owner_id=owner_id,
            name=name,
            description=preset.description,
            filter_data=preset.filter_data.to_dict(),
        )
        with self._session_factory() as session:
            session.add(row)
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_PRESET,
                description=f"Preset created: {name}",
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise PresetConflictError(f"A preset named {name!r} already exists") from exc
            session.refresh(row)
            return self._to_snapshot(row)

    def update_preset(self, owner_id: str, preset_id: str, preset: Preset) -> PresetSnapshot:
        name = validate_preset_name(preset.name)
        now = self._now()
        with self._session_factory() as session:
            row = self._get_row(session, owner_id, preset_id)
            current = self._to_snapshot(row)
            if current.as_preset() == Preset(
                id=preset_id, name=name, description=preset.description, filter_data=preset.filter_data
            ):
                return current

            session.add(
                self._backup_row(
                    owner_id,
                    BackupRecord(
                        original_preset_id=row.id,
                        name=current.name,
                        description=current.description,
                        filter_data=current.filter_data,
                        reason=BackupReason.OVERWRITE,
                    ),
                    now,
                )
            )
            row.name = name
            row.description = preset.description
            row.filter_data = preset.filter_data.to_dict()
            row.updated_at = now
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_PRESET,
                description=f"Preset updated: {name}",
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise PresetConflictError(f"A preset named {name!r} already exists") from exc
            session.refresh(row)
            return self._to_snapshot(row)

    def delete_preset(self, owner_id: str, preset_id: str) -> None:
        with self._session_factory() as session:
            row = self._get_row(session, owner_id, preset_id)
            name = row.name
            session.delete(row)
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_PRESET,
                description=f"Preset deleted: {name}",
            )
            session.commit()

    def export_preset(self, owner_id: str, preset_id: str, *, now: datetime | None = None) -> tuple[str, bytes]:
        snapshot = self.get_preset(owner_id, preset_id)
        exported_at = self._coerce_utc(now) if now is not None else self._now()
        content = export_preset_json(
            snapshot.as_preset(),
            exported_at=exported_at,
            version=self._settings.preset_export_version,
        )
        return export_filename(snapshot.name), content

    def export_all(self, owner_id: str, *, now: datetime | None = None) -> bytes:
        presets = [snapshot.as_preset() for snapshot in self.list_presets(owner_id)]
        if not presets:
            raise PresetNotFoundError("No presets to export")
        exported_at = self._coerce_utc(now) if now is not None else self._now()
        return export_presets_zip(presets, exported_at=exported_at, version=self._settings.preset_export_version)

    def _parse_upload(self, filename: str, content: bytes) -> ParsedImport:
        if len(content) > self._settings.max_import_bytes:
            raise ValueError(f"Import file exceeds {self._settings.max_import_bytes} bytes")
        return parse_import_file(filename, content, max_bytes=self._settings.max_import_bytes)

    def analyze_import(self, owner_id: str, filename: str, content: bytes) -> tuple[ParsedImport, list[ConflictInfo]]:
        parsed = self._parse_upload(filename, content)
        existing = [snapshot.as_preset() for snapshot in self.list_presets(owner_id)]
        flow = ImportFlow(parsed.presets, existing)
        return parsed, flow.analyze()

    def import_presets(
        self,
        owner_id: str,
        filename: str,
        content: bytes,
        *,
        default_resolution: ConflictResolution | str = ConflictResolution.SKIP,
        overrides: Mapping[int, ConflictResolution | str] | None = None,
    ) -> ImportOutcome:
        parsed = self._parse_upload(filename, content)
        existing = [snapshot.as_preset() for snapshot in self.list_presets(owner_id)]

        flow = ImportFlow(parsed.presets, existing)
        if flow.analyze():
            flow.choose(default_resolution, overrides)
        outcome = self.apply_plan(owner_id, flow.plan)
        flow.mark_applied()

        outcome.errors = list(parsed.errors)
        logger.info(
            "Imported presets for owner %s: inserted=%d updated=%d skipped=%d errors=%d",
            owner_id,
            len(outcome.inserted),
            len(outcome.updated),
            outcome.skipped,
            len(outcome.errors),
        )
        return outcome

    def apply_plan(self, owner_id: str, plan: ImportPlan) -> ImportOutcome:
        """Apply an import plan: backups, then overwrites, then inserts.

        Each step commits on its own. Backups are durable before any
        overwrite runs; a failure in a later step leaves earlier steps
        committed.
        """
        outcome = ImportOutcome(skipped=plan.skipped)
        now = self._now()

        if plan.to_backup:
            with self._session_factory() as session:
                rows = [self._backup_row(owner_id, backup, now) for backup in plan.to_backup]
                session.add_all(rows)
                try:
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise PresetStorageError("Failed to record preset backups; no preset was overwritten") from exc
                outcome.backups = [self._to_backup_snapshot(row) for row in rows]

        if plan.to_update:
            with self._session_factory() as session:
                try:
                    rows = []
                    for item in plan.to_update:
                        row = self._get_row(session, owner_id, item.id)
                        row.name = item.preset.name
                        row.description = item.preset.description
                        row.filter_data = item.preset.filter_data.to_dict()
                        row.updated_at = now
                        rows.append(row)
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise PresetStorageError("Failed to overwrite presets") from exc
                outcome.updated = [self._to_snapshot(row) for row in rows]

        if plan.to_insert:
            with self._session_factory() as session:
                rows = [
                    FilterPreset(
                        id=str(uuid4()),
                        owner_id=owner_id,
                        name=preset.name,
                        description=preset.description,
                        filter_data=preset.filter_data.to_dict(),
                    )
                    for preset in plan.to_insert
                ]
                session.add_all(rows)
                try:
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise PresetConflictError("A preset with the same name was created concurrently") from exc
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise PresetStorageError("Failed to insert imported presets") from exc
                for row in rows:
                    session.refresh(row)
                outcome.inserted = [self._to_snapshot(row) for row in rows]

        with self._session_factory() as session:
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_PRESET,
                description=(
                    f"Preset import: {len(outcome.inserted)} inserted, {len(outcome.updated)} overwritten, "
                    f"{outcome.skipped} skipped"
                ),
                metadata={
                    "inserted": [snapshot.name for snapshot in outcome.inserted],
                    "overwritten": [snapshot.name for snapshot in outcome.updated],
                    "skipped": outcome.skipped,
                },
            )
            session.commit()
        return outcome

    def list_backups(self, owner_id: str, *, limit: int = 100) -> list[BackupSnapshot]:
        bounded_limit = max(1, min(int(limit), int(self._settings.max_page_size)))
        with self._session_factory() as session:
            rows = session.scalars(
                select(PresetBackup)
                .where(PresetBackup.owner_id == owner_id)
                .order_by(PresetBackup.backed_up_at.desc(), PresetBackup.id.asc())
                .limit(bounded_limit)
            ).all()
            return [self._to_backup_snapshot(row) for row in rows]

    def restore_backup(self, owner_id: str, backup_id: str) -> RestoreOutcome:
        with self._session_factory() as session:
            backup = session.get(PresetBackup, backup_id)
            if backup is None or backup.owner_id != owner_id:
                raise BackupNotFoundError(f"Backup not found: {backup_id}")

            row = session.scalar(
                select(FilterPreset).where(
                    FilterPreset.owner_id == owner_id,
                    FilterPreset.name == backup.preset_name,
                )
            )
            if row is None:
                row = FilterPreset(id=str(uuid4()), owner_id=owner_id, name=backup.preset_name)
                session.add(row)
                action = "inserted"
            else:
                action = "updated"
            row.description = backup.preset_description
            row.filter_data = dict(backup.preset_filter_data or {})
            row.updated_at = self._now()
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_PRESET,
                description=f"Preset restored from backup: {backup.preset_name}",
                metadata={"backup_id": backup_id, "action": action},
            )
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PresetStorageError("Failed to restore preset from backup") from exc
            session.refresh(row)
            logger.info("Restored preset %r for owner %s (%s)", backup.preset_name, owner_id, action)
            return RestoreOutcome(preset=self._to_snapshot(row), action=action)

    def get_retention(self, owner_id: str) -> BackupRetentionSnapshot:
        with self._session_factory() as session:
            row = session.get(BackupRetentionSettings, owner_id)
            if row is None:
                return BackupRetentionSnapshot(
                    owner_id=owner_id,
                    retention_days=self._settings.default_backup_retention_days,
                    auto_cleanup_enabled=False,
                )
            return BackupRetentionSnapshot(
                owner_id=row.owner_id,
                retention_days=row.retention_days,
                auto_cleanup_enabled=row.auto_cleanup_enabled,
            )

    def update_retention(
        self,
        owner_id: str,
        *,
        retention_days: int,
        auto_cleanup_enabled: bool,
    ) -> BackupRetentionSnapshot:
        if retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        with self._session_factory() as session:
            row = session.get(BackupRetentionSettings, owner_id)
            if row is None:
                row = BackupRetentionSettings(owner_id=owner_id)
                session.add(row)
            row.retention_days = retention_days
            row.auto_cleanup_enabled = auto_cleanup_enabled
            record_activity(
                session,
                owner_id=owner_id,
                action_type=ACTION_SETTINGS,
                description="Backup retention settings updated",
                metadata={"retention_days": retention_days, "auto_cleanup_enabled": auto_cleanup_enabled},
            )
            session.commit()
        return self.get_retention(owner_id)

    def cleanup_old_backups(
        self,
        *,
        owner_id: str | None = None,
        now: datetime | None = None,
    ) -> BackupCleanupResult:
        """Delete expired backups for owners with auto cleanup enabled.

        ``owner_id`` limits the sweep to one owner; without it every owner is
        processed.
        """
        effective_now = self._coerce_utc(now) if now is not None else self._now()
        stmt = select(BackupRetentionSettings).where(BackupRetentionSettings.auto_cleanup_enabled.is_(True))
        if owner_id is not None:
            stmt = stmt.where(BackupRetentionSettings.owner_id == owner_id)
        with self._session_factory() as session:
            settings_rows = list(session.scalars(stmt).all())

        total_deleted = 0
        for setting in settings_rows:
            cutoff = effective_now - timedelta(days=setting.retention_days)
            with self._session_factory() as session:
                try:
                    result = session.execute(
                        delete(PresetBackup).where(
                            PresetBackup.owner_id == setting.owner_id,
                            PresetBackup.backed_up_at < cutoff,
                        )
                    )
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    logger.exception("Failed to delete old backups for owner %s", setting.owner_id)
                    continue
            deleted = int(result.rowcount or 0)
            total_deleted += deleted
            if deleted:
                logger.info("Deleted %d old backup(s) for owner %s", deleted, setting.owner_id)

        logger.info("Backup cleanup completed: %d deleted across %d owner(s)", total_deleted, len(settings_rows))
        return BackupCleanupResult(
            total_deleted=total_deleted,
            processed_owners=len(settings_rows),
            generated_at=effective_now,
        )


def preset_snapshot_to_dict(snapshot: PresetSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "name": snapshot.name,
        "description": snapshot.description,
        "filter_data": snapshot.filter_data.to_dict(),
        "created_at": snapshot.created_at,
        "updated_at": snapshot.updated_at,
    }


def backup_snapshot_to_dict(snapshot: BackupSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "original_preset_id": snapshot.original_preset_id,
        "preset_name": snapshot.preset_name,
        "preset_description": snapshot.preset_description,
        "preset_filter_data": snapshot.preset_filter_data.to_dict(),
        "backup_reason": snapshot.backup_reason.value,
        "backed_up_at": snapshot.backed_up_at,
    }


def import_outcome_to_dict(outcome: ImportOutcome) -> dict[str, Any]:
    return {
        "imported": len(outcome.inserted),
        "updated": len(outcome.updated),
        "skipped": outcome.skipped,
        "backups": len(outcome.backups),
        "presets": [preset_snapshot_to_dict(item) for item in [*outcome.inserted, *outcome.updated]],
        "errors": [asdict(error) for error in outcome.errors],
    }
