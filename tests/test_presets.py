from __future__ import annotations

import io
import json
import os
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

import scribedesk.db.session as db_session_module
from scribedesk.api.app import create_app
from scribedesk.core.config import get_settings
from scribedesk.db.init_db import initialize_database
from scribedesk.db.models import BackupReason, PresetBackup
from scribedesk.filters.state import FilterType
from scribedesk.presets.resolver import plan_import
from scribedesk.presets.service import BackupNotFoundError, PresetConflictError, PresetService, PresetStorageError
from scribedesk.presets.types import ConflictResolution, FilterData, Preset

OWNER = "owner-1"
HEADERS = {"X-Owner-Id": OWNER}


def make_preset_service(tmp_path: Path) -> PresetService:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["SCRIBEDESK_STATE_ROOT"] = state_root.as_posix()
    os.environ["SCRIBEDESK_DRY_RUN"] = "false"
    os.environ.pop("SCRIBEDESK_DATABASE_URL", None)

    get_settings.cache_clear()
    db_session_module.reset_engine()
    initialize_database()
    return PresetService(get_settings(), db_session_module.get_session_factory())


def _preset_file(name: str, filter_type: str = "all", description: str | None = None) -> bytes:
    payload = {"name": name, "description": description, "filter_data": {"filterType": filter_type}}
    return json.dumps(payload).encode("utf-8")


def _zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def test_create_preset_rejects_duplicate_name(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    service.create_preset(OWNER, Preset(name="Daily"))

    try:
        service.create_preset(OWNER, Preset(name="Daily"))
    except PresetConflictError:
        pass
    else:
        raise AssertionError("expected PresetConflictError")

    service.create_preset("other-owner", Preset(name="Daily"))
    assert [item.name for item in service.list_presets(OWNER)] == ["Daily"]


def test_import_overwrite_records_backup_of_replaced_preset(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    original = service.create_preset(
        OWNER,
        Preset(name="Standard", description="before", filter_data=FilterData(filter_type=FilterType.COMPLETED)),
    )

    outcome = service.import_presets(
        OWNER,
        "standard.json",
        _preset_file("Standard", "failed", "after"),
        default_resolution=ConflictResolution.OVERWRITE,
    )

    assert len(outcome.updated) == 1
    assert outcome.updated[0].id == original.id
    assert outcome.updated[0].filter_data.filter_type == FilterType.FAILED

    backups = service.list_backups(OWNER)
    assert len(backups) == 1
    assert backups[0].original_preset_id == original.id
    assert backups[0].preset_description == "before"
    assert backups[0].preset_filter_data.filter_type == FilterType.COMPLETED
    assert backups[0].backup_reason == BackupReason.IMPORT_OVERWRITE


def test_import_zip_renames_conflicts_and_reports_bad_members(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    service.create_preset(OWNER, Preset(name="Standard"))

    content = _zip(
        {
            "standard.json": _preset_file("Standard"),
            "custom.json": _preset_file("Custom"),
            "broken.json": b"{",
        }
    )
    outcome = service.import_presets(OWNER, "bundle.zip", content, default_resolution=ConflictResolution.RENAME)

    assert sorted(item.name for item in outcome.inserted) == ["Custom", "Standard (1)"]
    assert [error.filename for error in outcome.errors] == ["broken.json"]
    assert sorted(item.name for item in service.list_presets(OWNER)) == ["Custom", "Standard", "Standard (1)"]


def test_import_override_skips_single_conflict(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    service.create_preset(OWNER, Preset(name="Standard"))
    content = _zip({"a.json": _preset_file("Standard"), "b.json": _preset_file("Custom")})

    outcome = service.import_presets(
        OWNER,
        "bundle.zip",
        content,
        default_resolution=ConflictResolution.RENAME,
        overrides={0: ConflictResolution.SKIP},
    )

    assert outcome.skipped == 1
    assert [item.name for item in outcome.inserted] == ["Custom"]


def test_update_preset_keeps_previous_version_as_backup(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    created = service.create_preset(OWNER, Preset(name="Weekly", description="v1"))

    unchanged = service.update_preset(OWNER, created.id, Preset(name="Weekly", description="v1"))
    assert unchanged.description == "v1"
    assert service.list_backups(OWNER) == []

    service.update_preset(OWNER, created.id, Preset(name="Weekly", description="v2"))
    backups = service.list_backups(OWNER)
    assert [(item.preset_description, item.backup_reason) for item in backups] == [("v1", BackupReason.OVERWRITE)]


def test_restore_updates_existing_or_reinserts_deleted_preset(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    created = service.create_preset(OWNER, Preset(name="Weekly", description="v1"))
    service.update_preset(OWNER, created.id, Preset(name="Weekly", description="v2"))
    backup_id = service.list_backups(OWNER)[0].id

    restored = service.restore_backup(OWNER, backup_id)
    assert restored.action == "updated"
    assert restored.preset.id == created.id
    assert restored.preset.description == "v1"

    service.delete_preset(OWNER, created.id)
    reinserted = service.restore_backup(OWNER, backup_id)
    assert reinserted.action == "inserted"
    assert reinserted.preset.name == "Weekly"
    assert reinserted.preset.id != created.id

    try:
        service.restore_backup("other-owner", backup_id)
    except BackupNotFoundError:
        pass
    else:
        raise AssertionError("expected BackupNotFoundError")


def test_cleanup_old_backups_respects_owner_settings(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    factory = db_session_module.get_session_factory()
    with factory() as session:
        for owner_id, days in (("keeper", 40), ("keeper", 5), ("ignored", 40)):
            session.add(
                PresetBackup(
                    id=f"{owner_id}-{days}",
                    owner_id=owner_id,
                    preset_name="Weekly",
                    preset_filter_data={},
                    backup_reason=BackupReason.OVERWRITE,
                    backed_up_at=now - timedelta(days=days),
                )
            )
        session.commit()

    service.update_retention("keeper", retention_days=30, auto_cleanup_enabled=True)
    service.update_retention("ignored", retention_days=30, auto_cleanup_enabled=False)

    result = service.cleanup_old_backups(now=now)

    assert result.total_deleted == 1
    assert result.processed_owners == 1
    with factory() as session:
        remaining = sorted(session.scalars(select(PresetBackup.id)).all())
    assert remaining == ["ignored-40", "keeper-5"]


def test_retention_defaults_and_validation(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    defaults = service.get_retention(OWNER)
    assert defaults.retention_days == 30
    assert defaults.auto_cleanup_enabled is False

    try:
        service.update_retention(OWNER, retention_days=0, auto_cleanup_enabled=True)
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")


def test_preset_api_round_trip(tmp_path: Path) -> None:
    make_preset_service(tmp_path)
    client = TestClient(create_app())

    created = client.post(
        "/api/v1/presets",
        json={"name": "Standard", "filter_data": {"filterType": "completed"}},
        headers=HEADERS,
    )
    assert created.status_code == 201
    preset_id = created.json()["id"]

    conflict = client.post("/api/v1/presets", json={"name": "Standard"}, headers=HEADERS)
    assert conflict.status_code == 409

    invalid = client.post(
        "/api/v1/presets",
        json={"name": "Bad", "filter_data": {"filterType": "everything"}},
        headers=HEADERS,
    )
    assert invalid.status_code == 422

    exported = client.get(f"/api/v1/presets/{preset_id}/export", headers=HEADERS)
    assert exported.status_code == 200
    assert 'filename="standard.json"' in exported.headers["content-disposition"]
    assert exported.json()["version"] == "1.0"

    bundle = client.get("/api/v1/presets/export", headers=HEADERS)
    assert bundle.status_code == 200
    assert bundle.headers["content-type"] == "application/zip"

    analysis = client.post(
        "/api/v1/presets/import/analyze",
        files={"file": ("bundle.zip", bundle.content, "application/zip")},
        headers=HEADERS,
    )
    assert analysis.status_code == 200
    assert analysis.json()["conflicts"] == [{"index": 0, "name": "Standard", "existing_id": preset_id}]

    imported = client.post(
        "/api/v1/presets/import",
        files={"file": ("bundle.zip", bundle.content, "application/zip")},
        data={"default_resolution": "overwrite"},
        headers=HEADERS,
    )
    assert imported.status_code == 200
    assert imported.json()["updated"] == 1
    assert imported.json()["backups"] == 1

    backups = client.get("/api/v1/presets/backups", headers=HEADERS)
    assert backups.status_code == 200
    backup_id = backups.json()[0]["id"]

    restored = client.post(f"/api/v1/presets/backups/{backup_id}/restore", headers=HEADERS)
    assert restored.status_code == 200
    assert restored.json()["action"] == "updated"

    missing = client.post("/api/v1/presets/backups/nope/restore", headers=HEADERS)
    assert missing.status_code == 404

    retention = client.put(
        "/api/v1/presets/backups/retention",
        json={"retention_days": 7, "auto_cleanup_enabled": True},
        headers=HEADERS,
    )
    assert retention.json()["retention_days"] == 7

    cleanup = client.post("/api/v1/presets/backups/cleanup", headers=HEADERS)
    assert cleanup.status_code == 200
    assert cleanup.json()["processed_owners"] == 1

    deleted = client.delete(f"/api/v1/presets/{preset_id}", headers=HEADERS)
    assert deleted.status_code == 204
    assert client.get("/api/v1/presets/export", headers=HEADERS).status_code == 404


def test_import_api_rejects_bad_uploads(tmp_path: Path) -> None:
    make_preset_service(tmp_path)
    client = TestClient(create_app())

    wrong_type = client.post(
        "/api/v1/presets/import",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=HEADERS,
    )
    assert wrong_type.status_code == 422

    missing_fields = client.post(
        "/api/v1/presets/import",
        files={"file": ("preset.json", json.dumps({"name": "x"}).encode(), "application/json")},
        headers=HEADERS,
    )
    assert missing_fields.status_code == 422

    bad_overrides = client.post(
        "/api/v1/presets/import",
        files={"file": ("preset.json", _preset_file("x"), "application/json")},
        data={"overrides": "[1, 2]"},
        headers=HEADERS,
    )
    assert bad_overrides.status_code == 422


class FailingCommitFactory:
    """Session factory whose ``fail_on``-th session cannot commit."""

    def __init__(self, factory, fail_on: int):
        self._factory = factory
        self._fail_on = fail_on
        self.calls = 0

    def __call__(self):
        self.calls += 1
        session = self._factory()
        if self.calls == self._fail_on:

            def _commit() -> None:
                raise SQLAlchemyError("disk I/O error")

            session.commit = _commit
        return session


def _overwrite_plan(service: PresetService):
    existing = [snapshot.as_preset() for snapshot in service.list_presets(OWNER)]
    incoming = [Preset(name="Standard", description="after", filter_data=FilterData(filter_type=FilterType.FAILED))]
    return plan_import(incoming, existing, ConflictResolution.OVERWRITE)


def test_failed_overwrite_keeps_committed_backup_and_original_preset(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    original = service.create_preset(
        OWNER,
        Preset(name="Standard", description="before", filter_data=FilterData(filter_type=FilterType.COMPLETED)),
    )
    plan = _overwrite_plan(service)
    failing = PresetService(get_settings(), FailingCommitFactory(db_session_module.get_session_factory(), fail_on=2))

    try:
        failing.apply_plan(OWNER, plan)
    except PresetStorageError:
        pass
    else:
        raise AssertionError("expected PresetStorageError")

    backups = service.list_backups(OWNER)
    assert [backup.original_preset_id for backup in backups] == [original.id]
    assert backups[0].preset_description == "before"

    current = service.get_preset(OWNER, original.id)
    assert current.description == "before"
    assert current.filter_data.filter_type == FilterType.COMPLETED


def test_failed_backup_commit_leaves_preset_untouched(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    original = service.create_preset(OWNER, Preset(name="Standard", description="before"))
    plan = _overwrite_plan(service)
    factory = FailingCommitFactory(db_session_module.get_session_factory(), fail_on=1)
    failing = PresetService(get_settings(), factory)

    try:
        failing.apply_plan(OWNER, plan)
    except PresetStorageError:
        pass
    else:
        raise AssertionError("expected PresetStorageError")

    assert factory.calls == 1
    assert service.list_backups(OWNER) == []
    assert service.get_preset(OWNER, original.id).description == "before"


def test_backup_cleanup_can_be_scoped_to_one_owner(tmp_path: Path) -> None:
    service = make_preset_service(tmp_path)
    old = datetime.now(tz=timezone.utc) - timedelta(days=60)
    with db_session_module.get_session_factory()() as session:
        for owner_id in (OWNER, "other-owner"):
            session.add(
                PresetBackup(
                    id=f"{owner_id}-old",
                    owner_id=owner_id,
                    preset_name="Weekly",
                    preset_filter_data={},
                    backup_reason=BackupReason.OVERWRITE,
                    backed_up_at=old,
                )
            )
        session.commit()
    for owner_id in (OWNER, "other-owner"):
        service.update_retention(owner_id, retention_days=30, auto_cleanup_enabled=True)

    client = TestClient(create_app())
    assert client.post("/api/v1/presets/backups/cleanup").status_code == 422

    response = client.post("/api/v1/presets/backups/cleanup", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["total_deleted"] == 1
    assert response.json()["processed_owners"] == 1
    assert [backup.id for backup in service.list_backups("other-owner")] == ["other-owner-old"]

    result = service.cleanup_old_backups()
    assert result.total_deleted == 1
    assert service.list_backups("other-owner") == []


def test_zip_import_caps_decompressed_size(tmp_path: Path) -> None:
    os.environ["SCRIBEDESK_MAX_IMPORT_BYTES"] = "4096"
    try:
        service = make_preset_service(tmp_path)
        bomb = io.BytesIO()
        with zipfile.ZipFile(bomb, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("ok.json", _preset_file("Fine"))
            archive.writestr("bomb.json", json.dumps({"name": "Bomb", "description": " " * 1_000_000, "filter_data": {}}))
        content = bomb.getvalue()
        assert len(content) < 4096

        outcome = service.import_presets(OWNER, "bundle.zip", content)
    finally:
        os.environ.pop("SCRIBEDESK_MAX_IMPORT_BYTES", None)
        get_settings.cache_clear()

    assert [item.name for item in outcome.inserted] == ["Fine"]
    assert [error.filename for error in outcome.errors] == ["bomb.json"]
