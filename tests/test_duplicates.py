from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient

import scribedesk.db.session as db_session_module
from scribedesk.activity.service import ActivityService
from scribedesk.api.app import create_app
from scribedesk.core.config import get_settings
from scribedesk.db.init_db import initialize_database
from scribedesk.duplicates.service import DuplicateSelectionError, DuplicateService, RecordNotFoundError
from scribedesk.duplicates.types import PreviewState
from scribedesk.records.service import RecordService

OWNER = "owner-1"
HEADERS = {"X-Owner-Id": OWNER}


def make_services(tmp_path: Path, *, dry_run: bool = False) -> tuple[DuplicateService, RecordService]:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["SCRIBEDESK_STATE_ROOT"] = state_root.as_posix()
    os.environ["SCRIBEDESK_DRY_RUN"] = "true" if dry_run else "false"
    os.environ.pop("SCRIBEDESK_DATABASE_URL", None)

    get_settings.cache_clear()
    db_session_module.reset_engine()
    initialize_database()
    settings = get_settings()
    factory = db_session_module.get_session_factory()
    return DuplicateService(settings, factory), RecordService(settings, factory)


def _seed(records: RecordService, title: str, checksum: str | None, *, days_ago: int, **kwargs) -> str:
    created_at = datetime.now(tz=timezone.utc) - timedelta(days=days_ago)
    return records.create_record(OWNER, title=title, checksum=checksum, created_at=created_at, **kwargs).id


def test_preview_reports_disabled_state_before_config(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    _seed(records, "a", "A", days_ago=40)
    _seed(records, "b", "A", days_ago=50)

    preview = duplicates.preview(OWNER)
    assert preview.state == PreviewState.DISABLED
    assert preview.groups == []


def test_preview_distinguishes_no_duplicates_from_ready(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    duplicates.update_config(OWNER, enabled=True, keep_latest=True, delete_older_than_days=30)
    _seed(records, "only", "A", days_ago=40)

    assert duplicates.preview(OWNER).state == PreviewState.NO_DUPLICATES

    newest = _seed(records, "newer", "A", days_ago=35)
    preview = duplicates.preview(OWNER)
    assert preview.state == PreviewState.READY
    assert preview.total_to_delete == 1
    assert preview.groups[0].records[0].record.id == newest


def test_records_of_other_owners_are_not_grouped(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    duplicates.update_config(OWNER, enabled=True, keep_latest=True, delete_older_than_days=30)
    _seed(records, "mine", "A", days_ago=40)
    records.create_record("someone-else", title="theirs", checksum="A")

    assert duplicates.preview(OWNER).state == PreviewState.NO_DUPLICATES


def test_run_cleanup_deletes_eligible_records_and_keeps_history(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    duplicates.update_config(OWNER, enabled=True, keep_latest=True, delete_older_than_days=30)
    newest = _seed(records, "v3", "A", days_ago=31)
    old = _seed(records, "v2", "A", days_ago=40, size_bytes=500)
    protected = _seed(records, "v1", "A", days_ago=60, is_protected=True)
    recent = _seed(records, "w2", "B", days_ago=1)
    _seed(records, "w1", "B", days_ago=2)

    result = duplicates.run_cleanup(OWNER)

    assert result.state == PreviewState.READY
    assert result.dry_run is False
    assert result.deleted_ids == [old]
    assert result.files_deleted == 1
    assert result.space_freed_bytes == 500
    assert result.groups_found == 2

    remaining = {record.id for record in records.list_records(OWNER)}
    assert old not in remaining
    assert {newest, protected, recent} <= remaining

    history = duplicates.list_history(OWNER)
    assert len(history) == 1
    assert history[0].files_deleted == 1
    assert history[0].status == "completed"

    activity = ActivityService(get_settings(), db_session_module.get_session_factory()).list_activity(OWNER)
    assert activity.items[0].action_type == "cleanup"


def test_run_cleanup_in_dry_run_mode_deletes_nothing(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path, dry_run=True)
    duplicates.update_config(OWNER, enabled=True, keep_latest=True, delete_older_than_days=30)
    _seed(records, "v2", "A", days_ago=35)
    _seed(records, "v1", "A", days_ago=40)

    result = duplicates.run_cleanup(OWNER)

    assert result.dry_run is True
    assert result.files_deleted == 0
    assert result.deleted_ids == []
    assert len(records.list_records(OWNER)) == 2
    assert duplicates.list_history(OWNER)[0].dry_run is True


def test_run_cleanup_short_circuits_when_disabled(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    _seed(records, "v2", "A", days_ago=35)
    _seed(records, "v1", "A", days_ago=40)

    result = duplicates.run_cleanup(OWNER)

    assert result.state == PreviewState.DISABLED
    assert len(records.list_records(OWNER)) == 2
    assert duplicates.list_history(OWNER) == []


def test_delete_rejects_mixed_protection_selection(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    plain = _seed(records, "plain", "A", days_ago=10)
    guarded = _seed(records, "guarded", "A", days_ago=20, is_protected=True)

    try:
        duplicates.delete_records(OWNER, [plain, guarded])
    except DuplicateSelectionError:
        pass
    else:
        raise AssertionError("expected DuplicateSelectionError")

    assert len(records.list_records(OWNER)) == 2


def test_protect_then_delete_flow(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    first = _seed(records, "first", "A", days_ago=10)
    second = _seed(records, "second", "A", days_ago=20)

    assert duplicates.set_protected(OWNER, [first], protected=True) == 1
    assert duplicates.delete_records(OWNER, [second, second]) == 1

    remaining = records.list_records(OWNER)
    assert [record.id for record in remaining] == [first]
    assert remaining[0].is_protected is True


def test_unknown_record_ids_are_reported(tmp_path: Path) -> None:
    duplicates, _ = make_services(tmp_path)
    try:
        duplicates.set_protected(OWNER, ["missing"], protected=True)
    except RecordNotFoundError:
        pass
    else:
        raise AssertionError("expected RecordNotFoundError")


def test_report_summarizes_groups_with_fallback_size(tmp_path: Path) -> None:
    duplicates, records = make_services(tmp_path)
    for days in range(4):
        _seed(records, "meeting", "A", days_ago=days)
    _seed(records, "solo", "B", days_ago=1)

    report = duplicates.report(OWNER)

    assert report.total_records == 5
    assert report.total_groups == 1
    assert report.total_extra_copies == 3
    assert report.total_wasted_bytes == 3 * get_settings().estimated_record_size_bytes
    assert report.groups[0].priority.value == "medium"


def test_duplicate_api_flow(tmp_path: Path) -> None:
    make_services(tmp_path)
    client = TestClient(create_app())

    created = []
    for days in (35, 40, 45):
        response = client.post(
            "/api/v1/records",
            json={
                "title": "standup",
                "checksum": "abc",
                "created_at": (datetime.now(tz=timezone.utc) - timedelta(days=days)).isoformat(),
            },
            headers=HEADERS,
        )
        assert response.status_code == 201
        created.append(response.json()["id"])

    preview = client.get("/api/v1/duplicates/preview", headers=HEADERS)
    assert preview.status_code == 200
    assert preview.json()["state"] == "disabled"

    config = client.put(
        "/api/v1/duplicates/config",
        json={"enabled": True, "keep_latest": True, "delete_older_than_days": 30},
        headers=HEADERS,
    )
    assert config.status_code == 200
    assert config.json()["enabled"] is True

    preview = client.get("/api/v1/duplicates/preview", headers=HEADERS)
    payload = preview.json()
    assert payload["state"] == "ready"
    assert payload["total_to_delete"] == 2
    reasons = [item["reason"] for item in payload["groups"][0]["files"]]
    assert reasons == ["newest duplicate, kept", "will be deleted", "will be deleted"]

    protect = client.post(
        "/api/v1/duplicates/protect",
        json={"record_ids": [created[1]], "protected": True},
        headers=HEADERS,
    )
    assert protect.json() == {"affected": 1}

    mixed = client.post("/api/v1/duplicates/delete", json={"record_ids": created[1:]}, headers=HEADERS)
    assert mixed.status_code == 422

    missing = client.post("/api/v1/duplicates/delete", json={"record_ids": ["nope"]}, headers=HEADERS)
    assert missing.status_code == 404

    cleanup = client.post("/api/v1/duplicates/cleanup", headers=HEADERS)
    assert cleanup.status_code == 200
    assert cleanup.json()["deleted_ids"] == [created[2]]

    history = client.get("/api/v1/duplicates/history", headers=HEADERS)
    assert history.status_code == 200
    assert history.json()[0]["files_deleted"] == 1

    groups = client.get("/api/v1/duplicates/groups", headers=HEADERS)
    assert groups.status_code == 200
    assert groups.json()["total_groups"] == 1


def test_owner_header_is_required(tmp_path: Path) -> None:
    make_services(tmp_path)
    client = TestClient(create_app())
    response = client.get("/api/v1/duplicates/preview")
    assert response.status_code == 422


def test_negative_retention_window_is_rejected(tmp_path: Path) -> None:
    make_services(tmp_path)
    client = TestClient(create_app())
    response = client.put(
        "/api/v1/duplicates/config",
        json={"enabled": True, "keep_latest": True, "delete_older_than_days": -1},
        headers=HEADERS,
    )
    assert response.status_code == 422
