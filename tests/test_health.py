from __future__ import annotations

import os
from pathlib import Path

from fastapi.testclient import TestClient

import scribedesk.api.routes.health as health_routes
import scribedesk.db.session as db_session_module
from scribedesk.api.app import create_app
from scribedesk.core.config import get_settings
from scribedesk.db.init_db import DatabaseStatus, check_database, initialize_database
from scribedesk.db.migrations import MIGRATIONS


def _use_state_root(tmp_path: Path) -> None:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)
    os.environ["SCRIBEDESK_STATE_ROOT"] = state_root.as_posix()
    os.environ.pop("SCRIBEDESK_DATABASE_URL", None)
    get_settings.cache_clear()
    db_session_module.reset_engine()


def test_initialize_database_applies_each_migration_once(tmp_path: Path) -> None:
    _use_state_root(tmp_path)

    assert initialize_database() == [step.version for step in MIGRATIONS]
    assert initialize_database() == []
    assert check_database() == DatabaseStatus(reachable=True, schema_version=MIGRATIONS[-1].version)


def test_health_reports_database_state(tmp_path: Path, monkeypatch) -> None:
    _use_state_root(tmp_path)
    initialize_database()
    client = TestClient(create_app())

    healthy = client.get("/api/v1/health")
    assert healthy.status_code == 200
    assert healthy.json()["status"] == "ok"
    assert healthy.json()["database"] == {"reachable": True, "schema_version": MIGRATIONS[-1].version}

    monkeypatch.setattr(health_routes, "check_database", lambda: DatabaseStatus(reachable=False, schema_version=0))
    degraded = client.get("/api/v1/health")
    assert degraded.status_code == 503
    assert degraded.json()["status"] == "degraded"
