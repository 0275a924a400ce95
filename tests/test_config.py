from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from scribedesk.core.config import Settings


def test_defaults_point_database_into_state_root(tmp_path: Path) -> None:
    settings = Settings(state_root=tmp_path / "state")
    assert settings.effective_database_url.endswith("/state/scribedesk.sqlite3")
    assert (tmp_path / "state").is_dir()
    assert settings.preset_export_version == "1.0"


def test_log_level_is_normalized(tmp_path: Path) -> None:
    assert Settings(state_root=tmp_path, log_level=" debug ").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(state_root=tmp_path, log_level="chatty")


@pytest.mark.parametrize("raw", ["relative/state", "~/state", "/tmp/$HOME/state"])
def test_unsafe_state_paths_are_rejected(raw: str) -> None:
    with pytest.raises(ValidationError):
        Settings(state_root=raw, database_url="sqlite://")


def test_page_size_bounds_are_checked(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Settings(state_root=tmp_path, default_page_size=50, max_page_size=10)
