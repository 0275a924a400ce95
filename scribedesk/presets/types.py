from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from scribedesk.db.models import BackupReason
from scribedesk.filters.state import FilterType

FILTER_DATA_KEYS = frozenset({"searchQuery", "filterType", "filterDate"})
MAX_PRESET_NAME_LENGTH = 255


class ConflictResolution(str, Enum):
    SKIP = "skip"
    RENAME = "rename"
    OVERWRITE = "overwrite"


@dataclass(frozen=True, slots=True)
class FilterData:
    search_query: str | None = None
    filter_type: FilterType = FilterType.ALL
    filter_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchQuery": self.search_query,
            "filterType": self.filter_type.value,
            "filterDate": self.filter_date.isoformat() if self.filter_date else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FilterData":
        if not isinstance(payload, Mapping):
            raise ValueError("filter_data must be an object")
        unknown = set(payload) - FILTER_DATA_KEYS
        if unknown:
            raise ValueError(f"filter_data has unsupported keys: {', '.join(sorted(unknown))}")

        search_query = payload.get("searchQuery")
        if search_query is not None and not isinstance(search_query, str):
            raise ValueError("filter_data.searchQuery must be a string")

        raw_type = payload.get("filterType") or FilterType.ALL.value
        try:
            filter_type = FilterType(raw_type)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in FilterType)
            raise ValueError(f"filter_data.filterType must be one of: {allowed}") from exc

        raw_date = payload.get("filterDate")
        filter_date: date | None = None
        if raw_date:
            try:
                filter_date = date.fromisoformat(str(raw_date)[:10])
            except ValueError as exc:
                raise ValueError("filter_data.filterDate must be an ISO date") from exc

        return cls(search_query=search_query or None, filter_type=filter_type, filter_date=filter_date)


def validate_preset_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Preset name cannot be blank")
    if len(name) > MAX_PRESET_NAME_LENGTH:
        raise ValueError(f"Preset name must be at most {MAX_PRESET_NAME_LENGTH} characters")
    return name


@dataclass(frozen=True, slots=True)
class Preset:
    name: str
    description: str | None = None
    filter_data: FilterData = field(default_factory=FilterData)
    id: str | None = None


@dataclass(frozen=True, slots=True)
class BackupRecord:
    original_preset_id: str | None
    name: str
    description: str | None
    filter_data: FilterData
    reason: BackupReason = BackupReason.IMPORT_OVERWRITE


@dataclass(frozen=True, slots=True)
class PresetUpdate:
    id: str
    preset: Preset


@dataclass(slots=True)
class ImportPlan:
    to_insert: list[Preset] = field(default_factory=list)
    to_update: list[PresetUpdate] = field(default_factory=list)
    to_backup: list[BackupRecord] = field(default_factory=list)
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class ConflictInfo:
    index: int
    name: str
    existing_id: str | None


@dataclass(frozen=True, slots=True)
class ImportFileError:
    filename: str
    message: str


@dataclass(slots=True)
class ParsedImport:
    presets: list[Preset] = field(default_factory=list)
    errors: list[ImportFileError] = field(default_factory=list)


@dataclass(slots=True)
class PresetSnapshot:
    id: str
    owner_id: str
    name: str
    description: str | None
    filter_data: FilterData
    created_at: datetime
    updated_at: datetime

    def as_preset(self) -> Preset:
        return Preset(id=self.id, name=self.name, description=self.description, filter_data=self.filter_data)


@dataclass(slots=True)
class BackupSnapshot:
    id: str
    owner_id: str
    original_preset_id: str | None
    preset_name: str
    preset_description: str | None
    preset_filter_data: FilterData
    backup_reason: BackupReason
    backed_up_at: datetime


@dataclass(slots=True)
class ImportOutcome:
    inserted: list[PresetSnapshot] = field(default_factory=list)
    updated: list[PresetSnapshot] = field(default_factory=list)
    backups: list[BackupSnapshot] = field(default_factory=list)
    skipped: int = 0
    errors: list[ImportFileError] = field(default_factory=list)


@dataclass(slots=True)
class RestoreOutcome:
    preset: PresetSnapshot
    action: str


@dataclass(slots=True)
class BackupRetentionSnapshot:
    owner_id: str
    retention_days: int
    auto_cleanup_enabled: bool


@dataclass(slots=True)
class BackupCleanupResult:
    total_deleted: int
    processed_owners: int
    generated_at: datetime
