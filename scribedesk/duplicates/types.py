from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from scribedesk.db.models import RecordStatus


class DeletionReason(str, Enum):
    PROTECTED = "protected"
    TOO_RECENT = "too recent"
    NEWEST_KEPT = "newest duplicate, kept"
    WILL_BE_DELETED = "will be deleted"


class GroupPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PreviewState(str, Enum):
    DISABLED = "disabled"
    NO_DUPLICATES = "no_duplicates"
    READY = "ready"


class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class FileRecord:
    id: str
    title: str
    checksum: str | None
    created_at: datetime
    is_protected: bool = False
    size_bytes: int | None = None
    status: RecordStatus = RecordStatus.COMPLETED


@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    keep_latest: bool
    delete_older_than_days: int

    def __post_init__(self) -> None:
        if self.delete_older_than_days < 0:
            raise ValueError("delete_older_than_days must be >= 0")


@dataclass(frozen=True, slots=True)
class ResolvedRecord:
    record: FileRecord
    will_be_deleted: bool
    reason: DeletionReason


@dataclass(slots=True)
class DuplicateGroup:
    checksum: str
    records: list[ResolvedRecord]

    @property
    def ids_to_delete(self) -> list[str]:
        return [item.record.id for item in self.records if item.will_be_deleted]


@dataclass(slots=True)
class GroupSummary:
    checksum: str
    title: str
    count: int
    oldest_created_at: datetime
    newest_created_at: datetime
    total_size_bytes: int
    wasted_size_bytes: int
    priority: GroupPriority
    recommendations: list[str]


@dataclass(slots=True)
class DuplicateReport:
    generated_at: datetime
    total_records: int
    total_groups: int
    total_extra_copies: int
    total_wasted_bytes: int
    groups: list[GroupSummary]


@dataclass(slots=True)
class CleanupPreview:
    state: PreviewState
    groups: list[DuplicateGroup] = field(default_factory=list)

    @property
    def total_to_delete(self) -> int:
        return sum(len(group.ids_to_delete) for group in self.groups)


@dataclass(slots=True)
class CleanupRunResult:
    state: PreviewState
    dry_run: bool
    files_deleted: int
    space_freed_bytes: int
    groups_found: int
    deleted_ids: list[str]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    event_type: ChangeEventType
    record: FileRecord


@dataclass(slots=True)
class CleanupConfigSnapshot:
    owner_id: str
    enabled: bool
    keep_latest: bool
    delete_older_than_days: int

    @property
    def policy(self) -> RetentionPolicy:
        return RetentionPolicy(keep_latest=self.keep_latest, delete_older_than_days=self.delete_older_than_days)


@dataclass(slots=True)
class CleanupHistorySnapshot:
    id: int
    files_deleted: int
    space_freed_bytes: int
    groups_found: int
    dry_run: bool
    status: str
    error_message: str | None
    created_at: datetime
