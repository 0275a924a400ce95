from scribedesk.duplicates.engine import apply_change_event, group_by_checksum, resolve_duplicates, summarize_groups
from scribedesk.duplicates.types import (
    ChangeEvent,
    ChangeEventType,
    DeletionReason,
    DuplicateGroup,
    FileRecord,
    ResolvedRecord,
    RetentionPolicy,
)

__all__ = [
    "apply_change_event",
    "group_by_checksum",
    "resolve_duplicates",
    "summarize_groups",
    "ChangeEvent",
    "ChangeEventType",
    "DeletionReason",
    "DuplicateGroup",
    "FileRecord",
    "ResolvedRecord",
    "RetentionPolicy",
]
