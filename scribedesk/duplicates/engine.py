"""Pure duplicate grouping and retention decisions.

Nothing in this module performs I/O. Callers fetch records, pass them in with
an explicit ``now`` and decide afterwards which of the flagged ids to delete.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from scribedesk.db.models import RecordStatus
from scribedesk.duplicates.types import (
    ChangeEvent,
    ChangeEventType,
    DeletionReason,
    DuplicateGroup,
    DuplicateReport,
    FileRecord,
    GroupPriority,
    GroupSummary,
    ResolvedRecord,
    RetentionPolicy,
)

LARGE_WASTE_THRESHOLD_BYTES = 100 * 1024 * 1024
OLD_SPAN_THRESHOLD_DAYS = 30


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def group_by_checksum(records: Iterable[FileRecord]) -> dict[str, list[FileRecord]]:
    """Group records sharing a checksum, newest first.

    Records without a checksum are ignored and singleton groups are dropped.
    Equal ``created_at`` values are ordered by ``id`` so the result does not
    depend on input order.
    """
    buckets: dict[str, list[FileRecord]] = defaultdict(list)
    for record in records:
        if not record.checksum:
            continue
        buckets[record.checksum].append(record)

    groups: dict[str, list[FileRecord]] = {}
    for checksum, members in buckets.items():
        if len(members) < 2:
            continue
        # two stable passes: id ascending, then created_at descending
        ordered = sorted(members, key=lambda item: str(item.id))
        ordered.sort(key=lambda item: _as_utc(item.created_at), reverse=True)
        groups[checksum] = ordered
    return groups


def decide(record: FileRecord, *, index: int, policy: RetentionPolicy, cutoff: datetime) -> ResolvedRecord:
    if record.is_protected:
        return ResolvedRecord(record=record, will_be_deleted=False, reason=DeletionReason.PROTECTED)
    if _as_utc(record.created_at) >= cutoff:
        return ResolvedRecord(record=record, will_be_deleted=False, reason=DeletionReason.TOO_RECENT)
    if policy.keep_latest and index == 0:
        return ResolvedRecord(record=record, will_be_deleted=False, reason=DeletionReason.NEWEST_KEPT)
    return ResolvedRecord(record=record, will_be_deleted=True, reason=DeletionReason.WILL_BE_DELETED)


def resolve_duplicates(
    records: Sequence[FileRecord],
    policy: RetentionPolicy,
    *,
    now: datetime,
) -> list[DuplicateGroup]:
    cutoff = _as_utc(now) - timedelta(days=policy.delete_older_than_days)
    groups = [
        DuplicateGroup(
            checksum=checksum,
            records=[
                decide(record, index=index, policy=policy, cutoff=cutoff) for index, record in enumerate(members)
            ],
        )
        for checksum, members in group_by_checksum(records).items()
    ]
    groups.sort(key=lambda group: (-len(group.records), group.checksum))
    return groups


def _priority_for(count: int) -> GroupPriority:
    if count > 5:
        return GroupPriority.HIGH
    if count > 3:
        return GroupPriority.MEDIUM
    return GroupPriority.LOW


def summarize_group(group: DuplicateGroup, *, fallback_size_bytes: int) -> GroupSummary:
    members = [item.record for item in group.records]
    sizes = [record.size_bytes if record.size_bytes is not None else fallback_size_bytes for record in members]
    newest = _as_utc(members[0].created_at)
    oldest = _as_utc(members[-1].created_at)
    count = len(members)
    priority = _priority_for(count)
    wasted = sum(sizes[1:])

    recommendations = [f"{priority.value.upper()} PRIORITY: {count} versions detected"]
    if wasted > LARGE_WASTE_THRESHOLD_BYTES:
        recommendations.append(f"Large storage waste: {wasted} bytes can be recovered")
    span_days = (newest - oldest).days
    if span_days > OLD_SPAN_THRESHOLD_DAYS:
        recommendations.append(f"Versions span {span_days} days, likely safe to keep only the latest")
    if all(record.status == RecordStatus.COMPLETED for record in members):
        recommendations.append("All versions completed successfully, older versions are safe to delete")
    else:
        recommendations.append("Some versions did not complete, review before deletion")

    return GroupSummary(
        checksum=group.checksum,
        title=members[0].title,
        count=count,
        oldest_created_at=oldest,
        newest_created_at=newest,
        total_size_bytes=sum(sizes),
        wasted_size_bytes=wasted,
        priority=priority,
        recommendations=recommendations,
    )


def summarize_groups(
    groups: Sequence[DuplicateGroup],
    *,
    total_records: int,
    fallback_size_bytes: int,
    now: datetime,
) -> DuplicateReport:
    summaries = [summarize_group(group, fallback_size_bytes=fallback_size_bytes) for group in groups]
    return DuplicateReport(
        generated_at=_as_utc(now),
        total_records=total_records,
        total_groups=len(summaries),
        total_extra_copies=sum(summary.count - 1 for summary in summaries),
        total_wasted_bytes=sum(summary.wasted_size_bytes for summary in summaries),
        groups=summaries,
    )


def apply_change_event(records: Sequence[FileRecord], event: ChangeEvent) -> list[FileRecord]:
    """Fold one change-feed event into a record collection and return the new list."""
    remaining = [record for record in records if record.id != event.record.id]
    if event.event_type == ChangeEventType.DELETE:
        return remaining
    if event.event_type == ChangeEventType.UPDATE:
        for index, record in enumerate(records):
            if record.id == event.record.id:
                updated = list(records)
                updated[index] = event.record
                return updated
    return [event.record, *remaining]
