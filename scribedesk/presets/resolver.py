"""Import planning for filter presets.

``plan_import`` decides, per incoming preset, whether it is inserted, renamed,
skipped or overwrites an existing preset. It is pure: the preset service
applies the plan afterwards, committing backups before any overwrite.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Collection, Mapping, Sequence

from scribedesk.db.models import BackupReason
from scribedesk.presets.types import BackupRecord, ConflictInfo, ConflictResolution, ImportPlan, Preset, PresetUpdate


def _index_existing(existing: Sequence[Preset]) -> dict[str, Preset]:
    by_name: dict[str, Preset] = {}
    for preset in existing:
        if preset.name in by_name:
            raise ValueError(f"Existing presets contain duplicated name: {preset.name!r}")
        by_name[preset.name] = preset
    return by_name


def unique_name(base: str, taken: Collection[str]) -> str:
    """Return ``"base (n)"`` with the smallest ``n >= 1`` not present in ``taken``."""
    suffix = 1
    candidate = f"{base} ({suffix})"
    while candidate in taken:
        suffix += 1
        candidate = f"{base} ({suffix})"
    return candidate


def detect_conflicts(incoming: Sequence[Preset], existing: Sequence[Preset]) -> list[ConflictInfo]:
    by_name = _index_existing(existing)
    return [
        ConflictInfo(index=index, name=preset.name, existing_id=by_name[preset.name].id)
        for index, preset in enumerate(incoming)
        if preset.name in by_name
    ]


def _normalize_overrides(
    overrides: Mapping[int, ConflictResolution | str] | None,
    incoming_count: int,
) -> dict[int, ConflictResolution]:
    normalized: dict[int, ConflictResolution] = {}
    for raw_index, raw_resolution in (overrides or {}).items():
        index = int(raw_index)
        if index < 0 or index >= incoming_count:
            raise ValueError(f"Resolution override index out of range: {index}")
        normalized[index] = ConflictResolution(raw_resolution)
    return normalized


def plan_import(
    incoming: Sequence[Preset],
    existing: Sequence[Preset],
    default_resolution: ConflictResolution | str = ConflictResolution.SKIP,
    overrides: Mapping[int, ConflictResolution | str] | None = None,
) -> ImportPlan:
    by_name = _index_existing(existing)
    resolutions = _normalize_overrides(overrides, len(incoming))
    default = ConflictResolution(default_resolution)

    # non-conflicting names keep their spelling; renames must avoid them too
    claimed: dict[str, int] = {}
    for index, preset in enumerate(incoming):
        if preset.name not in by_name:
            claimed.setdefault(preset.name, index)
    taken = set(by_name) | set(claimed)

    plan = ImportPlan()
    for index, preset in enumerate(incoming):
        match = by_name.get(preset.name)
        if match is None:
            if claimed[preset.name] == index:
                plan.to_insert.append(replace(preset, id=None))
            else:
                renamed = unique_name(preset.name, taken)
                taken.add(renamed)
                plan.to_insert.append(replace(preset, id=None, name=renamed))
            continue

        resolution = resolutions.get(index, default)
        if resolution == ConflictResolution.SKIP:
            plan.skipped += 1
        elif resolution == ConflictResolution.RENAME:
            renamed = unique_name(preset.name, taken)
            taken.add(renamed)
            plan.to_insert.append(replace(preset, id=None, name=renamed))
        else:
            if match.id is None:
                raise ValueError(f"Existing preset {match.name!r} has no id and cannot be overwritten")
            plan.to_backup.append(
                BackupRecord(
                    original_preset_id=match.id,
                    name=match.name,
                    description=match.description,
                    filter_data=match.filter_data,
                    reason=BackupReason.IMPORT_OVERWRITE,
                )
            )
            plan.to_update.append(PresetUpdate(id=match.id, preset=replace(preset, id=match.id)))
    return plan
