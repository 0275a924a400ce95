from scribedesk.presets.codec import PresetFormatError, export_presets_zip, parse_import_file
from scribedesk.presets.flow import ImportFlow, ImportState, InvalidImportStateError
from scribedesk.presets.resolver import detect_conflicts, plan_import, unique_name
from scribedesk.presets.types import BackupRecord, ConflictResolution, FilterData, ImportPlan, Preset, PresetUpdate

__all__ = [
    "PresetFormatError",
    "export_presets_zip",
    "parse_import_file",
    "ImportFlow",
    "ImportState",
    "InvalidImportStateError",
    "detect_conflicts",
    "plan_import",
    "unique_name",
    "BackupRecord",
    "ConflictResolution",
    "FilterData",
    "ImportPlan",
    "Preset",
    "PresetUpdate",
]
