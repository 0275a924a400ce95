from __future__ import annotations

import io
import json
import re
import zipfile
import zlib
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Sequence

from scribedesk.presets.types import FilterData, ImportFileError, ParsedImport, Preset, validate_preset_name

MANIFEST_NAME = "manifest.json"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9]+")


class PresetFormatError(ValueError):
    pass


def preset_to_export_dict(preset: Preset, *, exported_at: datetime, version: str) -> dict[str, Any]:
    return {
        "name": preset.name,
        "description": preset.description,
        "filter_data": preset.filter_data.to_dict(),
        "exported_at": exported_at.isoformat(),
        "version": version,
    }


def export_preset_json(preset: Preset, *, exported_at: datetime, version: str) -> bytes:
    payload = preset_to_export_dict(preset, exported_at=exported_at, version=version)
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def export_filename(name: str) -> str:
    stem = _UNSAFE_FILENAME_CHARS.sub("_", name.lower()).strip("_") or "preset"
    return f"{stem}.json"


def export_presets_zip(presets: Sequence[Preset], *, exported_at: datetime, version: str) -> bytes:
    buffer = io.BytesIO()
    used: set[str] = {MANIFEST_NAME}
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for preset in presets:
            filename = export_filename(preset.name)
            stem = filename[: -len(".json")]
            counter = 2
            while filename in used:
                filename = f"{stem}_{counter}.json"
                counter += 1
            used.add(filename)
            archive.writestr(filename, export_preset_json(preset, exported_at=exported_at, version=version))

        manifest = {
            "exported_at": exported_at.isoformat(),
            "total_presets": len(presets),
            "presets": [{"name": preset.name, "description": preset.description} for preset in presets],
        }
        archive.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2, ensure_ascii=False))
    return buffer.getvalue()


def preset_from_payload(payload: Any) -> Preset:
    if not isinstance(payload, dict):
        raise PresetFormatError("Invalid preset file format: expected a JSON object")
    if "name" not in payload or "filter_data" not in payload:
        raise PresetFormatError("Invalid preset file format: 'name' and 'filter_data' are required")
    try:
        name = validate_preset_name(payload["name"])
        filter_data = FilterData.from_dict(payload["filter_data"])
    except ValueError as exc:
        raise PresetFormatError(f"Invalid preset file format: {exc}") from exc

    description = payload.get("description")
    if description is not None and not isinstance(description, str):
        raise PresetFormatError("Invalid preset file format: 'description' must be a string")
    return Preset(name=name, description=description, filter_data=filter_data)


def _parse_json_bytes(content: bytes) -> Preset:
    try:
        payload = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PresetFormatError(f"Invalid JSON: {exc}") from exc
    return preset_from_payload(payload)


def _read_member(archive: zipfile.ZipFile, member: zipfile.ZipInfo, budget: int | None) -> bytes:
    if budget is None:
        return archive.read(member)
    if member.file_size > budget:
        raise PresetFormatError(f"Member exceeds the remaining import size limit of {budget} bytes")
    # read at most budget + 1 bytes whatever file_size declares
    with archive.open(member) as handle:
        data = handle.read(budget + 1)
    if len(data) > budget:
        raise PresetFormatError(f"Member exceeds the remaining import size limit of {budget} bytes")
    return data


def _parse_zip_bytes(content: bytes, max_bytes: int | None = None) -> ParsedImport:
    result = ParsedImport()
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as exc:
        raise PresetFormatError("Invalid ZIP archive") from exc

    remaining = max_bytes
    with archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            member_name = PurePosixPath(member.filename).name
            if not member_name.lower().endswith(".json") or member_name.lower() == MANIFEST_NAME:
                continue
            try:
                raw = _read_member(archive, member, remaining)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError) as exc:
                result.errors.append(ImportFileError(filename=member.filename, message=f"Unreadable member: {exc}"))
                continue
            except PresetFormatError as exc:
                result.errors.append(ImportFileError(filename=member.filename, message=str(exc)))
                continue
            if remaining is not None:
                remaining -= len(raw)
            try:
                result.presets.append(_parse_json_bytes(raw))
            except PresetFormatError as exc:
                result.errors.append(ImportFileError(filename=member.filename, message=str(exc)))
    return result


def parse_import_file(filename: str, content: bytes, *, max_bytes: int | None = None) -> ParsedImport:
    """Parse an uploaded ``.json`` or ``.zip`` preset file.

    A single JSON file that fails validation raises ``PresetFormatError``.
    Inside a ZIP each member is parsed independently and failures are
    collected in ``ParsedImport.errors``. ``max_bytes`` bounds the total
    decompressed size of ZIP members; members past the bound become errors.
    """
    lowered = filename.lower()
    if lowered.endswith(".zip"):
        return _parse_zip_bytes(content, max_bytes)
    if lowered.endswith(".json"):
        return ParsedImport(presets=[_parse_json_bytes(content)])
    raise PresetFormatError("Unsupported file type: expected .json or .zip")
