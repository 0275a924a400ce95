from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

from scribedesk.api.dependencies import get_owner_id
from scribedesk.api.schemas.presets import (
    BackupCleanupResponse,
    BackupResponse,
    ImportAnalysisResponse,
    ImportResponse,
    PresetRequest,
    PresetResponse,
    RestoreResponse,
    RetentionRequest,
    RetentionResponse,
)
from scribedesk.core.config import get_settings
from scribedesk.db.session import get_session_factory
from scribedesk.presets.codec import PresetFormatError
from scribedesk.presets.flow import InvalidImportStateError
from scribedesk.presets.service import (
    BackupNotFoundError,
    PresetConflictError,
    PresetNotFoundError,
    PresetService,
    PresetStorageError,
    backup_snapshot_to_dict,
    import_outcome_to_dict,
    preset_snapshot_to_dict,
)
from scribedesk.presets.types import ConflictResolution, FilterData, Preset

router = APIRouter(prefix="/presets", tags=["presets"])


def get_preset_service() -> PresetService:
    return PresetService(settings=get_settings(), session_factory=get_session_factory())


def _to_preset(request: PresetRequest) -> Preset:
    try:
        filter_data = FilterData.from_dict(request.filter_data)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return Preset(name=request.name, description=request.description, filter_data=filter_data)


def _parse_overrides(raw: str | None) -> dict[int, ConflictResolution]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("overrides must be a JSON object")
        return {int(index): ConflictResolution(value) for index, value in payload.items()}
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid overrides: {exc}",
        ) from exc


@router.get("", response_model=list[PresetResponse])
def list_presets(
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> list[PresetResponse]:
    return [PresetResponse.model_validate(preset_snapshot_to_dict(item)) for item in service.list_presets(owner_id)]


@router.post("", response_model=PresetResponse, status_code=status.HTTP_201_CREATED)
def create_preset(
    request: PresetRequest,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> PresetResponse:
    try:
        snapshot = service.create_preset(owner_id, _to_preset(request))
    except PresetConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return PresetResponse.model_validate(preset_snapshot_to_dict(snapshot))


@router.get("/export")
def export_all_presets(
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> Response:
    try:
        content = service.export_all(owner_id)
    except PresetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="presets-export-{stamp}.zip"'},
    )


@router.post("/import/analyze", response_model=ImportAnalysisResponse)
async def analyze_import(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> ImportAnalysisResponse:
    content = await file.read()
    try:
        parsed, conflicts = service.analyze_import(owner_id, file.filename or "", content)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return ImportAnalysisResponse.model_validate(
        {
            "total": len(parsed.presets),
            "presets": [preset.name for preset in parsed.presets],
            "conflicts": [asdict(conflict) for conflict in conflicts],
            "errors": [asdict(error) for error in parsed.errors],
        }
    )


@router.post("/import", response_model=ImportResponse)
async def import_presets(
    file: UploadFile = File(...),
    default_resolution: ConflictResolution = Form(default=ConflictResolution.SKIP),
    overrides: str | None = Form(default=None),
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> ImportResponse:
    content = await file.read()
    parsed_overrides = _parse_overrides(overrides)
    try:
        outcome = service.import_presets(
            owner_id,
            file.filename or "",
            content,
            default_resolution=default_resolution,
            overrides=parsed_overrides,
        )
    except (PresetFormatError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except (PresetConflictError, InvalidImportStateError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PresetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PresetStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ImportResponse.model_validate(import_outcome_to_dict(outcome))


@router.get("/backups", response_model=list[BackupResponse])
def list_backups(
    limit: int = Query(default=100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> list[BackupResponse]:
    return [
        BackupResponse.model_validate(backup_snapshot_to_dict(item))
        for item in service.list_backups(owner_id, limit=limit)
    ]


@router.post("/backups/cleanup", response_model=BackupCleanupResponse)
def cleanup_old_backups(
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> BackupCleanupResponse:
    return BackupCleanupResponse.model_validate(asdict(service.cleanup_old_backups(owner_id=owner_id)))


@router.get("/backups/retention", response_model=RetentionResponse)
def get_backup_retention(
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> RetentionResponse:
    return RetentionResponse.model_validate(asdict(service.get_retention(owner_id)))


@router.put("/backups/retention", response_model=RetentionResponse)
def update_backup_retention(
    request: RetentionRequest,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> RetentionResponse:
    try:
        snapshot = service.update_retention(
            owner_id,
            retention_days=request.retention_days,
            auto_cleanup_enabled=request.auto_cleanup_enabled,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return RetentionResponse.model_validate(asdict(snapshot))


@router.post("/backups/{backup_id}/restore", response_model=RestoreResponse)
def restore_backup(
    backup_id: str,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> RestoreResponse:
    try:
        outcome = service.restore_backup(owner_id, backup_id)
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PresetStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return RestoreResponse.model_validate(
        {"action": outcome.action, "preset": preset_snapshot_to_dict(outcome.preset)}
    )


@router.get("/{preset_id}/export")
def export_preset(
    preset_id: str,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> Response:
    try:
        filename, content = service.export_preset(owner_id, preset_id)
    except PresetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.put("/{preset_id}", response_model=PresetResponse)
def update_preset(
    preset_id: str,
    request: PresetRequest,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> PresetResponse:
    try:
        snapshot = service.update_preset(owner_id, preset_id, _to_preset(request))
    except PresetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PresetConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return PresetResponse.model_validate(preset_snapshot_to_dict(snapshot))


@router.delete("/{preset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_preset(
    preset_id: str,
    owner_id: str = Depends(get_owner_id),
    service: PresetService = Depends(get_preset_service),
) -> Response:
    try:
        service.delete_preset(owner_id, preset_id)
    except PresetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
