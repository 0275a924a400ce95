from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from scribedesk.api.dependencies import get_owner_id
from scribedesk.api.schemas.duplicates import (
    CleanupConfigRequest,
    CleanupConfigResponse,
    CleanupHistoryResponse,
    CleanupPreviewResponse,
    CleanupRunResponse,
    DuplicateReportResponse,
    MutationCountResponse,
    ProtectRecordsRequest,
    RecordSelectionRequest,
)
from scribedesk.core.config import get_settings
from scribedesk.db.session import get_session_factory
from scribedesk.duplicates.service import (
    DuplicateSelectionError,
    DuplicateService,
    DuplicateStorageError,
    RecordNotFoundError,
    cleanup_preview_to_dict,
    cleanup_run_to_dict,
    duplicate_report_to_dict,
)

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


def get_duplicate_service() -> DuplicateService:
    return DuplicateService(settings=get_settings(), session_factory=get_session_factory())


@router.get("/config", response_model=CleanupConfigResponse)
def get_cleanup_config(
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> CleanupConfigResponse:
    return CleanupConfigResponse.model_validate(asdict(service.get_config(owner_id)))


@router.put("/config", response_model=CleanupConfigResponse)
def update_cleanup_config(
    request: CleanupConfigRequest,
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> CleanupConfigResponse:
    try:
        config = service.update_config(
            owner_id,
            enabled=request.enabled,
            keep_latest=request.keep_latest,
            delete_older_than_days=request.delete_older_than_days,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return CleanupConfigResponse.model_validate(asdict(config))


@router.get("/preview", response_model=CleanupPreviewResponse)
def preview_cleanup(
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> CleanupPreviewResponse:
    return CleanupPreviewResponse.model_validate(cleanup_preview_to_dict(service.preview(owner_id)))


@router.get("/groups", response_model=DuplicateReportResponse)
def list_duplicate_groups(
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> DuplicateReportResponse:
    return DuplicateReportResponse.model_validate(duplicate_report_to_dict(service.report(owner_id)))


@router.post("/protect", response_model=MutationCountResponse)
def protect_records(
    request: ProtectRecordsRequest,
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> MutationCountResponse:
    try:
        affected = service.set_protected(owner_id, request.record_ids, protected=request.protected)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DuplicateSelectionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except DuplicateStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return MutationCountResponse(affected=affected)


@router.post("/delete", response_model=MutationCountResponse)
def delete_records(
    request: RecordSelectionRequest,
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> MutationCountResponse:
    try:
        affected = service.delete_records(owner_id, request.record_ids)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DuplicateSelectionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except DuplicateStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return MutationCountResponse(affected=affected)


@router.post("/cleanup", response_model=CleanupRunResponse)
def run_cleanup(
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> CleanupRunResponse:
    try:
        result = service.run_cleanup(owner_id)
    except DuplicateStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return CleanupRunResponse.model_validate(cleanup_run_to_dict(result))


@router.get("/history", response_model=list[CleanupHistoryResponse])
def list_cleanup_history(
    limit: int = Query(default=50, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    service: DuplicateService = Depends(get_duplicate_service),
) -> list[CleanupHistoryResponse]:
    return [CleanupHistoryResponse.model_validate(asdict(item)) for item in service.list_history(owner_id, limit=limit)]
