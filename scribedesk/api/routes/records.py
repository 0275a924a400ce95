from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status

from scribedesk.api.dependencies import get_owner_id
from scribedesk.api.schemas.records import CreateRecordRequest, RecordResponse
from scribedesk.core.config import get_settings
from scribedesk.db.session import get_session_factory
from scribedesk.filters.state import FilterState, FilterType, SortDirection, SortField
from scribedesk.records.service import RecordService, file_record_to_dict

router = APIRouter(prefix="/records", tags=["records"])


def get_record_service() -> RecordService:
    return RecordService(settings=get_settings(), session_factory=get_session_factory())


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
def create_record(
    request: CreateRecordRequest,
    owner_id: str = Depends(get_owner_id),
    service: RecordService = Depends(get_record_service),
) -> RecordResponse:
    try:
        record = service.create_record(
            owner_id,
            title=request.title,
            checksum=request.checksum,
            status=request.status,
            size_bytes=request.size_bytes,
            is_protected=request.is_protected,
            created_at=request.created_at,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return RecordResponse.model_validate(file_record_to_dict(record))


@router.get("", response_model=list[RecordResponse])
def list_records(
    search_query: str | None = None,
    filter_type: FilterType = FilterType.ALL,
    start_date: date | None = None,
    end_date: date | None = None,
    sort_field: SortField = SortField.CREATED_AT,
    sort_direction: SortDirection = SortDirection.DESC,
    owner_id: str = Depends(get_owner_id),
    service: RecordService = Depends(get_record_service),
) -> list[RecordResponse]:
    try:
        state = FilterState(
            search_query=search_query,
            filter_type=filter_type,
            start_date=start_date,
            end_date=end_date,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return [RecordResponse.model_validate(file_record_to_dict(item)) for item in service.list_records(owner_id, state)]
