from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from scribedesk.activity.service import ActivityService, activity_snapshot_to_dict
from scribedesk.api.dependencies import get_owner_id
from scribedesk.api.schemas.activity import ActivityListResponse, ActivityResponse
from scribedesk.core.config import get_settings
from scribedesk.db.session import get_session_factory

router = APIRouter(prefix="/activity", tags=["activity"])


def get_activity_service() -> ActivityService:
    return ActivityService(settings=get_settings(), session_factory=get_session_factory())


@router.get("", response_model=ActivityListResponse)
def list_activity(
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None, min_length=1, max_length=32),
    owner_id: str = Depends(get_owner_id),
    service: ActivityService = Depends(get_activity_service),
) -> ActivityListResponse:
    try:
        result = service.list_activity(owner_id, limit=limit, cursor=cursor)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return ActivityListResponse(
        items=[ActivityResponse.model_validate(activity_snapshot_to_dict(item)) for item in result.items],
        next_cursor=result.next_cursor,
    )
