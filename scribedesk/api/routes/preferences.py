from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from scribedesk.api.dependencies import get_owner_id
from scribedesk.api.schemas.preferences import FilterStatePayload
from scribedesk.db.session import get_session_factory
from scribedesk.filters.state import FilterState
from scribedesk.filters.store import SqlPreferenceStore, load_filter_state, save_filter_state

router = APIRouter(prefix="/preferences", tags=["preferences"])


def get_preference_store() -> SqlPreferenceStore:
    return SqlPreferenceStore(session_factory=get_session_factory())


def _to_payload(state: FilterState) -> FilterStatePayload:
    return FilterStatePayload(
        search_query=state.search_query,
        filter_type=state.filter_type,
        start_date=state.start_date,
        end_date=state.end_date,
        sort_field=state.sort_field,
        sort_direction=state.sort_direction,
    )


@router.get("/filters", response_model=FilterStatePayload)
def get_filter_preferences(
    owner_id: str = Depends(get_owner_id),
    store: SqlPreferenceStore = Depends(get_preference_store),
) -> FilterStatePayload:
    return _to_payload(load_filter_state(store, owner_id))


@router.put("/filters", response_model=FilterStatePayload)
def put_filter_preferences(
    request: FilterStatePayload,
    owner_id: str = Depends(get_owner_id),
    store: SqlPreferenceStore = Depends(get_preference_store),
) -> FilterStatePayload:
    try:
        state = FilterState(**request.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _to_payload(save_filter_state(store, owner_id, state))
