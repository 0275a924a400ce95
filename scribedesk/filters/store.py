from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from scribedesk.db.models import UserPreference
from scribedesk.filters.state import FilterState

logger = logging.getLogger(__name__)

FILTER_STATE_KEY = "transcription_filters"


class PreferenceStore(Protocol):
    def load(self, owner_id: str, key: str) -> dict[str, Any] | None: ...

    def save(self, owner_id: str, key: str, value: dict[str, Any]) -> None: ...


class SqlPreferenceStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def load(self, owner_id: str, key: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            row = session.get(UserPreference, (owner_id, key))
            if row is None:
                return None
            return dict(row.value)

    def save(self, owner_id: str, key: str, value: dict[str, Any]) -> None:
        with self._session_factory() as session:
            row = session.get(UserPreference, (owner_id, key))
            if row is None:
                session.add(UserPreference(owner_id=owner_id, key=key, value=value))
            else:
                row.value = value
            session.commit()


def load_filter_state(store: PreferenceStore, owner_id: str) -> FilterState:
    payload = store.load(owner_id, FILTER_STATE_KEY)
    if payload is None:
        return FilterState()
    try:
        return FilterState.from_dict(payload)
    except ValueError:
        logger.warning("Discarding unreadable filter preferences for owner %s", owner_id)
        return FilterState()


def save_filter_state(store: PreferenceStore, owner_id: str, state: FilterState) -> FilterState:
    store.save(owner_id, FILTER_STATE_KEY, state.to_dict())
    return state
