from __future__ import annotations

from enum import Enum
from typing import Mapping, Sequence

from scribedesk.presets.resolver import detect_conflicts, plan_import
from scribedesk.presets.types import ConflictInfo, ConflictResolution, ImportPlan, Preset


class ImportState(str, Enum):
    IDLE = "idle"
    CONFLICTS_DETECTED = "conflicts_detected"
    RESOLUTION_CHOSEN = "resolution_chosen"
    APPLIED = "applied"


class InvalidImportStateError(RuntimeError):
    pass


ALLOWED_TRANSITIONS: dict[ImportState, set[ImportState]] = {
    ImportState.IDLE: {ImportState.CONFLICTS_DETECTED, ImportState.RESOLUTION_CHOSEN},
    ImportState.CONFLICTS_DETECTED: {ImportState.RESOLUTION_CHOSEN, ImportState.IDLE},
    ImportState.RESOLUTION_CHOSEN: {ImportState.APPLIED},
    ImportState.APPLIED: set(),
}


class ImportFlow:
    """Drives one preset import from analysis to application.

    Batches without conflicts skip ``conflicts_detected``. Cancelling is only
    possible while conflicts are pending and returns the flow to ``idle``.
    """

    def __init__(self, incoming: Sequence[Preset], existing: Sequence[Preset]):
        self._incoming = list(incoming)
        self._existing = list(existing)
        self._state = ImportState.IDLE
        self._conflicts: list[ConflictInfo] = []
        self._plan: ImportPlan | None = None

    @property
    def state(self) -> ImportState:
        return self._state

    @property
    def conflicts(self) -> list[ConflictInfo]:
        return list(self._conflicts)

    @property
    def plan(self) -> ImportPlan:
        if self._plan is None:
            raise InvalidImportStateError("No resolution has been chosen yet")
        return self._plan

    def _transition(self, target: ImportState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidImportStateError(f"Illegal transition: {self._state.value} -> {target.value}")
        self._state = target

    def analyze(self) -> list[ConflictInfo]:
        if self._state != ImportState.IDLE:
            raise InvalidImportStateError(f"Cannot analyze an import in state {self._state.value}")
        self._conflicts = detect_conflicts(self._incoming, self._existing)
        if self._conflicts:
            self._transition(ImportState.CONFLICTS_DETECTED)
        else:
            self._plan = plan_import(self._incoming, self._existing)
            self._transition(ImportState.RESOLUTION_CHOSEN)
        return self.conflicts

    def choose(
        self,
        default_resolution: ConflictResolution | str,
        overrides: Mapping[int, ConflictResolution | str] | None = None,
    ) -> ImportPlan:
        if self._state != ImportState.CONFLICTS_DETECTED:
            raise InvalidImportStateError(f"Cannot choose a resolution in state {self._state.value}")
        plan = plan_import(self._incoming, self._existing, default_resolution, overrides)
        self._plan = plan
        self._transition(ImportState.RESOLUTION_CHOSEN)
        return plan

    def cancel(self) -> None:
        self._transition(ImportState.IDLE)
        self._conflicts = []
        self._plan = None

    def mark_applied(self) -> None:
        self._transition(ImportState.APPLIED)
