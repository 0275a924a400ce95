from __future__ import annotations

import pytest

from scribedesk.presets.flow import ALLOWED_TRANSITIONS, ImportFlow, ImportState, InvalidImportStateError
from scribedesk.presets.types import ConflictResolution, Preset


def test_conflicting_import_walks_every_state() -> None:
    flow = ImportFlow([Preset(name="A"), Preset(name="B")], [Preset(id="1", name="A")])
    assert flow.state == ImportState.IDLE

    conflicts = flow.analyze()
    assert flow.state == ImportState.CONFLICTS_DETECTED
    assert [conflict.index for conflict in conflicts] == [0]

    plan = flow.choose(ConflictResolution.OVERWRITE)
    assert flow.state == ImportState.RESOLUTION_CHOSEN
    assert flow.plan is plan
    assert [item.id for item in plan.to_update] == ["1"]

    flow.mark_applied()
    assert flow.state == ImportState.APPLIED


def test_conflict_free_import_skips_resolution_step() -> None:
    flow = ImportFlow([Preset(name="New")], [Preset(id="1", name="Old")])

    assert flow.analyze() == []
    assert flow.state == ImportState.RESOLUTION_CHOSEN
    assert [preset.name for preset in flow.plan.to_insert] == ["New"]


def test_cancel_returns_to_idle_and_allows_reanalysis() -> None:
    flow = ImportFlow([Preset(name="A")], [Preset(id="1", name="A")])
    flow.analyze()
    flow.cancel()

    assert flow.state == ImportState.IDLE
    assert flow.conflicts == []
    with pytest.raises(InvalidImportStateError):
        _ = flow.plan

    flow.analyze()
    assert flow.state == ImportState.CONFLICTS_DETECTED


def test_applied_is_terminal() -> None:
    flow = ImportFlow([], [])
    flow.analyze()
    flow.mark_applied()

    assert ALLOWED_TRANSITIONS[ImportState.APPLIED] == set()
    with pytest.raises(InvalidImportStateError):
        flow.cancel()
    with pytest.raises(InvalidImportStateError):
        flow.analyze()


def test_out_of_order_calls_are_rejected() -> None:
    flow = ImportFlow([Preset(name="A")], [])
    with pytest.raises(InvalidImportStateError):
        flow.choose(ConflictResolution.SKIP)
    with pytest.raises(InvalidImportStateError):
        flow.mark_applied()

    flow.analyze()
    with pytest.raises(InvalidImportStateError):
        flow.cancel()
