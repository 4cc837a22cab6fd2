# tests/test_models.py

from __future__ import annotations

import pytest

from khatma.core.errors import Conflict, InvalidArgument
from khatma.core.models import (
    AdminAction,
    Claimed,
    Done,
    Open,
    Unit,
    UnitAction,
    state_fields,
    transition,
    unit_state,
)


def test_unit_state_is_derived_from_stored_fields() -> None:
    assert unit_state(None, False) == Open()
    assert unit_state(7, False) == Claimed(7)
    assert unit_state(7, True) == Done(7)
    assert unit_state(None, True) == Done(None)

    unit = Unit(id=1, project_id=1, number=3, claimed_by=4, is_done=False)
    assert unit.state == Claimed(4)
    assert state_fields(unit.state) == (4, False)
    assert state_fields(Done(None)) == (None, True)


def test_claim_only_from_open() -> None:
    assert transition(Open(), UnitAction.CLAIM, actor=5) == Claimed(5)

    with pytest.raises(Conflict):
        transition(Claimed(2), UnitAction.CLAIM, actor=5)
    with pytest.raises(Conflict):
        transition(Done(None), UnitAction.CLAIM, actor=5)


def test_unclaim_keeps_done_flag() -> None:
    assert transition(Claimed(2), UnitAction.UNCLAIM, actor=2) == Open()
    assert transition(Done(2), UnitAction.UNCLAIM, actor=2) == Done(None)
    assert transition(Open(), UnitAction.UNCLAIM, actor=2) == Open()


def test_mark_done_keeps_claimant_and_is_idempotent() -> None:
    assert transition(Claimed(2), UnitAction.MARK_DONE, actor=1) == Done(2)
    assert transition(Open(), UnitAction.MARK_DONE, actor=1) == Done(None)
    assert transition(Done(2), UnitAction.MARK_DONE, actor=1) == Done(2)


def test_reset_returns_to_open_from_anywhere() -> None:
    for s in (Open(), Claimed(3), Done(3), Done(None)):
        assert transition(s, UnitAction.RESET, actor=1) == Open()


def test_admin_action_parse_normalizes_input() -> None:
    assert AdminAction.parse("  Mark_Done ") is AdminAction.MARK_DONE
    assert AdminAction.parse("reset") is AdminAction.RESET
    assert AdminAction.parse("UNCLAIM") is AdminAction.UNCLAIM

    with pytest.raises(InvalidArgument):
        AdminAction.parse("delete")
    with pytest.raises(InvalidArgument):
        AdminAction.parse(None)
