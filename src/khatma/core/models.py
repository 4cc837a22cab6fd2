# src/khatma/core/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from .errors import Conflict, InvalidArgument

UNITS_PER_PROJECT = 30
DEFAULT_PROJECT_NAME = "Untitled Khatima"


@dataclass(frozen=True, slots=True)
class Project:
    id: int
    name: str
    invitation_code: str
    admin_id: int
    is_complete: bool


@dataclass(frozen=True, slots=True)
class Unit:
    """One Juz' of a project."""

    id: int
    project_id: int
    number: int
    claimed_by: int | None
    is_done: bool

    @property
    def state(self) -> UnitState:
        return unit_state(self.claimed_by, self.is_done)


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str


# ---- tagged unit state ----


@dataclass(frozen=True, slots=True)
class Open:
    pass


@dataclass(frozen=True, slots=True)
class Claimed:
    by: int


@dataclass(frozen=True, slots=True)
class Done:
    by: int | None = None


UnitState = Open | Claimed | Done


class UnitAction(StrEnum):
    CLAIM = "claim"
    UNCLAIM = "unclaim"
    MARK_DONE = "mark_done"
    RESET = "reset"


class AdminAction(StrEnum):
    UNCLAIM = "unclaim"
    MARK_DONE = "mark_done"
    RESET = "reset"

    @classmethod
    def parse(cls, raw: str | None) -> AdminAction:
        s = (raw or "").strip().lower()
        try:
            return cls(s)
        except ValueError:
            raise InvalidArgument(f"Invalid admin action: {raw!r}.") from None


def unit_state(claimed_by: int | None, is_done: bool) -> UnitState:
    if is_done:
        return Done(claimed_by)
    if claimed_by is not None:
        return Claimed(claimed_by)
    return Open()


def state_fields(state: UnitState) -> tuple[int | None, bool]:
    """Inverse of unit_state: (claimed_by, is_done) as stored."""
    if isinstance(state, Done):
        return state.by, True
    if isinstance(state, Claimed):
        return state.by, False
    return None, False


def transition(state: UnitState, action: UnitAction, *, actor: int) -> UnitState:
    """
    Next state of a unit. Total over every (state, action) pair: either a new
    state or Conflict. Who is allowed to request the action is checked by the
    caller, not here.

    unclaim keeps the done flag: Done(b) -> Done(None).
    """
    if action is UnitAction.CLAIM:
        if isinstance(state, Open):
            return Claimed(actor)
        if isinstance(state, Claimed):
            raise Conflict("Juz' already claimed.")
        raise Conflict("Juz' already finished.")

    if action is UnitAction.UNCLAIM:
        if isinstance(state, Done):
            return Done(None)
        return Open()

    if action is UnitAction.MARK_DONE:
        if isinstance(state, Open):
            return Done(None)
        if isinstance(state, Claimed):
            return Done(state.by)
        return state

    if action is UnitAction.RESET:
        return Open()

    raise InvalidArgument(f"Unknown unit action: {action!r}.")


# ---- read models ----


@dataclass(frozen=True, slots=True)
class UnitView:
    unit: Unit
    claimed_by_username: str | None = None


@dataclass(frozen=True, slots=True)
class ProjectView:
    project: Project
    units: list[UnitView]
    participant_count: int

    @property
    def done_count(self) -> int:
        return sum(1 for u in self.units if u.unit.is_done)


@dataclass(slots=True)
class Dashboard:
    username: str
    owned: list[Project] = field(default_factory=list)
    joined: list[Project] = field(default_factory=list)
    finished: list[Project] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UnitChange:
    """Result of a unit command: the unit and its project after the write."""

    unit: Unit
    project: Project
