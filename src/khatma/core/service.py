# src/khatma/core/service.py

"""
Khatima project operations: the unit claim/completion state machine plus
project creation, joining and renaming.

Every mutation runs inside one store transaction, so the authorization read,
the write and the completion recount see a single consistent snapshot.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from .errors import Conflict, Forbidden, InvalidArgument, NotFound
from .models import (
    DEFAULT_PROJECT_NAME,
    UNITS_PER_PROJECT,
    AdminAction,
    Dashboard,
    Project,
    ProjectView,
    Unit,
    UnitAction,
    UnitChange,
    UnitView,
    User,
    state_fields,
    transition,
)
from .ports import IdentityGate, ProjectRepo

logger = logging.getLogger(__name__)

InvitationCodeFactory = Callable[[], str]

_CODE_ATTEMPTS = 5


def make_invitation_code_factory(length: int = 8) -> InvitationCodeFactory:
    def _factory() -> str:
        return uuid.uuid4().hex[:length]

    return _factory


class KhatmaService:
    def __init__(
        self,
        repo: ProjectRepo,
        gate: IdentityGate,
        *,
        code_factory: InvitationCodeFactory | None = None,
        require_membership: bool = False,
    ) -> None:
        self._repo = repo
        self._gate = gate
        self._new_code = code_factory or make_invitation_code_factory()
        self._require_membership = require_membership

    # ---- identity ----

    def resolve_caller(self, ctx: Any) -> int:
        user_id = self._gate.current_user(ctx)
        if user_id is None:
            raise Forbidden("Not logged in. Use /login first.")
        return user_id

    def register_user(self, username: str) -> User:
        name = (username or "").strip()
        if not name:
            raise InvalidArgument("Username is required.")
        with self._repo.transaction():
            if self._repo.get_user_by_username(name) is not None:
                raise Conflict("This username is already taken. Choose another one.")
            user_id = self._repo.create_user(name)
        logger.info("User registered id=%s username=%s", user_id, name)
        return User(id=user_id, username=name)

    def find_user(self, username: str) -> User:
        user = self._repo.get_user_by_username((username or "").strip())
        if user is None:
            raise NotFound("User not found.")
        return user

    # ---- helpers ----

    def _load_unit(self, unit_id: int) -> tuple[Unit, Project]:
        unit = self._repo.get_unit(unit_id)
        if unit is None:
            raise NotFound("Juz' not found.")
        project = self._repo.get_project(unit.project_id)
        if project is None:
            raise NotFound("Khatima not found.")
        return unit, project

    def _load_project(self, project_id: int) -> Project:
        project = self._repo.get_project(project_id)
        if project is None:
            raise NotFound("Khatima not found.")
        return project

    def _require_user(self, caller: int) -> User:
        user = self._repo.get_user(caller)
        if user is None:
            logger.debug("Rejected: unknown user=%s", caller)
            raise NotFound("User not found.")
        return user

    def _require_admin(self, caller: int, project: Project, what: str) -> None:
        if not self._gate.is_admin(caller, project.id):
            logger.debug("Rejected %s: user=%s is not admin of project=%s", what, caller, project.id)
            raise Forbidden(f"Not authorized to {what}.")

    def _refresh_completion(self, project_id: int) -> Project:
        """
        Recount completion from the full unit set and persist it only if it changed.
        Must be called inside the transaction that changed is_done.
        """
        units = self._repo.list_units(project_id)
        complete = bool(units) and all(u.is_done for u in units)
        project = self._load_project(project_id)
        if project.is_complete != complete:
            self._repo.update_project_completion(project_id, complete)
            logger.info("Khatima id=%s is_complete -> %s", project_id, complete)
            project = self._load_project(project_id)
        return project

    def _apply(self, unit: Unit, action: UnitAction, caller: int) -> None:
        """Persist the next state of a unit (every action except claim)."""
        claimed_by, is_done = state_fields(transition(unit.state, action, actor=caller))
        if action is UnitAction.RESET:
            self._repo.reset_unit(unit.id)
            return
        if claimed_by != unit.claimed_by:
            self._repo.set_unit_claim(unit.id, claimed_by)
        if is_done != unit.is_done:
            self._repo.set_unit_done(unit.id, is_done)

    def _reload(self, unit_id: int) -> UnitChange:
        unit, project = self._load_unit(unit_id)
        return UnitChange(unit=unit, project=project)

    # ---- unit commands ----

    def claim(self, unit_id: int, caller: int) -> UnitChange:
        with self._repo.transaction():
            unit, project = self._load_unit(unit_id)
            self._require_user(caller)
            if self._require_membership and not self._gate.is_participant(caller, project.id):
                logger.debug("Rejected claim: user=%s not in project=%s", caller, project.id)
                raise Forbidden("Join this Khatima before claiming a juz'.")

            # Raises Conflict unless the unit is Open.
            transition(unit.state, UnitAction.CLAIM, actor=caller)

            if not self._repo.cas_claim(unit.id, caller):
                logger.debug("Claim race lost unit=%s user=%s", unit.id, caller)
                raise Conflict("Juz' already claimed or finished.")

            logger.info("Juz' claimed unit=%s number=%s user=%s", unit.id, unit.number, caller)
            return self._reload(unit.id)

    def unclaim(self, unit_id: int, caller: int) -> UnitChange:
        with self._repo.transaction():
            unit, _project = self._load_unit(unit_id)
            if unit.claimed_by is None or unit.claimed_by != caller:
                logger.debug("Rejected unclaim unit=%s user=%s owner=%s", unit.id, caller, unit.claimed_by)
                raise Forbidden("Not authorized to unclaim this juz'.")

            self._apply(unit, UnitAction.UNCLAIM, caller)
            logger.info("Juz' unclaimed unit=%s user=%s", unit.id, caller)
            return self._reload(unit.id)

    def mark_done(self, unit_id: int, caller: int) -> UnitChange:
        with self._repo.transaction():
            unit, project = self._load_unit(unit_id)
            is_claimant = unit.claimed_by is not None and unit.claimed_by == caller
            if not is_claimant and not self._gate.is_admin(caller, project.id):
                logger.debug("Rejected mark_done unit=%s user=%s", unit.id, caller)
                raise Forbidden("Not authorized to mark this juz' as done.")

            self._apply(unit, UnitAction.MARK_DONE, caller)
            project = self._refresh_completion(project.id)
            logger.info("Juz' done unit=%s number=%s by=%s", unit.id, unit.number, caller)
            return UnitChange(unit=self._load_unit(unit.id)[0], project=project)

    def admin_override(self, unit_id: int, caller: int, action: str | AdminAction) -> UnitChange:
        act = action if isinstance(action, AdminAction) else AdminAction.parse(action)

        with self._repo.transaction():
            unit, project = self._load_unit(unit_id)
            self._require_admin(caller, project, "use admin override")

            if act is AdminAction.UNCLAIM:
                self._apply(unit, UnitAction.UNCLAIM, caller)
            elif act is AdminAction.MARK_DONE:
                self._apply(unit, UnitAction.MARK_DONE, caller)
                project = self._refresh_completion(project.id)
            else:
                self._apply(unit, UnitAction.RESET, caller)
                project = self._refresh_completion(project.id)

            logger.info("Admin override %s unit=%s by=%s", act.value, unit.id, caller)
            return UnitChange(unit=self._load_unit(unit.id)[0], project=project)

    # ---- project commands ----

    def create_project(self, caller: int, name: str | None) -> Project:
        """
        Create a Khatima with UNITS_PER_PROJECT open units and the caller as
        admin and first participant. All of it is visible, or none of it.
        """
        title = (name or "").strip() or DEFAULT_PROJECT_NAME

        with self._repo.transaction():
            self._require_user(caller)
            if self._repo.get_project_by_name(title) is not None:
                raise Conflict("Khatima with this name already exists. Please choose another name.")

            code = None
            for _ in range(_CODE_ATTEMPTS):
                candidate = self._new_code()
                if candidate and self._repo.get_project_by_invitation_code(candidate) is None:
                    code = candidate
                    break
            if code is None:
                raise Conflict("Could not generate a unique invitation code.")

            project_id = self._repo.create_project(name=title, admin_id=caller, invitation_code=code)
            self._repo.add_units(project_id, UNITS_PER_PROJECT)
            self._repo.add_participant(caller, project_id)
            project = self._load_project(project_id)

        logger.info("Khatima created id=%s name=%s admin=%s", project.id, project.name, caller)
        return project

    def join_project(self, caller: int, invitation_code: str) -> Project:
        code = (invitation_code or "").strip()
        with self._repo.transaction():
            self._require_user(caller)
            project = self._repo.get_project_by_invitation_code(code) if code else None
            if project is None:
                raise NotFound("Invalid invitation code.")
            self._repo.add_participant(caller, project.id)
        logger.info("User %s joined Khatima id=%s", caller, project.id)
        return project

    def rename_project(self, project_id: int, caller: int, new_name: str) -> Project:
        title = (new_name or "").strip()
        if not title:
            raise InvalidArgument("New name is required.")

        with self._repo.transaction():
            project = self._load_project(project_id)
            self._require_admin(caller, project, "rename this Khatima")
            if title == project.name:
                return project

            other = self._repo.get_project_by_name(title)
            if other is not None and other.id != project.id:
                raise Conflict("Khatima with this name already exists. Please choose another name.")

            self._repo.rename_project(project.id, title)
            renamed = self._load_project(project.id)

        logger.info("Khatima renamed id=%s %r -> %r", project.id, project.name, title)
        return renamed

    # ---- read models ----

    def project_view(self, project_id: int, caller: int) -> ProjectView:
        project = self._load_project(project_id)
        if self._require_membership and not self._gate.is_participant(caller, project.id):
            raise Forbidden("You are not a participant of this Khatima.")

        names: dict[int, str | None] = {}
        views: list[UnitView] = []
        for unit in self._repo.list_units(project.id):
            username = None
            if unit.claimed_by is not None:
                if unit.claimed_by not in names:
                    user = self._repo.get_user(unit.claimed_by)
                    names[unit.claimed_by] = user.username if user else None
                username = names[unit.claimed_by]
            views.append(UnitView(unit=unit, claimed_by_username=username))

        return ProjectView(
            project=project,
            units=views,
            participant_count=len(self._repo.list_participants(project.id)),
        )

    def dashboard(self, caller: int) -> Dashboard:
        user = self._require_user(caller)

        dash = Dashboard(username=user.username)
        for project in self._repo.list_projects_for_user(caller):
            if project.is_complete:
                dash.finished.append(project)
            elif project.admin_id == caller:
                dash.owned.append(project)
            else:
                dash.joined.append(project)
        return dash
