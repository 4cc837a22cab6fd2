# tests/fakes.py

from __future__ import annotations

import contextlib
import copy
from collections.abc import Iterator
from dataclasses import replace

from khatma.core.errors import Conflict
from khatma.core.models import Project, Unit, User


class FakeProjectRepo:
    """
    In-memory ProjectRepo used for pure service tests.

    transaction() snapshots all tables and restores them if the block raises,
    so atomicity assertions hold without SQLite.
    """

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.projects: dict[int, Project] = {}
        self.units: dict[int, Unit] = {}
        self.participants: set[tuple[int, int]] = set()
        self._next_id = 1
        self.fail_on: str | None = None

    def _id(self) -> int:
        n = self._next_id
        self._next_id += 1
        return n

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise RuntimeError(f"injected failure in {op}")

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = copy.deepcopy((self.users, self.projects, self.units, self.participants, self._next_id))
        try:
            yield None
        except BaseException:
            self.users, self.projects, self.units, self.participants, self._next_id = snapshot
            raise

    # projects
    def get_project(self, project_id: int) -> Project | None:
        return self.projects.get(project_id)

    def get_project_by_name(self, name: str) -> Project | None:
        return next((p for p in self.projects.values() if p.name == name), None)

    def get_project_by_invitation_code(self, code: str) -> Project | None:
        return next((p for p in self.projects.values() if p.invitation_code == code), None)

    def create_project(self, *, name: str, admin_id: int, invitation_code: str) -> int:
        if self.get_project_by_name(name) or self.get_project_by_invitation_code(invitation_code):
            raise Conflict("duplicate project")
        pid = self._id()
        self.projects[pid] = Project(pid, name, invitation_code, admin_id, False)
        return pid

    def update_project_completion(self, project_id: int, is_complete: bool) -> None:
        self.projects[project_id] = replace(self.projects[project_id], is_complete=is_complete)

    def rename_project(self, project_id: int, name: str) -> None:
        self.projects[project_id] = replace(self.projects[project_id], name=name)

    def list_projects_for_user(self, user_id: int) -> list[Project]:
        return [p for pid, p in sorted(self.projects.items()) if (user_id, pid) in self.participants]

    # units
    def add_units(self, project_id: int, count: int) -> None:
        self._maybe_fail("add_units")
        for n in range(1, count + 1):
            uid = self._id()
            self.units[uid] = Unit(uid, project_id, n, None, False)

    def get_unit(self, unit_id: int) -> Unit | None:
        return self.units.get(unit_id)

    def list_units(self, project_id: int) -> list[Unit]:
        return sorted((u for u in self.units.values() if u.project_id == project_id), key=lambda u: u.number)

    def cas_claim(self, unit_id: int, user_id: int) -> bool:
        u = self.units.get(unit_id)
        if u is None or u.claimed_by is not None or u.is_done:
            return False
        self.units[unit_id] = replace(u, claimed_by=user_id)
        return True

    def set_unit_claim(self, unit_id: int, user_id: int | None) -> None:
        self.units[unit_id] = replace(self.units[unit_id], claimed_by=user_id)

    def set_unit_done(self, unit_id: int, is_done: bool) -> None:
        self.units[unit_id] = replace(self.units[unit_id], is_done=is_done)

    def reset_unit(self, unit_id: int) -> None:
        self.units[unit_id] = replace(self.units[unit_id], claimed_by=None, is_done=False)

    # participants
    def add_participant(self, user_id: int, project_id: int) -> None:
        self._maybe_fail("add_participant")
        self.participants.add((user_id, project_id))

    def list_participants(self, project_id: int) -> list[int]:
        return sorted(u for u, p in self.participants if p == project_id)

    def is_participant(self, user_id: int, project_id: int) -> bool:
        return (user_id, project_id) in self.participants

    # users
    def create_user(self, username: str) -> int:
        if self.get_user_by_username(username):
            raise Conflict("duplicate user")
        uid = self._id()
        self.users[uid] = User(uid, username)
        return uid

    def get_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> User | None:
        return next((u for u in self.users.values() if u.username == username), None)


class FakeIdentityGate:
    """IdentityGate with a fixed current user; admin/participant answers come from the repo."""

    def __init__(self, repo: FakeProjectRepo, current: int | None = None) -> None:
        self.repo = repo
        self.current = current

    def current_user(self, ctx) -> int | None:
        return self.current

    def is_participant(self, user_id: int, project_id: int) -> bool:
        return self.repo.is_participant(user_id, project_id)

    def is_admin(self, user_id: int, project_id: int) -> bool:
        p = self.repo.get_project(project_id)
        return p is not None and p.admin_id == user_id
