# src/khatma/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage and identity swappable and makes testing easier.
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol

from .models import Project, Unit, User


class ProjectRepo(Protocol):
    # Transactions: every call made inside the block commits or rolls back together.
    def transaction(self) -> AbstractContextManager[Any]: ...

    # Projects
    def get_project(self, project_id: int) -> Project | None: ...
    def get_project_by_name(self, name: str) -> Project | None: ...
    def get_project_by_invitation_code(self, code: str) -> Project | None: ...
    def create_project(self, *, name: str, admin_id: int, invitation_code: str) -> int: ...
    def update_project_completion(self, project_id: int, is_complete: bool) -> None: ...
    def rename_project(self, project_id: int, name: str) -> None: ...
    def list_projects_for_user(self, user_id: int) -> list[Project]: ...

    # Units
    def add_units(self, project_id: int, count: int) -> None: ...
    def get_unit(self, unit_id: int) -> Unit | None: ...
    def list_units(self, project_id: int) -> list[Unit]: ...
    def cas_claim(self, unit_id: int, user_id: int) -> bool: ...
    def set_unit_claim(self, unit_id: int, user_id: int | None) -> None: ...
    def set_unit_done(self, unit_id: int, is_done: bool) -> None: ...
    def reset_unit(self, unit_id: int) -> None: ...

    # Participants
    def add_participant(self, user_id: int, project_id: int) -> None: ...
    def list_participants(self, project_id: int) -> list[int]: ...
    def is_participant(self, user_id: int, project_id: int) -> bool: ...

    # Users (identity reference only)
    def create_user(self, username: str) -> int: ...
    def get_user(self, user_id: int) -> User | None: ...
    def get_user_by_username(self, username: str) -> User | None: ...


class IdentityGate(Protocol):
    """
    Identity decisions consumed by the core.

    The core never manages sessions; it only asks who the caller is and
    what they are to a project.
    """

    def current_user(self, ctx: Any) -> int | None: ...
    def is_participant(self, user_id: int, project_id: int) -> bool: ...
    def is_admin(self, user_id: int, project_id: int) -> bool: ...
