# src/khatma/core/auth.py

from __future__ import annotations

import logging
from dataclasses import dataclass

from .ports import ProjectRepo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Session:
    """Per-connection login state (the console keeps one of these)."""

    user_id: int | None = None
    username: str | None = None

    def login(self, user_id: int, username: str) -> None:
        self.user_id = user_id
        self.username = username

    def logout(self) -> None:
        self.user_id = None
        self.username = None


class StoreIdentityGate:
    """IdentityGate backed by the project store's participant and admin records."""

    def __init__(self, repo: ProjectRepo) -> None:
        self._repo = repo

    def current_user(self, ctx: Session | None) -> int | None:
        if ctx is None:
            return None
        return ctx.user_id

    def is_participant(self, user_id: int, project_id: int) -> bool:
        return self._repo.is_participant(user_id, project_id)

    def is_admin(self, user_id: int, project_id: int) -> bool:
        project = self._repo.get_project(project_id)
        if project is None:
            logger.debug("is_admin on missing project_id=%s", project_id)
            return False
        return project.admin_id == user_id
