# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from khatma.cli.bootstrap import AppState, create_initial_state
from khatma.core.auth import StoreIdentityGate
from khatma.core.models import User
from khatma.core.service import KhatmaService
from khatma.storage.store import ProjectStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="khatma-test",
        log_level="DEBUG",
        console_enabled=False,
        activity_log=False,
        data_dir=tmp_path,
        db_path=tmp_path / "khatma.sqlite3",
        db_timeout_seconds=5.0,
        store_retries=2,
        store_retry_delay_seconds=0.0,
        invitation_code_length=8,
        require_membership=False,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> ProjectStore:
    return ProjectStore(settings.db_path, timeout=settings.db_timeout_seconds, retries=0)


@pytest.fixture()
def service(store: ProjectStore) -> KhatmaService:
    return KhatmaService(store, StoreIdentityGate(store))


@pytest.fixture()
def users(service: KhatmaService) -> SimpleNamespace:
    """Three registered users: a (admin in most tests), b and c."""
    return SimpleNamespace(
        a=service.register_user("ahmad"),
        b=service.register_user("bilal"),
        c=service.register_user("cyra"),
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired exactly like the CLI does it.

    NOTE: We keep the real SQLite store here because its correctness is
    part of what we want to test.
    """
    return create_initial_state(settings=settings)


def assert_completion_invariant(store: ProjectStore, project_id: int) -> None:
    project = store.get_project(project_id)
    assert project is not None
    units = store.list_units(project_id)
    assert project.is_complete == all(u.is_done for u in units)


def login(state: AppState, user: User) -> None:
    state.session.login(user.id, user.username)
