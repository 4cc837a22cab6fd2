# src/khatma/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete store and identity gate into the service and AppState.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from ..config import get_settings
from ..core.auth import Session, StoreIdentityGate
from ..core.service import KhatmaService, make_invitation_code_factory
from ..storage.store import ProjectStore

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    store: ProjectStore
    gate: StoreIdentityGate
    service: KhatmaService

    session: Session = field(default_factory=Session)
    lock: threading.Lock = field(default_factory=threading.Lock)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = ProjectStore(
        settings.db_path,
        timeout=settings.db_timeout_seconds,
        retries=settings.store_retries,
        retry_delay=settings.store_retry_delay_seconds,
    )
    gate = StoreIdentityGate(store)
    service = KhatmaService(
        store,
        gate,
        code_factory=make_invitation_code_factory(settings.invitation_code_length),
        require_membership=settings.require_membership,
    )
    logger.debug("State wired db=%s require_membership=%s", settings.db_path, settings.require_membership)
    return AppState(settings=settings, store=store, gate=gate, service=service)
