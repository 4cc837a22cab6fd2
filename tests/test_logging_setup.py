# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from khatma.logging_setup import (
    ACTIVITY_FILE_NAME,
    LOG_FILE_NAME,
    _ActivityFilter,
    _KhatmaConsoleFilter,
    setup_logging,
)


def _record(name: str, level: int, msg: str = "m") -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)
    logging.captureWarnings(False)


def test_console_filter_routes_by_layer() -> None:
    f = _KhatmaConsoleFilter()

    assert f.filter(_record("khatma.cli.main", logging.INFO))
    assert f.filter(_record("khatma", logging.DEBUG))

    # store: retries are shown, schema notes are not
    assert f.filter(_record("khatma.storage.store", logging.WARNING))
    assert not f.filter(_record("khatma.storage.store", logging.INFO))

    # domain events and rejections stay off the console
    assert not f.filter(_record("khatma.core.service", logging.INFO))
    assert not f.filter(_record("khatma.core.service", logging.DEBUG))
    assert f.filter(_record("khatma.core.service", logging.ERROR))

    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert not f.filter(_record("urllib3", logging.WARNING))
    assert f.filter(_record("urllib3", logging.ERROR))
    assert not f.filter(_record("khatmaextra", logging.INFO))


def test_activity_filter_keeps_domain_events_only() -> None:
    f = _ActivityFilter()

    assert f.filter(_record("khatma.core.service", logging.INFO))
    assert not f.filter(_record("khatma.core.service", logging.DEBUG))
    assert not f.filter(_record("khatma.storage.store", logging.WARNING))
    assert not f.filter(_record("khatma.cli.console", logging.INFO))


def test_setup_logging_writes_log_and_activity_files(tmp_path: Path, restore_root_logging) -> None:
    setup_logging(log_dir=tmp_path / "logs", console_level=logging.CRITICAL)

    logging.getLogger("khatma.core.service").info("Juz' claimed unit=5 number=5 user=2")
    logging.getLogger("khatma.core.service").debug("Rejected claim: user=3 not in project=1")
    logging.getLogger("khatma.storage.store").warning("Store begin busy (attempt 1/3)")

    full = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
    activity = (tmp_path / "logs" / ACTIVITY_FILE_NAME).read_text(encoding="utf-8")

    assert "Juz' claimed" in full
    assert "Rejected claim" in full
    assert "busy" in full

    assert "Juz' claimed unit=5" in activity
    assert "Rejected" not in activity
    assert "busy" not in activity


def test_setup_logging_without_activity(tmp_path: Path, restore_root_logging) -> None:
    setup_logging(log_dir=tmp_path, activity=False)

    assert (tmp_path / LOG_FILE_NAME).exists()
    assert not (tmp_path / ACTIVITY_FILE_NAME).exists()
    file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
