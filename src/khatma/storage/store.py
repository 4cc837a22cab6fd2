# src/khatma/storage/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TypeVar

from ..core.errors import Conflict, StoreUnavailable
from ..core.models import Project, Unit, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        invitation_code TEXT NOT NULL UNIQUE,
        admin_id INTEGER NOT NULL REFERENCES users(id),
        is_complete INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS units (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL REFERENCES projects(id),
        number INTEGER NOT NULL,
        claimed_by INTEGER REFERENCES users(id),
        is_done INTEGER NOT NULL DEFAULT 0,
        UNIQUE(project_id, number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_participants (
        user_id INTEGER NOT NULL REFERENCES users(id),
        project_id INTEGER NOT NULL REFERENCES projects(id),
        UNIQUE(user_id, project_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_units_project ON units(project_id, number)",
    "CREATE INDEX IF NOT EXISTS idx_participants_user ON project_participants(user_id)",
)


def _is_transient(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


class ProjectStore:
    """
    SQLite project store.

    Thread-safety:
    - each standalone call opens its own SQLite connection
    - inside transaction() the calls of that thread share one connection,
      opened with BEGIN IMMEDIATE so the whole block is one write snapshot

    Transient lock errors on standalone calls are retried; anything left over
    is raised as StoreUnavailable. Unique-constraint violations become Conflict.
    """

    def __init__(
        self,
        db_path: str | Path = "khatma.sqlite3",
        *,
        timeout: float = 30.0,
        retries: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = float(timeout)
        self._retries = max(0, int(retries))
        self._retry_delay = max(0.0, float(retry_delay))
        self._local = threading.local()
        self._ensure_schema()
        logger.info("ProjectStore ready db=%s projects=%s", self._db_path, self.count_projects())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    def _active_conn(self) -> sqlite3.Connection | None:
        return getattr(self._local, "conn", None)

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            for stmt in _SCHEMA:
                conn.execute(stmt)
            conn.commit()
        finally:
            conn.close()

    def _run(self, op: str, fn: Callable[[sqlite3.Connection], T], *, conflict: str = "") -> T:
        """Run fn on the transaction connection, or on a fresh one with retries."""
        conn = self._active_conn()
        if conn is not None:
            try:
                return fn(conn)
            except sqlite3.IntegrityError as e:
                raise Conflict(conflict or f"{op}: constraint violated.") from e
            except sqlite3.Error as e:
                logger.error("Store %s failed inside transaction: %s", op, e)
                raise StoreUnavailable(f"Storage error during {op}.") from e

        attempt = 0
        while True:
            try:
                conn = self._get_conn()
                try:
                    result = fn(conn)
                    conn.commit()
                    return result
                finally:
                    conn.close()
            except sqlite3.IntegrityError as e:
                raise Conflict(conflict or f"{op}: constraint violated.") from e
            except sqlite3.OperationalError as e:
                if _is_transient(e) and attempt < self._retries:
                    attempt += 1
                    logger.warning("Store %s busy (attempt %d/%d): %s", op, attempt, self._retries, e)
                    time.sleep(self._retry_delay * attempt)
                    continue
                logger.error("Store %s failed: %s", op, e)
                raise StoreUnavailable(f"Storage error during {op}.") from e
            except sqlite3.Error as e:
                logger.error("Store %s failed: %s", op, e)
                raise StoreUnavailable(f"Storage error during {op}.") from e

    def _begin(self) -> sqlite3.Connection:
        attempt = 0
        while True:
            conn = self._get_conn()
            conn.isolation_level = None
            try:
                conn.execute("BEGIN IMMEDIATE")
                return conn
            except sqlite3.OperationalError as e:
                conn.close()
                if _is_transient(e) and attempt < self._retries:
                    attempt += 1
                    logger.warning("Store begin busy (attempt %d/%d): %s", attempt, self._retries, e)
                    time.sleep(self._retry_delay * attempt)
                    continue
                raise StoreUnavailable("Storage is busy; try again.") from e

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        All store calls made by this thread inside the block commit together
        or not at all. Nested blocks join the outermost one.
        """
        outer = self._active_conn()
        if outer is not None:
            yield outer
            return

        conn = self._begin()
        self._local.conn = conn
        try:
            yield conn
        except BaseException:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
            raise
        else:
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                with contextlib.suppress(sqlite3.Error):
                    conn.execute("ROLLBACK")
                raise StoreUnavailable("Storage error during commit.") from e
        finally:
            self._local.conn = None
            conn.close()

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=int(row["id"]),
            name=str(row["name"]),
            invitation_code=str(row["invitation_code"]),
            admin_id=int(row["admin_id"]),
            is_complete=bool(row["is_complete"]),
        )

    @staticmethod
    def _row_to_unit(row: sqlite3.Row) -> Unit:
        return Unit(
            id=int(row["id"]),
            project_id=int(row["project_id"]),
            number=int(row["number"]),
            claimed_by=int(row["claimed_by"]) if row["claimed_by"] is not None else None,
            is_done=bool(row["is_done"]),
        )

    def _fetch_project(self, op: str, sql: str, params: tuple) -> Project | None:
        def q(conn: sqlite3.Connection) -> Project | None:
            row = conn.execute(sql, params).fetchone()
            return self._row_to_project(row) if row else None

        return self._run(op, q)

    # ---- projects ----

    def count_projects(self) -> int:
        return self._run("count_projects", lambda c: int(c.execute("SELECT COUNT(*) FROM projects").fetchone()[0]))

    def get_project(self, project_id: int) -> Project | None:
        return self._fetch_project("get_project", "SELECT * FROM projects WHERE id = ?", (int(project_id),))

    def get_project_by_name(self, name: str) -> Project | None:
        return self._fetch_project("get_project_by_name", "SELECT * FROM projects WHERE name = ?", (name,))

    def get_project_by_invitation_code(self, code: str) -> Project | None:
        return self._fetch_project(
            "get_project_by_invitation_code",
            "SELECT * FROM projects WHERE invitation_code = ?",
            (code,),
        )

    def create_project(self, *, name: str, admin_id: int, invitation_code: str) -> int:
        def q(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                "INSERT INTO projects (name, invitation_code, admin_id) VALUES (?, ?, ?)",
                (name, invitation_code, int(admin_id)),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for projects insert")
            return int(rowid)

        project_id = self._run(
            "create_project",
            q,
            conflict="Khatima with this name or invitation code already exists.",
        )
        logger.debug("Project inserted id=%s name=%s admin=%s", project_id, name, admin_id)
        return project_id

    def update_project_completion(self, project_id: int, is_complete: bool) -> None:
        self._run(
            "update_project_completion",
            lambda c: c.execute(
                "UPDATE projects SET is_complete = ? WHERE id = ?",
                (1 if is_complete else 0, int(project_id)),
            ),
        )

    def rename_project(self, project_id: int, name: str) -> None:
        self._run(
            "rename_project",
            lambda c: c.execute("UPDATE projects SET name = ? WHERE id = ?", (name, int(project_id))),
            conflict="Khatima with this name already exists. Please choose another name.",
        )

    def list_projects_for_user(self, user_id: int) -> list[Project]:
        """Projects the user participates in (admins are participants too)."""

        def q(conn: sqlite3.Connection) -> list[Project]:
            rows = conn.execute(
                """
                SELECT p.*
                FROM projects p
                JOIN project_participants pp ON p.id = pp.project_id
                WHERE pp.user_id = ?
                ORDER BY p.id ASC
                """,
                (int(user_id),),
            ).fetchall()
            return [self._row_to_project(r) for r in rows]

        return self._run("list_projects_for_user", q)

    # ---- units ----

    def add_units(self, project_id: int, count: int) -> None:
        pid = int(project_id)
        self._run(
            "add_units",
            lambda c: c.executemany(
                "INSERT INTO units (project_id, number) VALUES (?, ?)",
                [(pid, n) for n in range(1, int(count) + 1)],
            ),
            conflict="Juz' numbers already exist for this Khatima.",
        )

    def get_unit(self, unit_id: int) -> Unit | None:
        def q(conn: sqlite3.Connection) -> Unit | None:
            row = conn.execute("SELECT * FROM units WHERE id = ?", (int(unit_id),)).fetchone()
            return self._row_to_unit(row) if row else None

        return self._run("get_unit", q)

    def list_units(self, project_id: int) -> list[Unit]:
        def q(conn: sqlite3.Connection) -> list[Unit]:
            rows = conn.execute(
                "SELECT * FROM units WHERE project_id = ? ORDER BY number ASC",
                (int(project_id),),
            ).fetchall()
            return [self._row_to_unit(r) for r in rows]

        return self._run("list_units", q)

    def cas_claim(self, unit_id: int, user_id: int) -> bool:
        """
        Atomically transitions an open unit to claimed:
          claimed_by IS NULL AND is_done = 0  ->  claimed_by = user_id

        Returns True if the row was claimed by this caller.
        """

        def q(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(
                """
                UPDATE units
                SET claimed_by = ?
                WHERE id = ?
                  AND claimed_by IS NULL
                  AND is_done = 0
                """,
                (int(user_id), int(unit_id)),
            )
            return cur.rowcount == 1

        return self._run("cas_claim", q)

    def set_unit_claim(self, unit_id: int, user_id: int | None) -> None:
        self._run(
            "set_unit_claim",
            lambda c: c.execute(
                "UPDATE units SET claimed_by = ? WHERE id = ?",
                (int(user_id) if user_id is not None else None, int(unit_id)),
            ),
        )

    def set_unit_done(self, unit_id: int, is_done: bool) -> None:
        self._run(
            "set_unit_done",
            lambda c: c.execute(
                "UPDATE units SET is_done = ? WHERE id = ?",
                (1 if is_done else 0, int(unit_id)),
            ),
        )

    def reset_unit(self, unit_id: int) -> None:
        self._run(
            "reset_unit",
            lambda c: c.execute(
                "UPDATE units SET claimed_by = NULL, is_done = 0 WHERE id = ?",
                (int(unit_id),),
            ),
        )

    # ---- participants ----

    def add_participant(self, user_id: int, project_id: int) -> None:
        self._run(
            "add_participant",
            lambda c: c.execute(
                "INSERT OR IGNORE INTO project_participants (user_id, project_id) VALUES (?, ?)",
                (int(user_id), int(project_id)),
            ),
        )

    def list_participants(self, project_id: int) -> list[int]:
        def q(conn: sqlite3.Connection) -> list[int]:
            rows = conn.execute(
                "SELECT user_id FROM project_participants WHERE project_id = ? ORDER BY user_id ASC",
                (int(project_id),),
            ).fetchall()
            return [int(r["user_id"]) for r in rows]

        return self._run("list_participants", q)

    def is_participant(self, user_id: int, project_id: int) -> bool:
        def q(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT 1 FROM project_participants WHERE user_id = ? AND project_id = ?",
                (int(user_id), int(project_id)),
            ).fetchone()
            return row is not None

        return self._run("is_participant", q)

    # ---- users ----

    def create_user(self, username: str) -> int:
        def q(conn: sqlite3.Connection) -> int:
            cur = conn.execute("INSERT INTO users (username) VALUES (?)", (username,))
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for users insert")
            return int(rowid)

        return self._run("create_user", q, conflict="This username is already taken. Choose another one.")

    def get_user(self, user_id: int) -> User | None:
        def q(conn: sqlite3.Connection) -> User | None:
            row = conn.execute("SELECT id, username FROM users WHERE id = ?", (int(user_id),)).fetchone()
            return User(id=int(row["id"]), username=str(row["username"])) if row else None

        return self._run("get_user", q)

    def get_user_by_username(self, username: str) -> User | None:
        def q(conn: sqlite3.Connection) -> User | None:
            row = conn.execute("SELECT id, username FROM users WHERE username = ?", (username,)).fetchone()
            return User(id=int(row["id"]), username=str(row["username"])) if row else None

        return self._run("get_user_by_username", q)
