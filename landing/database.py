"""SQLite-backed persistence gateway for sign-ups and staff accounts."""
from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar

from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import PoolProxiedConnection, QueuePool

from .errors import DatabaseError

logger = logging.getLogger("landing.database")

T = TypeVar("T")

Parameters = Sequence[object]

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'inactive', 'banned')),
    source TEXT NOT NULL DEFAULT 'landing_page',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    subscription_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'confirmed')),
    confirmed_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS system_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    action TEXT NOT NULL,
    user_id TEXT REFERENCES users(id) ON DELETE CASCADE,
    details TEXT,
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS admins (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'admin',
    last_login TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
CREATE INDEX IF NOT EXISTS idx_users_status ON users(status);
CREATE INDEX IF NOT EXISTS idx_subscriptions_user_id ON subscriptions(user_id);
CREATE INDEX IF NOT EXISTS idx_system_logs_user_id ON system_logs(user_id);
"""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(str(value))


def _run(conn: PoolProxiedConnection, statement: str, parameters: Parameters) -> List[sqlite3.Row]:
    start = time.perf_counter()
    try:
        cursor = conn.execute(statement, tuple(parameters))
        rows = cursor.fetchall()
    except sqlite3.IntegrityError as exc:
        logger.error("Constraint violation executing %s: %s", " ".join(statement.split()), exc)
        raise DatabaseError(str(exc), integrity=True) from exc
    except sqlite3.Error as exc:
        logger.error("Database error executing %s: %s", " ".join(statement.split()), exc)
        raise DatabaseError(str(exc)) from exc
    logger.debug(
        "Query finished in %.1fms: %s",
        (time.perf_counter() - start) * 1000,
        " ".join(statement.split()),
    )
    return rows


class Transaction:
    """Connection handle bound to one open transaction."""

    def __init__(self, conn: PoolProxiedConnection) -> None:
        self._conn = conn

    def execute(self, statement: str, parameters: Parameters = ()) -> List[sqlite3.Row]:
        return _run(self._conn, statement, parameters)


class Database:
    """Execute statements and transactions against a pooled SQLite database.

    Connections come from a SQLAlchemy :class:`QueuePool` holding at most
    ``max_connections`` connections. A checkout waits at most
    ``acquire_timeout`` seconds and then fails with :class:`DatabaseError`.
    Connections older than ``idle_timeout`` seconds are replaced on checkout.
    """

    def __init__(
        self,
        path: Path,
        *,
        max_connections: int = 20,
        idle_timeout: float = 30.0,
        acquire_timeout: float = 2.0,
    ) -> None:
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        _ensure_directory(path)
        self._path = path
        self._acquire_timeout = acquire_timeout
        self._closed = False
        self._pool = QueuePool(
            self._connect,
            pool_size=max_connections,
            max_overflow=0,
            timeout=acquire_timeout,
            recycle=idle_timeout if idle_timeout > 0 else -1,
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def pool(self) -> QueuePool:
        return self._pool

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            timeout=max(self._acquire_timeout, 1.0),
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[PoolProxiedConnection]:
        """Check a connection out of the pool and return it afterwards."""

        if self._closed:
            raise DatabaseError("Database is closed")
        try:
            conn = self._pool.connect()
        except PoolTimeoutError as exc:
            raise DatabaseError(
                f"Timed out after {self._acquire_timeout:g}s waiting for a database connection"
            ) from exc
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.connection() as conn:
            try:
                conn.executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

    def ping(self) -> None:
        self.execute("SELECT 1")

    def execute(self, statement: str, parameters: Parameters = ()) -> List[sqlite3.Row]:
        """Run a single statement outside of any explicit transaction."""

        with self.connection() as conn:
            return _run(conn, statement, parameters)

    def run_transaction(self, body: Callable[[Transaction], T]) -> T:
        """Run ``body`` inside ``BEGIN``/``COMMIT``, rolling back on any error."""

        with self.connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

            try:
                result = body(Transaction(conn))
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    raise DatabaseError(str(exc)) from exc
            except BaseException:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_exc:  # pragma: no cover - connection already unusable
                    logger.error("Rollback failed: %s", rollback_exc)
                raise
            return result

    def close(self) -> None:
        self._closed = True
        self._pool.dispose()


__all__ = [
    "Database",
    "Transaction",
    "current_timestamp",
    "parse_datetime",
    "serialize_datetime",
]
