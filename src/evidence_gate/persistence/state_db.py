"""
evidence-gate: verification outcome store

File: src/evidence_gate/persistence/state_db.py
Last updated: 2026-10-19

Purpose
- Own the SQLite file holding persisted verification outcomes: unit rows, task
  metrics and per-task session summaries.

Functional requirements
- Schema steps apply forward only and are fingerprinted; a store whose recorded
  fingerprint differs, or whose version is ahead of this build, is refused.
- Lock contention is retried a bounded number of times, then raised as ``StateDBBusyError``.
- A damaged store file raises ``StateDBCorruptionError`` instead of a generic failure.

Non-functional requirements
- Connections are opened per operation and run in WAL mode.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Literal, TypeVar

import structlog

from evidence_gate.constants import STATE_DB_SCHEMA_VERSION

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None
T = TypeVar("T")

logger = structlog.get_logger(__name__)

_SCHEMA_VERSIONS_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY CHECK (version > 0),
    name TEXT NOT NULL,
    checksum TEXT NOT NULL CHECK (length(checksum) = 64),
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True, slots=True)
class _SchemaStep:
    version: int
    name: str
    statements: tuple[str, ...]

    @property
    def fingerprint(self) -> str:
        digest = hashlib.sha256(f"{self.version}:{self.name}\n".encode())
        for statement in self.statements:
            lines = (line.rstrip() for line in statement.strip().splitlines())
            digest.update("\n".join(lines).encode("utf-8") + b"\n--\n")
        return digest.hexdigest()


_SCHEMA_STEPS: Final[tuple[_SchemaStep, ...]] = (
    _SchemaStep(
        1,
        "units_and_task_metrics",
        (
            _SCHEMA_VERSIONS_SQL,
            """
            CREATE TABLE IF NOT EXISTS units (
                task_id TEXT NOT NULL,
                unit_id TEXT NOT NULL,
                unit_type TEXT NOT NULL,
                claimed INTEGER NOT NULL CHECK (claimed IN (0, 1)),
                verified INTEGER NOT NULL CHECK (verified IN (0, 1)),
                reason TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (task_id, unit_id)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS task_metrics (
                task_id TEXT NOT NULL,
                k TEXT NOT NULL,
                v REAL NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (task_id, k, created_at)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_units_task_verified ON units(task_id, verified)",
            """
            CREATE INDEX IF NOT EXISTS idx_task_metrics_key_created
            ON task_metrics(task_id, k, created_at DESC)
            """,
        ),
    ),
    _SchemaStep(
        2,
        "task_sessions",
        (
            """
            CREATE TABLE IF NOT EXISTS sessions (
                task_id TEXT PRIMARY KEY,
                task_type TEXT NOT NULL,
                profile TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('fail','inconclusive','pass')),
                gate_type TEXT,
                reasons_json TEXT NOT NULL,
                checks_total INTEGER NOT NULL CHECK (checks_total >= 0),
                checks_failed INTEGER NOT NULL CHECK (checks_failed >= 0),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_sessions_status_updated
            ON sessions(status, updated_at DESC)
            """,
        ),
    ),
)

# Primary result codes; extended codes are masked down before lookup.
_BUSY_CODES: Final[frozenset[int]] = frozenset({sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED})
_CORRUPT_CODES: Final[frozenset[int]] = frozenset({sqlite3.SQLITE_CORRUPT, sqlite3.SQLITE_NOTADB})
_BUSY_MESSAGES: Final[tuple[str, ...]] = ("database is locked", "database table is locked")
_CORRUPT_MESSAGES: Final[tuple[str, ...]] = ("disk image is malformed", "file is not a database")

_ErrorKind = Literal["busy", "corrupt"]


class StateDBError(RuntimeError):
    """Base class for outcome store failures."""


class StateDBBusyError(StateDBError):
    """The store stayed locked through every retry."""


class StateDBMigrationError(StateDBError):
    """The on-disk schema cannot be reconciled with this build."""


class StateDBCorruptionError(StateDBError):
    """SQLite reported the store file as damaged."""


class StateDB:
    """SQLite outcome store: schema steps, transactions and busy retries."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = 5_000,
        busy_retry_limit: int = 4,
        busy_retry_backoff_ms: int = 25,
    ) -> None:
        for name, value in (
            ("busy_timeout_ms", busy_timeout_ms),
            ("busy_retry_limit", busy_retry_limit),
            ("busy_retry_backoff_ms", busy_retry_backoff_ms),
        ):
            if value < 0:
                raise ValueError(f"{name} must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        self._savepoints = 0
        self._migrated = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        try:
            conn.row_factory = sqlite3.Row
            self._run(lambda: self._configure(conn), operation="open store")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> Iterator[sqlite3.Connection]:
        """Run statements atomically; nested use on one connection becomes a savepoint."""

        if conn is None:
            with self.connection() as owned, self.transaction(conn=owned) as txn:
                yield txn
            return

        if conn.in_transaction:
            self._savepoints += 1
            name = f"sp_{self._savepoints}"
            self._execute(conn, f"SAVEPOINT {name}", operation="savepoint")
            try:
                yield conn
            except Exception:
                self._execute(conn, f"ROLLBACK TO SAVEPOINT {name}", operation="rollback")
                self._execute(conn, f"RELEASE SAVEPOINT {name}", operation="release")
                raise
            self._execute(conn, f"RELEASE SAVEPOINT {name}", operation="release")
            return

        self._execute(conn, "BEGIN IMMEDIATE", operation="begin")
        try:
            yield conn
        except Exception:
            self._execute(conn, "ROLLBACK", operation="rollback")
            raise
        self._execute(conn, "COMMIT", operation="commit")

    def migrate(self) -> int:
        """Apply pending schema steps and return the resulting schema version."""

        with self.connection() as conn:
            self._execute(conn, _SCHEMA_VERSIONS_SQL, operation="create schema_versions")
            recorded = self._recorded_fingerprints(conn)
            newest = max(recorded, default=0)
            if newest > STATE_DB_SCHEMA_VERSION:
                raise StateDBMigrationError(
                    "database schema is newer than supported "
                    f"(db={newest}, code={STATE_DB_SCHEMA_VERSION})"
                )
            for step in _SCHEMA_STEPS:
                fingerprint = recorded.get(step.version)
                if fingerprint is None:
                    self._apply(conn, step)
                elif fingerprint != step.fingerprint:
                    raise StateDBMigrationError(
                        f"migration checksum mismatch for version {step.version}: "
                        f"db={fingerprint} code={step.fingerprint}"
                    )
            self._migrated = True
            row = self._execute(
                conn,
                "SELECT COALESCE(MAX(version), 0) FROM schema_versions",
                operation="read schema version",
            ).fetchone()
            return int(row[0])

    def ensure_schema(self) -> None:
        if not self._migrated:
            self.migrate()

    def execute(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Execute one write statement and return the affected row count."""

        with self._writer(conn) as target:
            return self._execute(target, sql, params, operation="execute statement").rowcount

    def executemany(
        self,
        sql: str,
        params_iter: Iterable[SQLParams],
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        rows = [tuple(params) for params in params_iter]
        with self._writer(conn) as target:
            cursor = self._run(lambda: target.executemany(sql, rows), operation="execute many")
            return cursor.rowcount

    def query_all(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, RowValue]]:
        with self._reader(conn) as target:
            cursor = self._execute(target, sql, params, operation="query all")
            return [_row_dict(row) for row in cursor.fetchall()]

    def query_one(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, RowValue] | None:
        with self._reader(conn) as target:
            row = self._execute(target, sql, params, operation="query one").fetchone()
            return None if row is None else _row_dict(row)

    @contextmanager
    def _writer(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self.transaction() as owned:
            yield owned

    @contextmanager
    def _reader(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self.connection() as owned:
            yield owned

    def _configure(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
        row = conn.execute("PRAGMA journal_mode=WAL").fetchone()
        mode = "" if row is None else str(row[0]).lower()
        if mode != "wal":
            raise StateDBError(f"journal_mode must be WAL, got {mode!r}")

    def _apply(self, conn: sqlite3.Connection, step: _SchemaStep) -> None:
        operation = f"apply migration {step.version}"
        with self.transaction(conn=conn) as txn:
            for statement in step.statements:
                self._execute(txn, statement, operation=operation)
            self._execute(
                txn,
                "INSERT INTO schema_versions (version, name, checksum, applied_at) "
                "VALUES (?, ?, ?, ?)",
                (step.version, step.name, step.fingerprint, utc_now_iso()),
                operation=operation,
            )
        logger.info("state_db_migration_applied", path=str(self._path), version=step.version)

    def _recorded_fingerprints(self, conn: sqlite3.Connection) -> dict[int, str]:
        cursor = self._execute(
            conn,
            "SELECT version, checksum FROM schema_versions ORDER BY version",
            operation="load schema_versions",
        )
        recorded: dict[int, str] = {}
        for version, checksum in cursor.fetchall():
            if not isinstance(version, int) or not isinstance(checksum, str):
                raise StateDBMigrationError(f"schema_versions row {version!r} is malformed")
            recorded[version] = checksum
        return recorded

    def _execute(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams = (),
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        return self._run(lambda: conn.execute(sql, tuple(params)), operation=operation)

    def _run(self, action: Callable[[], T], *, operation: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return action()
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                kind = _error_kind(exc)
                if kind == "busy" and attempt <= self._busy_retry_limit:
                    logger.debug("state_db_busy_retry", operation=operation, attempt=attempt)
                    time.sleep(self._busy_retry_backoff_ms / 1000.0 * 2 ** (attempt - 1))
                    continue
                raise self._translate(exc, kind, operation=operation, attempts=attempt) from exc

    def _translate(
        self,
        exc: sqlite3.Error,
        kind: _ErrorKind | None,
        *,
        operation: str,
        attempts: int,
    ) -> StateDBError:
        if kind == "corrupt":
            return StateDBCorruptionError(
                f"{operation} failed for {self._path}: {exc}; the store file is damaged, "
                "restore a copy or remove it to start a fresh store"
            )
        if kind == "busy":
            return StateDBBusyError(
                f"{operation} found {self._path} locked after {attempts} attempt(s): {exc}"
            )
        return StateDBError(f"{operation} failed for {self._path}: {exc}")


def _error_kind(exc: sqlite3.Error) -> _ErrorKind | None:
    code = getattr(exc, "sqlite_errorcode", None)
    primary = code & 0xFF if isinstance(code, int) else None
    message = str(exc).lower()
    if primary in _BUSY_CODES or any(item in message for item in _BUSY_MESSAGES):
        return "busy"
    if primary in _CORRUPT_CODES or any(item in message for item in _CORRUPT_MESSAGES):
        return "corrupt"
    return None


def _row_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    return {str(key): row[key] for key in row.keys()}


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def canonical_json(value: object) -> str:
    """Deterministic JSON for persisted payload columns."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "RowValue",
    "SQLParams",
    "SQLValue",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
    "canonical_json",
    "utc_now_iso",
]
