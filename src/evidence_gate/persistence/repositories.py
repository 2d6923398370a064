"""
evidence-gate: outcome repositories

File: src/evidence_gate/persistence/repositories.py
Last updated: 2026-10-18

Purpose
- Repository/DAO layer for per-unit results, task metrics and task session summaries.

Functional requirements
- Units upsert by ``(task_id, unit_id)``; a re-run for the same task replaces prior rows.
- Metrics are append-only; reads resolve the latest value per key.
- Session summaries keep one row per task, preserving the first ``created_at``.

Non-functional requirements
- Every write accepts an optional connection so callers can group writes in one transaction.
- Page sizes are bounded.
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING, Final

from evidence_gate.domain.models import (
    MetricRecord,
    SessionSummary,
    UnitRecord,
    VerdictStatus,
)
from evidence_gate.persistence.state_db import RowValue, StateDB, canonical_json, utc_now_iso

if TYPE_CHECKING:
    import sqlite3

_MAX_PAGE_SIZE: Final[int] = 1_000


class _BaseRepo:
    def __init__(self, db: StateDB) -> None:
        self._db = db
        self._db.ensure_schema()

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0 or limit > _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {_MAX_PAGE_SIZE}]")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class UnitRepo(_BaseRepo):
    """Per-unit verification results keyed by ``(task_id, unit_id)``."""

    def upsert_many(
        self,
        records: Sequence[UnitRecord],
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        if not records:
            return 0
        created_at = utc_now_iso()
        rows = [
            (
                _require_text(record.task_id, "unit.task_id"),
                _require_text(record.unit_id, "unit.unit_id"),
                record.unit_type,
                1 if record.claimed else 0,
                1 if record.verified else 0,
                record.reason,
                created_at,
            )
            for record in records
        ]
        self._db.executemany(
            """
            INSERT INTO units (task_id, unit_id, unit_type, claimed, verified, reason, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(task_id, unit_id) DO UPDATE SET
                unit_type=excluded.unit_type,
                claimed=excluded.claimed,
                verified=excluded.verified,
                reason=excluded.reason,
                created_at=excluded.created_at
            """,
            rows,
            conn=conn,
        )
        return len(rows)

    def list_for_task(self, task_id: str) -> list[UnitRecord]:
        rows = self._db.query_all(
            """
            SELECT task_id, unit_id, unit_type, claimed, verified, reason
            FROM units
            WHERE task_id = ?
            ORDER BY unit_id ASC
            """,
            (task_id,),
        )
        return [
            UnitRecord(
                task_id=_row_text(row, "task_id"),
                unit_id=_row_text(row, "unit_id"),
                unit_type=_row_text(row, "unit_type"),
                claimed=row.get("claimed") == 1,
                verified=row.get("verified") == 1,
                reason=_row_text(row, "reason"),
            )
            for row in rows
        ]

    def counts(self, task_id: str) -> dict[str, int]:
        row = self._db.query_one(
            """
            SELECT COUNT(*) AS total, COALESCE(SUM(verified), 0) AS verified
            FROM units WHERE task_id = ?
            """,
            (task_id,),
        )
        total = _row_int(row, "total")
        verified = _row_int(row, "verified")
        return {"total": total, "verified": verified, "unverified": total - verified}


class MetricRepo(_BaseRepo):
    """Append-only key/value task metrics."""

    def append(
        self,
        records: Sequence[MetricRecord],
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        if not records:
            return 0
        default_created_at = utc_now_iso()
        rows = []
        for record in records:
            value = float(record.value)
            if not math.isfinite(value):
                raise ValueError(f"metric {record.key!r} must be finite")
            rows.append(
                (
                    _require_text(record.task_id, "metric.task_id"),
                    _require_text(record.key, "metric.key"),
                    value,
                    record.created_at or default_created_at,
                )
            )
        self._db.executemany(
            """
            INSERT OR REPLACE INTO task_metrics (task_id, k, v, created_at)
            VALUES (?, ?, ?, ?)
            """,
            rows,
            conn=conn,
        )
        return len(rows)

    def latest(self, task_id: str) -> dict[str, float]:
        """Return the most recent value per metric key."""

        rows = self._db.query_all(
            """
            SELECT k, v FROM task_metrics
            WHERE task_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (task_id,),
        )
        out: dict[str, float] = {}
        for row in rows:
            out[_row_text(row, "k")] = _row_float(row, "v")
        return dict(sorted(out.items()))

    def history(self, task_id: str, key: str) -> list[MetricRecord]:
        rows = self._db.query_all(
            """
            SELECT task_id, k, v, created_at FROM task_metrics
            WHERE task_id = ? AND k = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (task_id, key),
        )
        return [
            MetricRecord(
                task_id=_row_text(row, "task_id"),
                key=_row_text(row, "k"),
                value=_row_float(row, "v"),
                created_at=_row_text(row, "created_at"),
            )
            for row in rows
        ]


class SessionRepo(_BaseRepo):
    """One summary row per task, read by the monitoring dashboard."""

    def upsert(
        self,
        summary: SessionSummary,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> SessionSummary:
        now = summary.updated_at or utc_now_iso()
        self._db.execute(
            """
            INSERT INTO sessions (
                task_id,
                task_type,
                profile,
                status,
                gate_type,
                reasons_json,
                checks_total,
                checks_failed,
                created_at,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(task_id) DO UPDATE SET
                task_type=excluded.task_type,
                profile=excluded.profile,
                status=excluded.status,
                gate_type=excluded.gate_type,
                reasons_json=excluded.reasons_json,
                checks_total=excluded.checks_total,
                checks_failed=excluded.checks_failed,
                updated_at=excluded.updated_at
            """,
            (
                _require_text(summary.task_id, "session.task_id"),
                summary.task_type,
                summary.profile,
                summary.status.value,
                summary.gate_type,
                canonical_json(list(summary.reasons)),
                summary.checks_total,
                summary.checks_failed,
                now,
                now,
            ),
            conn=conn,
        )
        return SessionSummary(
            task_id=summary.task_id,
            task_type=summary.task_type,
            profile=summary.profile,
            status=summary.status,
            gate_type=summary.gate_type,
            reasons=summary.reasons,
            checks_total=summary.checks_total,
            checks_failed=summary.checks_failed,
            updated_at=now,
        )

    def get(self, task_id: str) -> SessionSummary | None:
        row = self._db.query_one(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE task_id = ?",
            (task_id,),
        )
        return None if row is None else _session_from_row(row)

    def list(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        status: VerdictStatus | str | None = None,
    ) -> list[SessionSummary]:
        self._validate_page(limit, offset)
        sql = f"SELECT {_SESSION_COLUMNS} FROM sessions"
        params: list[str | int] = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(VerdictStatus(status).value)
        sql += " ORDER BY updated_at DESC, task_id ASC LIMIT ? OFFSET ?"
        params.extend((limit, offset))
        return [_session_from_row(row) for row in self._db.query_all(sql, tuple(params))]

    def stats(self) -> dict[str, int | float]:
        """Return totals by status and the pass rate over decided (pass or fail) tasks."""

        rows = self._db.query_all(
            "SELECT status, COUNT(*) AS count FROM sessions GROUP BY status ORDER BY status"
        )
        counts = {item.value: 0 for item in VerdictStatus}
        for row in rows:
            counts[_row_text(row, "status")] = _row_int(row, "count")
        decided = counts[VerdictStatus.PASS.value] + counts[VerdictStatus.FAIL.value]
        pass_rate = counts[VerdictStatus.PASS.value] / decided if decided else 0.0
        return {
            "total": sum(counts.values()),
            **counts,
            "pass_rate": round(pass_rate, 4),
        }


_SESSION_COLUMNS: Final[str] = (
    "task_id, task_type, profile, status, gate_type, reasons_json, "
    "checks_total, checks_failed, updated_at"
)


def _session_from_row(row: dict[str, RowValue]) -> SessionSummary:
    reasons = json.loads(_row_text(row, "reasons_json"))
    if not isinstance(reasons, list):
        raise ValueError("sessions.reasons_json must be an array")
    gate_type = row.get("gate_type")
    return SessionSummary(
        task_id=_row_text(row, "task_id"),
        task_type=_row_text(row, "task_type"),
        profile=_row_text(row, "profile"),
        status=VerdictStatus(_row_text(row, "status")),
        gate_type=gate_type if isinstance(gate_type, str) else None,
        reasons=tuple(str(item) for item in reasons),
        checks_total=_row_int(row, "checks_total"),
        checks_failed=_row_int(row, "checks_failed"),
        updated_at=_row_text(row, "updated_at"),
    )


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return value


def _row_text(row: dict[str, RowValue], key: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"column {key} must be text, got {type(value).__name__}")
    return value


def _row_int(row: dict[str, RowValue] | None, key: str) -> int:
    value = None if row is None else row.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _row_float(row: dict[str, RowValue], key: str) -> float:
    value = row.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"column {key} must be numeric, got {type(value).__name__}")
    return float(value)


__all__ = ["MetricRepo", "SessionRepo", "UnitRepo"]
