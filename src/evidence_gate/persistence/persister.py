"""Persist one verdict's units, metrics and session summary in a single transaction."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from evidence_gate.domain.models import (
    Claim,
    JSONValue,
    MetricRecord,
    SessionSummary,
    UnitRecord,
    Verdict,
    VerdictStatus,
)
from evidence_gate.persistence.normalizer import extract_metrics, normalize_units, resolve_task_id
from evidence_gate.persistence.repositories import MetricRepo, SessionRepo, UnitRepo
from evidence_gate.persistence.state_db import StateDB, utc_now_iso

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PersistResult:
    task_id: str
    units: tuple[UnitRecord, ...]
    metrics: tuple[MetricRecord, ...]
    session: SessionSummary

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_id": self.task_id,
            "units": len(self.units),
            "metrics": len(self.metrics),
            "session": self.session.to_dict(),
        }


def persist_verdict(
    db: StateDB,
    verdict: Verdict | Mapping[str, object],
    claim: Claim | Mapping[str, object] | None = None,
    *,
    task_id: str | None = None,
) -> PersistResult:
    """
    Normalize ``verdict`` and write it to ``db``.

    Units upsert by ``(task_id, unit_id)``, metrics append with one shared timestamp, and
    the task's session summary is replaced. Either everything is written or nothing is.
    """

    document: Mapping[str, object] = (
        verdict.to_dict() if isinstance(verdict, Verdict) else verdict
    )
    parsed_claim = claim if isinstance(claim, Claim) else Claim.from_mapping(claim)
    resolved_task_id = resolve_task_id(document, parsed_claim, fallback=task_id)
    created_at = utc_now_iso()

    units = normalize_units(document, parsed_claim, task_id=resolved_task_id)
    metrics = extract_metrics(document, task_id=resolved_task_id, created_at=created_at)
    summary = _session_summary(document, parsed_claim, resolved_task_id, created_at)

    unit_repo = UnitRepo(db)
    metric_repo = MetricRepo(db)
    session_repo = SessionRepo(db)
    with db.transaction() as conn:
        unit_repo.upsert_many(units, conn=conn)
        metric_repo.append(metrics, conn=conn)
        stored = session_repo.upsert(summary, conn=conn)

    logger.info(
        "verdict_persisted",
        task_id=resolved_task_id,
        status=summary.status.value,
        units=len(units),
        metrics=len(metrics),
        db=str(db.path),
    )
    return PersistResult(
        task_id=resolved_task_id,
        units=tuple(units),
        metrics=tuple(metrics),
        session=stored,
    )


def _session_summary(
    document: Mapping[str, object],
    claim: Claim,
    task_id: str,
    updated_at: str,
) -> SessionSummary:
    status_raw = document.get("status")
    try:
        status = VerdictStatus(status_raw) if isinstance(status_raw, str) else None
    except ValueError:
        status = None
    checks = document.get("checks")
    check_items = (
        [item for item in checks if isinstance(item, Mapping)] if isinstance(checks, list) else []
    )
    reasons = document.get("reasons")
    task_type = document.get("type")
    profile = document.get("profile")
    gate_type = document.get("gate_type")
    return SessionSummary(
        task_id=task_id,
        task_type=task_type if isinstance(task_type, str) else (claim.type or "unknown"),
        profile=profile if isinstance(profile, str) else "",
        status=status or VerdictStatus.INCONCLUSIVE,
        gate_type=gate_type if isinstance(gate_type, str) else None,
        reasons=tuple(str(item) for item in reasons) if isinstance(reasons, list) else (),
        checks_total=len(check_items),
        checks_failed=sum(1 for item in check_items if item.get("passed") is not True),
        updated_at=updated_at,
    )


__all__ = ["PersistResult", "persist_verdict"]
