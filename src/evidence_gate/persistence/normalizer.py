"""
evidence-gate: evidence normalizer

File: src/evidence_gate/persistence/normalizer.py
Last updated: 2026-10-18

Purpose
- Turn a verdict document of any supported shape into per-unit records and numeric metrics.

Functional requirements
- Unit extraction is an ordered chain of (predicate, extractor) pairs; the first predicate
  that matches decides the shape, so an explicit ``per_unit`` list is used exclusively.
- ``verdict_pass`` (0 or 1) is always emitted as a metric.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Final

from evidence_gate.domain.models import Claim, MetricRecord, UnitRecord, unit_identifier

UnitPredicate = Callable[[Mapping[str, object]], bool]
UnitExtractor = Callable[[Mapping[str, object], Claim, str], list[UnitRecord]]

# verdict.evidence key -> persisted metric key
_EVIDENCE_METRIC_KEYS: Final[tuple[tuple[str, str], ...]] = (
    ("total_files", "total_files"),
    ("files_processed", "files_processed"),
    ("coverage_percent", "coverage"),
    ("lint_errors", "lint_errors"),
    ("tests_passed", "tests_passed"),
    ("tests_failed", "tests_failed"),
)


def normalize_units(
    verdict: Mapping[str, object],
    claim: Claim | Mapping[str, object] | None = None,
    *,
    task_id: str | None = None,
) -> list[UnitRecord]:
    """Return unit records from the first matching verdict shape."""

    parsed_claim = claim if isinstance(claim, Claim) else Claim.from_mapping(claim)
    resolved_task_id = resolve_task_id(verdict, parsed_claim, fallback=task_id)
    for predicate, extractor in _UNIT_SOURCES:
        if predicate(verdict):
            return extractor(verdict, parsed_claim, resolved_task_id)
    return []


def extract_metrics(
    verdict: Mapping[str, object],
    *,
    task_id: str,
    created_at: str | None = None,
) -> list[MetricRecord]:
    """Return numeric metrics from ``verdict.metrics`` and ``verdict.evidence``."""

    values: dict[str, float] = {}
    metrics = verdict.get("metrics")
    if isinstance(metrics, Mapping):
        for key, value in metrics.items():
            number = _metric_number(value)
            if isinstance(key, str) and number is not None:
                values[key] = number

    evidence = _evidence(verdict)
    for source_key, metric_key in _EVIDENCE_METRIC_KEYS:
        number = _metric_number(evidence.get(source_key))
        if number is not None:
            values[metric_key] = number

    values["verdict_pass"] = 1.0 if verdict.get("status") == "pass" else 0.0
    return [
        MetricRecord(task_id=task_id, key=key, value=value, created_at=created_at)
        for key, value in sorted(values.items())
    ]


def resolve_task_id(
    verdict: Mapping[str, object],
    claim: Claim,
    *,
    fallback: str | None = None,
) -> str:
    value = verdict.get("task_id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    if claim.task_id:
        return claim.task_id
    if fallback:
        return fallback
    raise ValueError("verdict has no task_id and none was supplied")


# ---------------------------------------------------------------------------
# Unit sources, in priority order
# ---------------------------------------------------------------------------


def _has_per_unit(verdict: Mapping[str, object]) -> bool:
    return _non_empty_list(verdict.get("per_unit"))


def _from_per_unit(verdict: Mapping[str, object], claim: Claim, task_id: str) -> list[UnitRecord]:
    return _from_unit_entries(verdict.get("per_unit"), claim, task_id)


def _has_evidence_units(verdict: Mapping[str, object]) -> bool:
    return _non_empty_list(_evidence(verdict).get("units"))


def _from_evidence_units(
    verdict: Mapping[str, object], claim: Claim, task_id: str
) -> list[UnitRecord]:
    return _from_unit_entries(_evidence(verdict).get("units"), claim, task_id)


def _has_files_checked(verdict: Mapping[str, object]) -> bool:
    return _non_empty_list(_evidence(verdict).get("files_checked"))


def _from_files_checked(
    verdict: Mapping[str, object], claim: Claim, task_id: str
) -> list[UnitRecord]:
    files = _as_list(_evidence(verdict).get("files_checked"))
    claimed = set(claim.unit_ids)
    return [
        UnitRecord(
            task_id=task_id,
            unit_id=unit_identifier(item),
            unit_type="file",
            claimed=not claimed or unit_identifier(item) in claimed,
            verified=True,
            reason="File processed",
        )
        for item in files
    ]


def _has_urls_checked(verdict: Mapping[str, object]) -> bool:
    return _non_empty_list(_evidence(verdict).get("urls_checked"))


def _from_urls_checked(
    verdict: Mapping[str, object], claim: Claim, task_id: str
) -> list[UnitRecord]:
    evidence = _evidence(verdict)
    urls = _as_list(evidence.get("urls_checked"))
    failed = {unit_identifier(item) for item in _as_list(evidence.get("failed_urls"))}
    claimed = set(claim.unit_ids)
    records: list[UnitRecord] = []
    for item in urls:
        url = unit_identifier(item)
        ok = url not in failed
        records.append(
            UnitRecord(
                task_id=task_id,
                unit_id=url,
                unit_type="url",
                claimed=not claimed or url in claimed,
                verified=ok,
                reason="URL verified" if ok else "URL check failed",
            )
        )
    return records


def _has_claimed_units(verdict: Mapping[str, object]) -> bool:
    return True


def _from_claimed_units(
    verdict: Mapping[str, object], claim: Claim, task_id: str
) -> list[UnitRecord]:
    passed = verdict.get("status") == "pass"
    return [
        UnitRecord(
            task_id=task_id,
            unit_id=unit_id,
            unit_type="unit",
            claimed=True,
            verified=passed,
            reason="Verified" if passed else "Not verified",
        )
        for unit_id in claim.unit_ids
    ]


_UNIT_SOURCES: Final[tuple[tuple[UnitPredicate, UnitExtractor], ...]] = (
    (_has_per_unit, _from_per_unit),
    (_has_evidence_units, _from_evidence_units),
    (_has_files_checked, _from_files_checked),
    (_has_urls_checked, _from_urls_checked),
    (_has_claimed_units, _from_claimed_units),
)


def _from_unit_entries(entries: object, claim: Claim, task_id: str) -> list[UnitRecord]:
    claimed_ids = set(claim.unit_ids)
    records: list[UnitRecord] = []
    for entry in _as_list(entries):
        unit_id = unit_identifier(entry)
        body: Mapping[str, object] = entry if isinstance(entry, Mapping) else {}
        unit_type = body.get("unit_type", body.get("type"))
        verified = body.get("ok", body.get("verified"))
        claimed = body.get("claimed")
        reason = body.get("reason")
        records.append(
            UnitRecord(
                task_id=task_id,
                unit_id=unit_id,
                unit_type=unit_type if isinstance(unit_type, str) and unit_type else "unit",
                claimed=(
                    claimed
                    if isinstance(claimed, bool)
                    else not claimed_ids or unit_id in claimed_ids
                ),
                verified=verified is True,
                reason=reason if isinstance(reason, str) else "",
            )
        )
    return records


def _evidence(verdict: Mapping[str, object]) -> Mapping[str, object]:
    evidence = verdict.get("evidence")
    return evidence if isinstance(evidence, Mapping) else {}


def _as_list(value: object) -> list[object]:
    return value if isinstance(value, list) else []


def _non_empty_list(value: object) -> bool:
    return bool(_as_list(value))


def _metric_number(value: object) -> float | None:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


__all__ = ["extract_metrics", "normalize_units", "resolve_task_id"]
