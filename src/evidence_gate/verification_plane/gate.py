"""
evidence-gate: evidentiary gate

File: src/evidence_gate/verification_plane/gate.py
Last updated: 2026-10-18

Purpose
- Evaluate a commitment, claim, profile and indexed evidence into a pass/fail/inconclusive
  Verdict using a fixed battery of checks keyed by task type and profile.

Functional requirements
- The battery always runs to completion; every applicable check is recorded, passing or not.
- PASS requires at least one check and no failures. Zero checks stay INCONCLUSIVE.
- Schema validation failures classify as SCHEMA_MISMATCH; function-mapping shortfalls and
  unclaimed significant changes classify as DIFF_MISMATCH.
- An unknown profile name evaluates with all-default thresholds.

Non-functional requirements
- Identical inputs (timestamp included) produce an identical Verdict.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from evidence_gate.artifacts.indexer import schema_result_summary
from evidence_gate.constants import (
    API_SCHEMA_RESULT_FILE,
    API_TASK_TYPES,
    CLAIM_FILE,
    CODE_TASK_TYPES,
    COMMITMENT_FILE,
    CONTENT_TASK_TYPES,
    FUNCTION_MAP_FILE,
    LINK_TASK_TYPES,
)
from evidence_gate.domain.models import (
    ArtifactIndex,
    CheckRecord,
    Claim,
    Commitment,
    FunctionMap,
    GateType,
    JSONValue,
    Profile,
    Verdict,
    VerdictStatus,
)
from evidence_gate.utils.fs import read_json, read_json_optional
from evidence_gate.verification_plane.requirements import required_artifacts

_FUNCTION_UNIT_PREFIXES: Final[tuple[str, ...]] = ("func:", "function:", "ep:", "endpoint:", "/")

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GateInputs:
    """Everything the gate reads, as loaded from a task directory."""

    index: ArtifactIndex
    commitment: Commitment
    claim: Claim
    function_map: FunctionMap | None = None
    schema_result: Mapping[str, JSONValue] | None = None


@dataclass(slots=True)
class _BatteryState:
    checks: list[CheckRecord] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    gate_type: GateType | None = None

    def record(
        self,
        name: str,
        passed: bool,
        *,
        reason: str | None = None,
        gate_type: GateType | None = None,
        **details: JSONValue,
    ) -> None:
        self.checks.append(CheckRecord(name=name, passed=passed, details=details))
        if passed:
            return
        if reason is not None:
            self.reasons.append(reason)
        if gate_type is not None and self.gate_type is None:
            self.gate_type = gate_type

    @property
    def failed(self) -> bool:
        return any(not check.passed for check in self.checks)


def evaluate_gate(
    commitment: Commitment | Mapping[str, object] | None,
    claim: Claim | Mapping[str, object] | None,
    profiles: Mapping[str, Profile | Mapping[str, object]],
    artifacts: ArtifactIndex | Sequence[Mapping[str, JSONValue]],
    *,
    function_map: FunctionMap | Mapping[str, object] | None = None,
    schema_result: Mapping[str, JSONValue] | None = None,
    task_id: str | None = None,
    timestamp: str | None = None,
    default_link_failure_threshold: float = 0.0,
) -> Verdict:
    """Run the check battery and return the resulting :class:`Verdict`."""

    parsed_commitment = _coerce_commitment(commitment)
    parsed_claim = _coerce_claim(claim)
    parsed_function_map = _coerce_function_map(function_map)
    index_task_id, typed_artifacts = _coerce_artifacts(artifacts)

    task_type = parsed_commitment.type or parsed_claim.type or "unknown"
    profile_name = parsed_commitment.profile_name or f"{task_type}_default"
    profile = _coerce_profile(profiles, profile_name)
    by_type = _artifacts_by_type(typed_artifacts)
    if schema_result is None:
        schema_result = by_type.get("api:schema")

    state = _BatteryState()
    _check_units_count(state, parsed_commitment, parsed_claim)
    _check_required_artifacts(state, task_type, profile, by_type)
    _check_lint(state, task_type, profile, by_type)
    _check_tests(state, profile, by_type)
    _check_coverage(state, profile, by_type)
    _check_word_min(state, task_type, profile, parsed_commitment, by_type)
    _check_link_failure_rate(state, task_type, profile, by_type, default_link_failure_threshold)
    _check_api(state, task_type, profile, schema_result)
    _check_function_mapping(
        state, task_type, profile, parsed_commitment, parsed_claim, parsed_function_map
    )

    if not state.checks:
        status = VerdictStatus.INCONCLUSIVE
    elif state.failed:
        status = VerdictStatus.FAIL
    else:
        status = VerdictStatus.PASS

    resolved_task_id = task_id or index_task_id or parsed_commitment.task_id or parsed_claim.task_id
    verdict = Verdict(
        task_id=resolved_task_id,
        status=status,
        type=task_type,
        profile=profile_name,
        checks=tuple(state.checks),
        reasons=tuple(state.reasons),
        timestamp=timestamp or _utc_now_iso(),
        gate_type=state.gate_type,
    )
    logger.info(
        "gate_verdict",
        task_id=verdict.task_id,
        task_type=task_type,
        profile=profile_name,
        status=verdict.status.value,
        checks=len(verdict.checks),
        failed=sum(1 for check in verdict.checks if not check.passed),
        gate_type=verdict.gate_type.value if verdict.gate_type else None,
    )
    return verdict


def load_gate_inputs(artifacts_path: str | os.PathLike[str]) -> GateInputs:
    """
    Load an artifact index and its sibling task documents.

    ``commitment.json`` and ``claim.json`` are optional; ``function_map.json`` and
    ``api/schema_result.json`` are read when present. A missing or unparseable index
    raises; malformed siblings raise ``ValueError`` with the offending field path.
    """

    index_path = Path(artifacts_path)
    payload = read_json(index_path)
    if isinstance(payload, list):
        index = ArtifactIndex(
            task_dir=str(index_path.parent),
            timestamp="",
            files=(),
            summary={},
            metrics={},
            artifacts=tuple(item for item in payload if isinstance(item, Mapping)),
        )
    elif isinstance(payload, Mapping):
        index = ArtifactIndex.from_mapping(payload)
    else:
        raise ValueError(f"{index_path}: artifact index must be an object or array")

    task_dir = index_path.parent
    commitment_raw = read_json_optional(task_dir / COMMITMENT_FILE)
    commitment = (
        Commitment.from_mapping(commitment_raw)
        if isinstance(commitment_raw, Mapping)
        else Commitment()
    )
    claim_raw = read_json_optional(task_dir / CLAIM_FILE)
    claim = Claim.from_mapping(claim_raw if isinstance(claim_raw, Mapping) else None)

    function_map_raw = read_json_optional(task_dir / FUNCTION_MAP_FILE)
    function_map = (
        FunctionMap.from_mapping(function_map_raw)
        if isinstance(function_map_raw, Mapping)
        else None
    )
    schema_raw = read_json_optional(task_dir / API_SCHEMA_RESULT_FILE)
    schema_result = schema_result_summary(schema_raw) if schema_raw is not None else None

    return GateInputs(
        index=index,
        commitment=commitment,
        claim=claim,
        function_map=function_map,
        schema_result=schema_result,
    )


def looks_like_function_unit(unit: str) -> bool:
    """Return whether a claimed unit names a function or endpoint."""

    return unit.startswith(_FUNCTION_UNIT_PREFIXES) or "::" in unit or "." in unit


# ---------------------------------------------------------------------------
# Battery
# ---------------------------------------------------------------------------


def _check_units_count(state: _BatteryState, commitment: Commitment, claim: Claim) -> None:
    expected = commitment.expected_total
    if expected is None:
        return
    actual = claim.units_total
    passed = actual >= expected
    state.record(
        "units_count",
        passed,
        reason=f"Claimed {actual} units but expected {expected}",
        expected=expected,
        actual=actual,
    )


def _check_required_artifacts(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    by_type: Mapping[str, Mapping[str, JSONValue]],
) -> None:
    for requirement in required_artifacts(task_type, profile, include_defaults=False):
        found = requirement.artifact_type in by_type
        state.record(
            "required_artifact",
            found,
            reason=f"Missing required artifact: {requirement.artifact_type}",
            artifact=requirement.artifact_type,
            found=found,
        )


def _check_lint(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    by_type: Mapping[str, Mapping[str, JSONValue]],
) -> None:
    if task_type not in CODE_TASK_TYPES or profile.lint_clean is False:
        return
    lint = by_type.get("code:lint")
    if lint is None:
        return
    errors = _optional_int(lint.get("errors"))
    if errors is not None:
        state.record(
            "lint_clean",
            errors == 0,
            reason=f"Lint errors found: {errors}",
            errors=errors,
        )
        return
    # Without an error count the linter exit code is the only signal.
    exit_code = _optional_int(lint.get("exit_code"))
    if exit_code is not None:
        state.record(
            "lint_clean",
            exit_code == 0,
            reason=f"Lint exited with code {exit_code}",
            exit_code=exit_code,
        )


def _check_tests(
    state: _BatteryState,
    profile: Profile,
    by_type: Mapping[str, Mapping[str, JSONValue]],
) -> None:
    tests = by_type.get("code:tests")
    failed = _optional_int(tests.get("failed")) if tests is not None else None
    if tests is not None and failed is not None:
        state.record(
            "tests_pass",
            failed == 0,
            reason=f"Test failures: {failed}",
            failed=failed,
            total=_optional_int(tests.get("total")),
        )
    elif profile.tests_required:
        state.record("tests_required", False, reason="No test results found", found=False)


def _check_coverage(
    state: _BatteryState,
    profile: Profile,
    by_type: Mapping[str, Mapping[str, JSONValue]],
) -> None:
    minimum = profile.coverage_min
    coverage = by_type.get("code:coverage")
    if minimum is None or coverage is None:
        return
    actual = _optional_float(coverage.get("percentage"))
    if actual is None:
        state.record(
            "coverage_min",
            False,
            reason=f"Coverage not reported; minimum {_fmt(minimum)}%",
            minimum=minimum,
            actual=None,
        )
        return
    state.record(
        "coverage_min",
        actual >= minimum,
        reason=f"Coverage {_fmt(actual)}% below minimum {_fmt(minimum)}%",
        minimum=minimum,
        actual=actual,
    )


def _check_word_min(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    commitment: Commitment,
    by_type: Mapping[str, Mapping[str, JSONValue]],
) -> None:
    if task_type not in CONTENT_TASK_TYPES:
        return
    minimum = commitment.word_min if commitment.word_min is not None else profile.word_min
    scan = by_type.get("content:scan")
    if minimum is None or scan is None:
        return
    files = scan.get("files")
    if not isinstance(files, list):
        return
    for item in files:
        if not isinstance(item, Mapping):
            continue
        name = str(item.get("name", "<unnamed>"))
        word_count = _int_value(item.get("word_count"))
        state.record(
            "word_min",
            word_count >= minimum,
            reason=f"{name}: word count {word_count} < {minimum}",
            file=name,
            minimum=minimum,
            actual=word_count,
        )


def _check_link_failure_rate(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    by_type: Mapping[str, Mapping[str, JSONValue]],
    default_threshold: float,
) -> None:
    if task_type not in LINK_TASK_TYPES:
        return
    check = by_type.get("links:check")
    if check is None:
        return
    failed = _optional_int(check.get("failed_count"))
    total = _optional_int(check.get("total_count"))
    if failed is None or total is None:
        return
    rate = failed / total if total > 0 else 0.0
    threshold = (
        profile.link_failure_threshold
        if profile.link_failure_threshold is not None
        else default_threshold
    )
    state.record(
        "link_failure_rate",
        rate <= threshold,
        reason=(
            f"Link failure rate {rate * 100:.1f}% exceeds threshold {threshold * 100:.1f}%"
        ),
        threshold=threshold,
        actual=rate,
        failed_count=failed,
        total_count=total,
    )


def _check_api(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    schema_result: Mapping[str, JSONValue] | None,
) -> None:
    if task_type not in API_TASK_TYPES:
        return
    if schema_result is None:
        if profile.schema_required:
            state.record(
                "api_schema_validation",
                False,
                reason="API schema validation required but no results found",
                found=False,
            )
        return

    ok = schema_result.get("ok") is True
    errors_raw = schema_result.get("errors")
    errors = [str(item) for item in errors_raw] if isinstance(errors_raw, list) else []
    reason = "API schema validation failed"
    if errors:
        reason = f"{reason}: {'; '.join(errors)}"
    state.record(
        "api_schema_validation",
        ok,
        reason=reason,
        gate_type=GateType.SCHEMA_MISMATCH,
        found=True,
        errors=list(errors),
    )

    budget = profile.latency_budget_ms
    latency = schema_result.get("response_time_ms")
    if budget is None or isinstance(latency, bool) or not isinstance(latency, (int, float)):
        return
    state.record(
        "api_latency_budget",
        latency <= budget,
        reason=f"API latency {_fmt(latency)}ms exceeds budget {_fmt(budget)}ms",
        budget_ms=budget,
        actual_ms=latency,
    )


def _check_function_mapping(
    state: _BatteryState,
    task_type: str,
    profile: Profile,
    commitment: Commitment,
    claim: Claim,
    function_map: FunctionMap | None,
) -> None:
    if task_type not in CODE_TASK_TYPES or function_map is None:
        return

    required = len(commitment.required_functions) + len(commitment.required_endpoints)
    claimed = sum(1 for unit in claim.unit_ids if looks_like_function_unit(unit))
    expected = max(required, claimed)
    bar = profile.function_certainty_required
    matched = function_map.matched_count(bar)
    unmatched = list(function_map.unmatched_claims)

    reason = f"Function mapping insufficient: {matched}/{expected} matched at certainty '{bar}'"
    if unmatched:
        reason = f"{reason}; unmatched: {', '.join(unmatched)}"
    state.record(
        "function_mapping",
        matched >= expected,
        reason=reason,
        gate_type=GateType.DIFF_MISMATCH,
        expected=expected,
        matched=matched,
        certainty=bar.value,
        unmatched_claims=list(unmatched),
    )

    if not profile.reject_unclaimed_changes:
        return
    significant = [item.file for item in function_map.significant_unmatched_diffs]
    state.record(
        "unclaimed_changes",
        not significant,
        reason=f"Unclaimed significant changes: {', '.join(significant)}",
        gate_type=GateType.DIFF_MISMATCH,
        files=list(significant),
    )


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------


def _coerce_commitment(value: Commitment | Mapping[str, object] | None) -> Commitment:
    if value is None:
        return Commitment()
    if isinstance(value, Commitment):
        return value
    if isinstance(value, Mapping):
        return Commitment.from_mapping(value)
    raise TypeError(f"commitment: expected Commitment or mapping, got {type(value)}")


def _coerce_claim(value: Claim | Mapping[str, object] | None) -> Claim:
    if isinstance(value, Claim):
        return value
    if value is None or isinstance(value, Mapping):
        return Claim.from_mapping(value)
    raise TypeError(f"claim: expected Claim or mapping, got {type(value)}")


def _coerce_function_map(value: FunctionMap | Mapping[str, object] | None) -> FunctionMap | None:
    if value is None or isinstance(value, FunctionMap):
        return value
    if isinstance(value, Mapping):
        return FunctionMap.from_mapping(value)
    raise TypeError(f"function_map: expected FunctionMap or mapping, got {type(value)}")


def _coerce_profile(profiles: Mapping[str, Profile | Mapping[str, object]], name: str) -> Profile:
    raw = profiles.get(name)
    if raw is None:
        return Profile(name=name)
    if isinstance(raw, Profile):
        return raw
    return Profile.from_mapping(name, raw)


def _coerce_artifacts(
    value: ArtifactIndex | Sequence[Mapping[str, JSONValue]],
) -> tuple[str | None, tuple[Mapping[str, JSONValue], ...]]:
    if isinstance(value, ArtifactIndex):
        return value.task_id, value.artifacts
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise TypeError(f"artifacts: expected ArtifactIndex or sequence, got {type(value)}")
    return None, tuple(item for item in value if isinstance(item, Mapping))


def _artifacts_by_type(
    artifacts: Sequence[Mapping[str, JSONValue]],
) -> dict[str, Mapping[str, JSONValue]]:
    by_type: dict[str, Mapping[str, JSONValue]] = {}
    for item in artifacts:
        artifact_type = item.get("type")
        if isinstance(artifact_type, str) and artifact_type not in by_type:
            by_type[artifact_type] = item
    return by_type


def _int_value(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _optional_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "GateInputs",
    "evaluate_gate",
    "load_gate_inputs",
    "looks_like_function_unit",
]
