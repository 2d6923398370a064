"""Dataclass domain models with strict parsing and canonical serialization."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import NoReturn

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class VerdictStatus(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    INCONCLUSIVE = "inconclusive"


class GateType(StrEnum):
    SCHEMA_MISMATCH = "SCHEMA_MISMATCH"
    DIFF_MISMATCH = "DIFF_MISMATCH"


class Certainty(StrEnum):
    CERTAIN = "certain"
    FUZZY = "fuzzy"


@dataclass(frozen=True, slots=True)
class Commitment:
    """Pre-declared task expectations, fixed before work starts."""

    task_id: str | None = None
    type: str | None = None
    profile_name: str | None = None
    expected_total: int | None = None
    word_min: int | None = None
    required_functions: tuple[str, ...] = ()
    required_endpoints: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> Commitment:
        data = _as_mapping(payload, "commitment")
        commitments = _as_optional_mapping(data.get("commitments"), "commitment.commitments")
        quality = _as_optional_mapping(
            commitments.get("quality"), "commitment.commitments.quality"
        )
        requirements = _as_optional_mapping(data.get("requirements"), "commitment.requirements")
        profile_raw = data.get("profile_name", data.get("profile"))
        return cls(
            task_id=_as_optional_str(data.get("task_id"), "commitment.task_id"),
            type=_as_optional_str(data.get("type"), "commitment.type"),
            profile_name=_as_optional_str(profile_raw, "commitment.profile_name"),
            expected_total=_as_optional_int(
                commitments.get("expected_total"),
                "commitment.commitments.expected_total",
            ),
            word_min=_as_optional_int(
                quality.get("word_min"), "commitment.commitments.quality.word_min"
            ),
            required_functions=_as_str_tuple(
                requirements.get("functions"), "commitment.requirements.functions"
            ),
            required_endpoints=_as_str_tuple(
                requirements.get("endpoints"), "commitment.requirements.endpoints"
            ),
        )


@dataclass(frozen=True, slots=True)
class Claim:
    """
    Lenient view over a worker claim document.

    Structural validation lives in ``evidence_gate.claims.validator``; this view
    only extracts what downstream consumers read and never rejects a document.
    """

    task_id: str | None
    actor: str | None
    type: str | None
    units_total: int
    units_list: tuple[object, ...]

    @property
    def unit_ids(self) -> tuple[str, ...]:
        return tuple(unit_identifier(unit) for unit in self.units_list)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object] | None) -> Claim:
        data: Mapping[str, object] = payload if isinstance(payload, Mapping) else {}
        body_raw = data.get("claim")
        body: Mapping[str, object] = body_raw if isinstance(body_raw, Mapping) else {}
        total_raw = body.get("units_total")
        units_total = (
            int(total_raw)
            if isinstance(total_raw, (int, float))
            and not isinstance(total_raw, bool)
            and math.isfinite(total_raw)
            else 0
        )
        units_raw = body.get("units_list")
        units = tuple(units_raw) if isinstance(units_raw, list) else ()
        return cls(
            task_id=_lenient_str(data.get("task_id")),
            actor=_lenient_str(data.get("actor")),
            type=_lenient_str(body.get("type")),
            units_total=units_total,
            units_list=units,
        )


@dataclass(frozen=True, slots=True)
class Profile:
    """Named threshold bundle controlling which gate checks apply."""

    name: str
    lint_clean: bool = True
    tests_required: bool = False
    coverage_min: float | None = None
    word_min: int | None = None
    link_failure_threshold: float | None = None
    schema_required: bool = False
    latency_budget_ms: float | None = None
    function_certainty_required: Certainty = Certainty.CERTAIN
    reject_unclaimed_changes: bool = False
    required_artifacts: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, name: str, payload: Mapping[str, object]) -> Profile:
        path = f"profiles.{name}"
        data = _as_mapping(payload, path)
        certainty_raw = data.get("function_certainty_required", Certainty.CERTAIN.value)
        certainty = _as_certainty(certainty_raw, f"{path}.function_certainty_required")
        threshold = _as_optional_float(
            data.get("link_failure_threshold"), f"{path}.link_failure_threshold"
        )
        return cls(
            name=name,
            lint_clean=_as_bool(data.get("lint_clean", True), f"{path}.lint_clean"),
            tests_required=_as_bool(
                data.get("tests_required", data.get("test_pass_required", False)),
                f"{path}.tests_required",
            ),
            coverage_min=_as_optional_float(data.get("coverage_min"), f"{path}.coverage_min"),
            word_min=_as_optional_int(data.get("word_min"), f"{path}.word_min"),
            link_failure_threshold=threshold,
            schema_required=_as_bool(
                data.get("schema_required", False), f"{path}.schema_required"
            ),
            latency_budget_ms=_as_optional_float(
                data.get("latency_budget_ms"), f"{path}.latency_budget_ms"
            ),
            function_certainty_required=certainty,
            reject_unclaimed_changes=_as_bool(
                data.get("reject_unclaimed_changes", False),
                f"{path}.reject_unclaimed_changes",
            ),
            required_artifacts=_as_str_tuple(
                data.get("required_artifacts"), f"{path}.required_artifacts"
            ),
        )


@dataclass(frozen=True, slots=True)
class FunctionMatch:
    claim: str | None
    symbol: str | None
    certainty: str


@dataclass(frozen=True, slots=True)
class UnmatchedDiff:
    file: str
    significant: bool
    symbol: str | None = None


@dataclass(frozen=True, slots=True)
class FunctionMap:
    """Externally produced diff-to-claim symbol matches, graded by certainty."""

    matched: tuple[FunctionMatch, ...] = ()
    unmatched_claims: tuple[str, ...] = ()
    unmatched_diffs: tuple[UnmatchedDiff, ...] = ()

    def matched_count(self, bar: Certainty) -> int:
        accepted = {Certainty.CERTAIN.value}
        if bar is Certainty.FUZZY:
            accepted.add(Certainty.FUZZY.value)
        return sum(1 for item in self.matched if item.certainty in accepted)

    @property
    def significant_unmatched_diffs(self) -> tuple[UnmatchedDiff, ...]:
        return tuple(item for item in self.unmatched_diffs if item.significant)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> FunctionMap:
        data = _as_mapping(payload, "function_map")
        matched: list[FunctionMatch] = []
        for index, item in enumerate(_as_list(data.get("matched"), "function_map.matched")):
            entry = _as_mapping(item, f"function_map.matched[{index}]")
            certainty = entry.get("certainty")
            matched.append(
                FunctionMatch(
                    claim=_lenient_str(entry.get("claim")),
                    symbol=_lenient_str(entry.get("symbol", entry.get("function"))),
                    certainty=certainty.strip().lower() if isinstance(certainty, str) else "",
                )
            )
        diffs: list[UnmatchedDiff] = []
        raw_diffs = _as_list(data.get("unmatched_diffs"), "function_map.unmatched_diffs")
        for index, item in enumerate(raw_diffs):
            entry = _as_mapping(item, f"function_map.unmatched_diffs[{index}]")
            diffs.append(
                UnmatchedDiff(
                    file=_lenient_str(entry.get("file")) or "<unknown>",
                    significant=bool(entry.get("significant", False)),
                    symbol=_lenient_str(entry.get("symbol")),
                )
            )
        unmatched_claims = tuple(
            unit_identifier(item)
            for item in _as_list(data.get("unmatched_claims"), "function_map.unmatched_claims")
        )
        return cls(
            matched=tuple(matched),
            unmatched_claims=unmatched_claims,
            unmatched_diffs=tuple(diffs),
        )


@dataclass(frozen=True, slots=True)
class CheckRecord:
    """One gate check outcome; ``details`` are flattened into the serialized record."""

    name: str
    passed: bool
    details: Mapping[str, JSONValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"name": self.name, "passed": self.passed}
        for key, value in self.details.items():
            out[key] = value
        return out


@dataclass(frozen=True, slots=True)
class Verdict:
    """Deterministic gate decision plus supporting checks."""

    task_id: str | None
    status: VerdictStatus
    type: str
    profile: str
    checks: tuple[CheckRecord, ...]
    reasons: tuple[str, ...]
    timestamp: str
    gate_type: GateType | None = None

    @property
    def passed(self) -> bool:
        return self.status is VerdictStatus.PASS

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "task_id": self.task_id,
            "status": self.status.value,
            "type": self.type,
            "profile": self.profile,
            "checks": [check.to_dict() for check in self.checks],
            "reasons": list(self.reasons),
            "timestamp": self.timestamp,
        }
        if self.gate_type is not None:
            out["gate_type"] = self.gate_type.value
        return out


@dataclass(frozen=True, slots=True)
class ArtifactRecord:
    path: str
    size: int
    modified: str
    checksum: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "size": self.size,
            "modified": self.modified,
            "checksum": self.checksum,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ArtifactRecord:
        data = _as_mapping(payload, "artifact")
        return cls(
            path=_as_str(data.get("path"), "artifact.path"),
            size=_as_int(data.get("size"), "artifact.size", minimum=0),
            modified=_as_str(data.get("modified"), "artifact.modified"),
            checksum=_as_str(data.get("checksum"), "artifact.checksum"),
        )


@dataclass(frozen=True, slots=True)
class ArtifactIndex:
    """Wholesale snapshot of a task evidence directory."""

    task_dir: str
    timestamp: str
    files: tuple[ArtifactRecord, ...]
    summary: Mapping[str, JSONValue]
    metrics: Mapping[str, JSONValue]
    artifacts: tuple[Mapping[str, JSONValue], ...] = ()
    task_id: str | None = None

    @property
    def checksums(self) -> dict[str, str]:
        return {record.path: record.checksum for record in self.files}

    def artifact_types(self) -> frozenset[str]:
        return frozenset(
            str(item["type"]) for item in self.artifacts if isinstance(item.get("type"), str)
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_id": self.task_id,
            "task_dir": self.task_dir,
            "timestamp": self.timestamp,
            "files": [record.to_dict() for record in self.files],
            "checksums": dict(self.checksums),
            "summary": dict(self.summary),
            "metrics": dict(self.metrics),
            "artifacts": [dict(item) for item in self.artifacts],
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ArtifactIndex:
        data = _as_mapping(payload, "index")
        files = tuple(
            ArtifactRecord.from_mapping(item)
            for item in _as_list(data.get("files"), "index.files")
        )
        artifacts: list[Mapping[str, JSONValue]] = []
        for index, item in enumerate(_as_list(data.get("artifacts"), "index.artifacts")):
            entry = _as_mapping(item, f"index.artifacts[{index}]")
            artifacts.append(dict(entry))  # type: ignore[arg-type]
        summary = _as_optional_mapping(data.get("summary"), "index.summary")
        metrics = _as_optional_mapping(data.get("metrics"), "index.metrics")
        return cls(
            task_dir=_lenient_str(data.get("task_dir")) or "",
            timestamp=_lenient_str(data.get("timestamp")) or "",
            files=files,
            summary=dict(summary),  # type: ignore[arg-type]
            metrics=dict(metrics),  # type: ignore[arg-type]
            artifacts=tuple(artifacts),
            task_id=_lenient_str(data.get("task_id")),
        )


@dataclass(frozen=True, slots=True)
class AdapterManifest:
    name: str
    capabilities: tuple[str, ...]
    entry: str
    manifest_path: Path

    @property
    def entry_path(self) -> Path:
        return (self.manifest_path.parent / self.entry).resolve()

    @classmethod
    def from_mapping(
        cls, name: str, manifest_path: Path, payload: Mapping[str, object]
    ) -> AdapterManifest:
        path = f"adapters.{name}"
        data = _as_mapping(payload, path)
        capabilities = _as_str_tuple(data.get("capabilities"), f"{path}.capabilities")
        entry = _as_str(data.get("entry"), f"{path}.entry")
        return cls(
            name=name,
            capabilities=capabilities,
            entry=entry,
            manifest_path=manifest_path,
        )


@dataclass(frozen=True, slots=True)
class UnitRecord:
    task_id: str
    unit_id: str
    unit_type: str
    claimed: bool
    verified: bool
    reason: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_id": self.task_id,
            "unit_id": self.unit_id,
            "unit_type": self.unit_type,
            "claimed": self.claimed,
            "verified": self.verified,
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class MetricRecord:
    task_id: str
    key: str
    value: float
    created_at: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_id": self.task_id,
            "key": self.key,
            "value": self.value,
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Per-task summary row read by the external dashboard."""

    task_id: str
    task_type: str
    profile: str
    status: VerdictStatus
    gate_type: str | None
    reasons: tuple[str, ...]
    checks_total: int
    checks_failed: int
    updated_at: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_id": self.task_id,
            "task_type": self.task_type,
            "profile": self.profile,
            "status": self.status.value,
            "gate_type": self.gate_type,
            "reasons": list(self.reasons),
            "checks_total": self.checks_total,
            "checks_failed": self.checks_failed,
            "updated_at": self.updated_at,
        }


def unit_identifier(unit: object) -> str:
    """Return a stable identifier for a claimed unit (string or ``{id|name|path}`` object)."""

    if isinstance(unit, str):
        return unit
    if isinstance(unit, Mapping):
        for key in ("id", "unit_id", "name", "path", "url"):
            value = unit.get(key)
            if isinstance(value, str) and value:
                return value
    return str(unit)


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, "object keys must be strings")
        out[key] = item
    return out


def _as_optional_mapping(value: object, path: str) -> Mapping[str, object]:
    if value is None:
        return {}
    return _as_mapping(value, path)


def _as_list(value: object, path: str) -> list[object]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        _fail(path, f"expected array, got {type(value).__name__}")
    return list(value)


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    parsed = value.strip()
    if not parsed:
        _fail(path, "must not be empty")
    return parsed


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _lenient_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_int(value: object, path: str) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, minimum=0)


def _as_optional_float(value: object, path: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    if parsed < 0:
        _fail(path, "must be >= 0")
    return parsed


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    items: list[str] = []
    for index, item in enumerate(_as_list(value, path)):
        items.append(_as_str(item, f"{path}[{index}]"))
    return tuple(items)


def _as_certainty(value: object, path: str) -> Certainty:
    if isinstance(value, Certainty):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip().lower()
    # "certain_or_fuzzy" is accepted as a spelled-out alias of the fuzzy bar.
    if normalized in {"fuzzy", "certain_or_fuzzy", "any"}:
        return Certainty.FUZZY
    if normalized == "certain":
        return Certainty.CERTAIN
    allowed = ", ".join(item.value for item in Certainty)
    _fail(path, f"invalid certainty {value!r}; allowed: {allowed}")


__all__ = [
    "AdapterManifest",
    "ArtifactIndex",
    "ArtifactRecord",
    "Certainty",
    "CheckRecord",
    "Claim",
    "Commitment",
    "FunctionMap",
    "FunctionMatch",
    "GateType",
    "JSONScalar",
    "JSONValue",
    "MetricRecord",
    "Profile",
    "SessionSummary",
    "UnitRecord",
    "UnmatchedDiff",
    "Verdict",
    "VerdictStatus",
    "unit_identifier",
]
