"""
evidence-gate: domain types

File: src/evidence_gate/domain/__init__.py
Last updated: 2026-10-18

Purpose
- Domain types shared across components: Commitment, Claim, Profile, FunctionMap,
  Verdict, ArtifactIndex, AdapterManifest, and persisted unit/metric/session records.

Functional requirements
- Domain objects are immutable and serialize deterministically.
- The domain layer performs no IO.
"""

from evidence_gate.domain.models import (
    AdapterManifest,
    ArtifactIndex,
    ArtifactRecord,
    Certainty,
    CheckRecord,
    Claim,
    Commitment,
    FunctionMap,
    FunctionMatch,
    GateType,
    JSONScalar,
    JSONValue,
    MetricRecord,
    Profile,
    SessionSummary,
    UnitRecord,
    UnmatchedDiff,
    Verdict,
    VerdictStatus,
    unit_identifier,
)

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
