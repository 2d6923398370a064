"""
evidence-gate: verification plane public API.

File: src/evidence_gate/verification_plane/__init__.py
Last updated: 2026-10-18

Purpose
- Export the gate evaluator, the shared required-artifact table, profile loading and the
  CI artifact validator.

Non-functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from evidence_gate.verification_plane.ci_validation import (
    CIValidationIssue,
    CIValidationReport,
    validate_task_artifacts,
)
from evidence_gate.verification_plane.gate import (
    GateInputs,
    evaluate_gate,
    load_gate_inputs,
    looks_like_function_unit,
)
from evidence_gate.verification_plane.profiles import (
    ProfileLoadError,
    load_profiles,
    parse_profiles,
)
from evidence_gate.verification_plane.requirements import (
    RequiredArtifact,
    artifact_path,
    required_artifacts,
)

__all__ = [
    "CIValidationIssue",
    "CIValidationReport",
    "GateInputs",
    "ProfileLoadError",
    "RequiredArtifact",
    "artifact_path",
    "evaluate_gate",
    "load_gate_inputs",
    "load_profiles",
    "looks_like_function_unit",
    "parse_profiles",
    "required_artifacts",
    "validate_task_artifacts",
]
