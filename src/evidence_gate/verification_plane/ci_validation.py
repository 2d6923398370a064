"""
evidence-gate: CI artifact validator

File: src/evidence_gate/verification_plane/ci_validation.py
Last updated: 2026-10-18

Purpose
- Pre-gate structural validation of a task evidence directory for CI pipelines.

Functional requirements
- Steps run in a fixed order and all of them run: task documents present, every JSON file
  parses, claim structure, required artifacts for the task type and profile, checksums.
- Exit codes: 0 all checks pass, 1 claim or commitment file missing, 2 any other failure.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import structlog

from evidence_gate.artifacts.indexer import build_artifact_index
from evidence_gate.artifacts.integrity import verify_integrity
from evidence_gate.claims.validator import validate_claim
from evidence_gate.constants import ARTIFACT_INDEX_FILE, CLAIM_FILE, COMMITMENT_FILE
from evidence_gate.domain.models import ArtifactIndex, Claim, Commitment, JSONValue, Profile
from evidence_gate.utils.fs import read_json_optional
from evidence_gate.utils.hashing import iter_regular_files
from evidence_gate.verification_plane.requirements import required_artifacts

EXIT_OK: Final[int] = 0
EXIT_MISSING_DOCUMENTS: Final[int] = 1
EXIT_VALIDATION_FAILED: Final[int] = 2

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CIValidationIssue:
    step: str
    message: str
    path: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"step": self.step, "message": self.message, "path": self.path}


@dataclass(frozen=True, slots=True)
class CIValidationReport:
    task_dir: str
    task_type: str
    profile: str
    json_files: int
    missing_documents: tuple[str, ...]
    issues: tuple[CIValidationIssue, ...]

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def exit_code(self) -> int:
        if self.missing_documents:
            return EXIT_MISSING_DOCUMENTS
        if self.issues:
            return EXIT_VALIDATION_FAILED
        return EXIT_OK

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task_dir": self.task_dir,
            "task_type": self.task_type,
            "profile": self.profile,
            "ok": self.ok,
            "json_files": self.json_files,
            "missing_documents": list(self.missing_documents),
            "issues": [issue.to_dict() for issue in self.issues],
        }


def validate_task_artifacts(
    task_dir: str | Path,
    *,
    profiles: Mapping[str, Profile] | None = None,
) -> CIValidationReport:
    """Validate ``task_dir`` and return a report carrying every issue found."""

    root = Path(task_dir)
    if not root.is_dir():
        raise NotADirectoryError(f"task directory not found: {root}")

    issues: list[CIValidationIssue] = []
    missing_documents = tuple(
        name for name in (CLAIM_FILE, COMMITMENT_FILE) if not (root / name).is_file()
    )

    json_files = 0
    for rel_path, file_path in iter_regular_files(root):
        if not rel_path.endswith(".json"):
            continue
        json_files += 1
        try:
            json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            issues.append(CIValidationIssue("json", f"invalid JSON: {exc}", rel_path))

    claim_raw = read_json_optional(root / CLAIM_FILE)
    if isinstance(claim_raw, Mapping):
        result = validate_claim(claim_raw)
        issues.extend(CIValidationIssue("claim", error, CLAIM_FILE) for error in result.errors)
    elif claim_raw is not None:
        issues.append(CIValidationIssue("claim", "claim root must be a JSON object", CLAIM_FILE))
    elif (root / CLAIM_FILE).is_file():
        issues.append(CIValidationIssue("claim", "claim file is not readable JSON", CLAIM_FILE))

    commitment = Commitment()
    commitment_raw = read_json_optional(root / COMMITMENT_FILE)
    if isinstance(commitment_raw, Mapping):
        try:
            commitment = Commitment.from_mapping(commitment_raw)
        except ValueError as exc:
            issues.append(CIValidationIssue("commitment", str(exc), COMMITMENT_FILE))

    claim = Claim.from_mapping(claim_raw if isinstance(claim_raw, Mapping) else None)
    task_type = commitment.type or claim.type or "unknown"
    profile_name = commitment.profile_name or f"{task_type}_default"
    profile = (profiles or {}).get(profile_name) or Profile(name=profile_name)

    indexed_types: frozenset[str] | None = None
    for requirement in required_artifacts(task_type, profile, include_documents=True):
        if requirement.path is not None:
            if not (root / requirement.path).is_file():
                issues.append(
                    CIValidationIssue(
                        "required_artifacts",
                        f"missing required artifact {requirement.artifact_type}",
                        requirement.path,
                    )
                )
            continue
        if indexed_types is None:
            indexed_types = build_artifact_index(root).artifact_types()
        if requirement.artifact_type not in indexed_types:
            issues.append(
                CIValidationIssue(
                    "required_artifacts",
                    f"missing required artifact {requirement.artifact_type}",
                )
            )

    integrity = verify_integrity(root, index=_load_index(root))
    for failure in integrity.failures:
        issues.append(CIValidationIssue("checksums", failure.reason, failure.path))

    report = CIValidationReport(
        task_dir=str(root),
        task_type=task_type,
        profile=profile_name,
        json_files=json_files,
        missing_documents=missing_documents,
        issues=tuple(issues),
    )
    logger.info(
        "ci_validation_complete",
        task_dir=str(root),
        task_type=task_type,
        ok=report.ok,
        issues=len(report.issues),
        exit_code=report.exit_code,
    )
    return report


def _load_index(root: Path) -> ArtifactIndex | None:
    payload = read_json_optional(root / ARTIFACT_INDEX_FILE)
    if not isinstance(payload, Mapping):
        return None
    try:
        return ArtifactIndex.from_mapping(payload)
    except ValueError as exc:
        logger.warning("artifact_index_unusable", task_dir=str(root), error=str(exc))
        return None


__all__ = [
    "EXIT_MISSING_DOCUMENTS",
    "EXIT_OK",
    "EXIT_VALIDATION_FAILED",
    "CIValidationIssue",
    "CIValidationReport",
    "validate_task_artifacts",
]
