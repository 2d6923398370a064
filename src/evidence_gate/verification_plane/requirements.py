"""
evidence-gate: required-artifact table

File: src/evidence_gate/verification_plane/requirements.py
Last updated: 2026-10-18

Purpose
- Single table answering "which evidence must exist for this task type and profile".
  Both the gate (profile-declared requirements) and the CI validator (full task
  requirements) read it.

Functional requirements
- Each requirement names an artifact type and, where one exists, the fixed file that
  carries it.
- Output order is stable and free of duplicates.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from evidence_gate.artifacts.indexer import ARTIFACT_TYPE_FILES
from evidence_gate.constants import (
    API_TASK_TYPES,
    CLAIM_FILE,
    CODE_TASK_TYPES,
    COMMITMENT_FILE,
    CONTENT_TASK_TYPES,
    LINK_TASK_TYPES,
)
from evidence_gate.domain.models import Profile

ProfilePredicate = Callable[[Profile], bool]
FamilyRules = tuple[tuple[str, ProfilePredicate], ...]

TASK_DOCUMENT_TYPES: Final[dict[str, str]] = {
    "task:claim": CLAIM_FILE,
    "task:commitment": COMMITMENT_FILE,
}


@dataclass(frozen=True, slots=True)
class RequiredArtifact:
    """One artifact a task must provide; ``path`` is ``None`` for unmapped types."""

    artifact_type: str
    path: str | None

    def to_dict(self) -> dict[str, str | None]:
        return {"type": self.artifact_type, "path": self.path}


def _always(_profile: Profile) -> bool:
    return True


_TASK_FAMILY_RULES: Final[tuple[tuple[frozenset[str], FamilyRules], ...]] = (
    (
        CODE_TASK_TYPES,
        (
            ("code:diff", _always),
            ("code:diff_names", _always),
            ("code:lint", lambda profile: profile.lint_clean is not False),
            ("code:tests", lambda profile: profile.tests_required),
            ("code:coverage", lambda profile: profile.coverage_min is not None),
        ),
    ),
    (
        LINK_TASK_TYPES,
        (
            ("links:urlset", _always),
            ("links:check", _always),
        ),
    ),
    (CONTENT_TASK_TYPES, (("content:scan", _always),)),
    (API_TASK_TYPES, (("api:schema", lambda profile: profile.schema_required),)),
)


def required_artifacts(
    task_type: str,
    profile: Profile,
    *,
    include_defaults: bool = True,
    include_documents: bool = False,
) -> tuple[RequiredArtifact, ...]:
    """
    Return the artifacts required for ``task_type`` under ``profile``.

    ``include_defaults`` adds the per-family table entries; ``include_documents`` adds
    the claim and commitment files. ``profile.required_artifacts`` is always included.
    """

    types: list[str] = []
    if include_documents:
        types.extend(TASK_DOCUMENT_TYPES)
    if include_defaults:
        for family, rules in _TASK_FAMILY_RULES:
            if task_type not in family:
                continue
            types.extend(artifact_type for artifact_type, applies in rules if applies(profile))
    types.extend(profile.required_artifacts)

    seen: set[str] = set()
    out: list[RequiredArtifact] = []
    for artifact_type in types:
        if artifact_type in seen:
            continue
        seen.add(artifact_type)
        out.append(RequiredArtifact(artifact_type, artifact_path(artifact_type)))
    return tuple(out)


def artifact_path(artifact_type: str) -> str | None:
    """Return the fixed file carrying ``artifact_type``, if it has one."""

    if artifact_type in TASK_DOCUMENT_TYPES:
        return TASK_DOCUMENT_TYPES[artifact_type]
    return ARTIFACT_TYPE_FILES.get(artifact_type)


__all__ = [
    "TASK_DOCUMENT_TYPES",
    "RequiredArtifact",
    "artifact_path",
    "required_artifacts",
]
