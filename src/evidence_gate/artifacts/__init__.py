"""Artifact indexing and tamper detection for task evidence directories."""

from evidence_gate.artifacts.indexer import (
    ARTIFACT_TYPE_FILES,
    build_artifact_index,
    write_artifact_index,
)
from evidence_gate.artifacts.integrity import (
    IntegrityFailure,
    IntegrityReport,
    verify_integrity,
    write_checksum_manifest,
)

__all__ = [
    "ARTIFACT_TYPE_FILES",
    "IntegrityFailure",
    "IntegrityReport",
    "build_artifact_index",
    "verify_integrity",
    "write_artifact_index",
    "write_checksum_manifest",
]
