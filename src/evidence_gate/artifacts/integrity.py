"""
evidence-gate: integrity verifier

File: src/evidence_gate/artifacts/integrity.py
Last updated: 2026-10-18

Purpose
- Detect evidence altered after capture by recomputing SHA-256 digests and comparing
  them against ``checksums.sha256`` and the index-recorded checksums.

Functional requirements
- No ``checksums.sha256`` means checksums were not opted into: verification passes.
- Every mismatch is a per-file failure; one corrupted file never masks another.
- ``checksums.sha256`` and ``artifacts.json`` are never verified against themselves.
- Result is a pure function of file bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

import structlog

from evidence_gate.constants import ARTIFACT_INDEX_FILE, CHECKSUMS_FILE
from evidence_gate.utils.fs import atomic_write
from evidence_gate.utils.hashing import (
    create_manifest,
    parse_checksum_manifest,
    render_checksum_manifest,
    sha256_file,
)

if TYPE_CHECKING:
    from evidence_gate.domain.models import ArtifactIndex

_SELF_REFERENTIAL_FILES: Final[frozenset[str]] = frozenset({CHECKSUMS_FILE, ARTIFACT_INDEX_FILE})

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class IntegrityFailure:
    path: str
    reason: str
    expected: str | None = None
    actual: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "path": self.path,
            "reason": self.reason,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    manifest_present: bool
    verified_paths: tuple[str, ...]
    failures: tuple[IntegrityFailure, ...]

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def failed_paths(self) -> tuple[str, ...]:
        return tuple(sorted({item.path for item in self.failures}))

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.is_valid,
            "manifest_present": self.manifest_present,
            "verified": list(self.verified_paths),
            "failures": [item.to_dict() for item in self.failures],
        }


def verify_integrity(
    task_dir: str | Path,
    *,
    index: ArtifactIndex | None = None,
) -> IntegrityReport:
    """Verify ``task_dir`` against its checksum manifest and optional artifact index."""

    root = Path(task_dir)
    if not root.is_dir():
        raise NotADirectoryError(f"task directory not found: {root}")

    manifest_path = root / CHECKSUMS_FILE
    if not manifest_path.is_file():
        return IntegrityReport(manifest_present=False, verified_paths=(), failures=())

    recorded = index.checksums if index is not None else {}
    verified: list[str] = []
    failures: list[IntegrityFailure] = []

    # Undecodable bytes surface as malformed lines or missing paths.
    manifest_text = manifest_path.read_bytes().decode("utf-8", errors="replace")
    entries = parse_checksum_manifest(manifest_text)
    for entry in entries:
        if entry.checksum is None:
            failures.append(
                IntegrityFailure(
                    path=entry.path,
                    reason=f"malformed manifest line {entry.line_number}: {entry.error}",
                )
            )
            continue
        if entry.path in _SELF_REFERENTIAL_FILES:
            continue

        target = root.joinpath(*PurePosixPath(entry.path).parts)
        if not target.is_file():
            failures.append(
                IntegrityFailure(path=entry.path, reason="file missing", expected=entry.checksum)
            )
            continue

        actual = sha256_file(target)
        file_ok = True
        if actual != entry.checksum:
            file_ok = False
            failures.append(
                IntegrityFailure(
                    path=entry.path,
                    reason="checksum mismatch against manifest",
                    expected=entry.checksum,
                    actual=actual,
                )
            )
        indexed = recorded.get(entry.path)
        if indexed is not None and indexed.lower() != actual:
            file_ok = False
            failures.append(
                IntegrityFailure(
                    path=entry.path,
                    reason="checksum mismatch against artifact index",
                    expected=indexed.lower(),
                    actual=actual,
                )
            )
        if file_ok:
            verified.append(entry.path)

    report = IntegrityReport(
        manifest_present=True,
        verified_paths=tuple(verified),
        failures=tuple(failures),
    )
    if not report.is_valid:
        logger.warning(
            "integrity_check_failed",
            task_dir=str(root),
            failed_paths=list(report.failed_paths),
        )
    return report


def write_checksum_manifest(task_dir: str | Path) -> dict[str, str]:
    """Hash every file in ``task_dir`` and atomically write ``checksums.sha256``."""

    root = Path(task_dir)
    if not root.is_dir():
        raise NotADirectoryError(f"task directory not found: {root}")
    manifest = create_manifest(root, exclude=_SELF_REFERENTIAL_FILES)
    atomic_write(root / CHECKSUMS_FILE, render_checksum_manifest(manifest))
    logger.info("checksum_manifest_written", task_dir=str(root), files=len(manifest))
    return manifest


__all__ = [
    "IntegrityFailure",
    "IntegrityReport",
    "verify_integrity",
    "write_checksum_manifest",
]
