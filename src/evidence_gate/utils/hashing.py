"""
evidence-gate: hashing utilities

File: src/evidence_gate/utils/hashing.py
Last updated: 2026-10-18

Purpose
- Provide deterministic SHA-256 helpers for files.
- Walk task evidence directories and build/parse ``checksums.sha256`` manifests.

Functional requirements
- Manifest paths are relative POSIX strings with deterministic ordering.
- Manifest text format is one ``<sha256>  <relative path>`` entry per line.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import os
import stat
import string
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator, Mapping

PathLike = str | os.PathLike[str]

_SHA256_HEX_LENGTH = 64
_FILE_READ_CHUNK_BYTES = 1024 * 1024
_HEX_DIGITS = set(string.hexdigits)

__all__ = [
    "ChecksumLine",
    "create_manifest",
    "is_sha256_hex",
    "iter_regular_files",
    "parse_checksum_manifest",
    "render_checksum_manifest",
    "sha256_file",
]


@dataclass(frozen=True, slots=True)
class ChecksumLine:
    """One parsed line of a checksum manifest."""

    line_number: int
    path: str
    checksum: str | None
    error: str | None = None


def sha256_file(path: PathLike, *, chunk_size: int = _FILE_READ_CHUNK_BYTES) -> str:
    """Return SHA-256 hex digest for a file read in chunks."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with Path(path).open("rb") as file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def is_sha256_hex(value: str) -> bool:
    return len(value) == _SHA256_HEX_LENGTH and set(value).issubset(_HEX_DIGITS)


def iter_regular_files(directory: PathLike) -> Iterator[tuple[str, Path]]:
    """
    Yield ``(relative_posix_path, absolute_path)`` for every regular file under ``directory``.

    Traversal is unbounded in depth, does not follow symlinks, and is sorted so
    repeated walks over an unchanged tree yield the same sequence.
    """

    root = Path(directory).resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(f"{root!s} is not a directory")

    for current_dir, dir_names, file_names in os.walk(root, topdown=True, followlinks=False):
        dir_names.sort()
        file_names.sort()
        current = Path(current_dir)
        for file_name in file_names:
            file_path = current / file_name
            try:
                mode = file_path.lstat().st_mode
            except FileNotFoundError:
                # Vanished mid-walk; callers rebuild the index wholesale anyway.
                continue
            if not stat.S_ISREG(mode):
                continue
            yield file_path.relative_to(root).as_posix(), file_path


def create_manifest(
    directory: PathLike,
    *,
    exclude: Collection[str] = (),
) -> dict[str, str]:
    """Build a deterministic ``relative path -> sha256`` manifest for ``directory``."""

    manifest: dict[str, str] = {}
    for rel_path, file_path in iter_regular_files(directory):
        if rel_path in exclude:
            continue
        manifest[rel_path] = sha256_file(file_path)
    return dict(sorted(manifest.items(), key=lambda item: item[0]))


def render_checksum_manifest(manifest: Mapping[str, str]) -> str:
    """Render a manifest in ``sha256sum`` text format."""

    lines = [f"{manifest[path].lower()}  {path}" for path in sorted(manifest)]
    return "\n".join(lines) + ("\n" if lines else "")


def parse_checksum_manifest(text: str) -> list[ChecksumLine]:
    """
    Parse ``sha256sum``-style manifest text.

    Blank lines and ``#`` comments are skipped. Lines that cannot be parsed are
    returned with ``checksum=None`` and an ``error`` so callers can report them.
    """

    entries: list[ChecksumLine] = []
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            entries.append(
                ChecksumLine(line_number, line, None, error="expected '<sha256>  <path>'")
            )
            continue
        checksum, raw_path = parts
        # sha256sum marks binary-mode entries with a leading '*'.
        rel_path = raw_path.strip().removeprefix("*")
        if not is_sha256_hex(checksum):
            entries.append(
                ChecksumLine(line_number, rel_path, None, error="invalid SHA-256 hex digest")
            )
            continue
        problem = _unsafe_path_reason(rel_path)
        if problem is not None:
            entries.append(ChecksumLine(line_number, rel_path, None, error=problem))
            continue
        entries.append(ChecksumLine(line_number, rel_path, checksum.lower()))
    return entries


def _unsafe_path_reason(relative_posix_path: str) -> str | None:
    if not relative_posix_path:
        return "manifest path cannot be empty"
    if "\\" in relative_posix_path:
        return "manifest path must use POSIX separators"
    posix_path = PurePosixPath(relative_posix_path)
    if posix_path.is_absolute():
        return "manifest path must be relative"
    if any(part in {"", ".."} for part in posix_path.parts):
        return "manifest path is not safe"
    return None
