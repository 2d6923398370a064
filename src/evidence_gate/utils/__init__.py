"""Utility exports for filesystem and hashing helpers."""

from evidence_gate.utils.fs import (
    JSONReadError,
    atomic_write,
    atomic_write_json,
    read_json,
    read_json_optional,
)
from evidence_gate.utils.hashing import (
    ChecksumLine,
    create_manifest,
    is_sha256_hex,
    iter_regular_files,
    parse_checksum_manifest,
    render_checksum_manifest,
    sha256_file,
)

__all__ = [
    "ChecksumLine",
    "JSONReadError",
    "atomic_write",
    "atomic_write_json",
    "create_manifest",
    "is_sha256_hex",
    "iter_regular_files",
    "parse_checksum_manifest",
    "read_json",
    "read_json_optional",
    "render_checksum_manifest",
    "sha256_file",
]
