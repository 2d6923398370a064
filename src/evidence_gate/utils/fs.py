"""
evidence-gate: filesystem helpers

File: src/evidence_gate/utils/fs.py
Last updated: 2026-10-18

Purpose
- Atomic writes for gate outputs (``artifacts.json``, ``verdict.json``, ``checksums.sha256``).
- Strict and best-effort JSON readers for task evidence files.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "JSONReadError",
    "atomic_write",
    "atomic_write_json",
    "read_json",
    "read_json_optional",
]


class JSONReadError(ValueError):
    """Raised when a required JSON document is missing or cannot be decoded."""


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    payload = data if isinstance(data, bytes) else data.encode(encoding)
    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def atomic_write_json(path: PathLike, payload: object) -> None:
    """Write ``payload`` as indented, key-sorted JSON."""

    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
    atomic_write(path, text + "\n")


def read_json(path: PathLike) -> object:
    """Read a required JSON document; raise ``JSONReadError`` on any failure."""

    target = Path(path)
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise JSONReadError(f"file not found: {target}") from exc
    except OSError as exc:
        raise JSONReadError(f"unable to read {target}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise JSONReadError(f"{target} is not valid UTF-8: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise JSONReadError(f"invalid JSON in {target}: {exc}") from exc


def read_json_optional(path: PathLike) -> object | None:
    """Read a best-effort JSON document; missing or malformed files yield ``None``."""

    try:
        return read_json(path)
    except JSONReadError:
        return None
