"""Atomic writes and strict/best-effort JSON readers."""

from __future__ import annotations

from pathlib import Path

import pytest

from evidence_gate.utils.fs import (
    JSONReadError,
    atomic_write,
    atomic_write_json,
    read_json,
    read_json_optional,
)


def test_atomic_write_json_is_sorted_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "out" / "verdict.json"

    atomic_write_json(target, {"status": "pass", "checks": [], "reasons": ["ü"]})
    atomic_write(target.with_name("note.txt"), b"raw")

    assert target.read_text(encoding="utf-8") == (
        '{\n  "checks": [],\n  "reasons": [\n    "ü"\n  ],\n  "status": "pass"\n}\n'
    )
    assert sorted(path.name for path in target.parent.iterdir()) == ["note.txt", "verdict.json"]


def test_atomic_write_replaces_existing_content(tmp_path: Path) -> None:
    target = tmp_path / "artifacts.json"
    target.write_text("old", encoding="utf-8")

    atomic_write(target, "new")

    assert target.read_text(encoding="utf-8") == "new"


def test_read_json_errors_and_optional_reader(tmp_path: Path) -> None:
    broken = tmp_path / "lint.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(JSONReadError, match="file not found"):
        read_json(tmp_path / "absent.json")
    with pytest.raises(JSONReadError, match="invalid JSON in"):
        read_json(broken)

    assert read_json_optional(broken) is None
    broken.write_bytes(b'{"note": "\xff\xfe"}')
    with pytest.raises(JSONReadError, match="not valid UTF-8"):
        read_json(broken)
    assert read_json_optional(broken) is None
    assert read_json_optional(tmp_path / "absent.json") is None
    broken.write_text('{"errors": 0}', encoding="utf-8")
    assert read_json(broken) == {"errors": 0}
