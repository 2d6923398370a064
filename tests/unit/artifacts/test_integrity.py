"""Integrity verifier: manifest checks, index cross-checks and one-byte tamper detection."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from evidence_gate.artifacts.indexer import build_artifact_index
from evidence_gate.artifacts.integrity import verify_integrity, write_checksum_manifest

_FILES = {
    "diff.json": b'{"files": ["a.py"]}',
    "lint.json": b'{"errors": 0}',
    "nested/report.txt": b"all good\n",
}


def _populate(root: Path) -> None:
    for rel_path, data in _FILES.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


def test_absent_manifest_is_trivially_valid(tmp_path: Path) -> None:
    _populate(tmp_path)

    report = verify_integrity(tmp_path)

    assert report.is_valid is True
    assert report.manifest_present is False
    assert report.to_dict()["verified"] == []


def test_written_manifest_verifies_all_files(tmp_path: Path) -> None:
    _populate(tmp_path)

    manifest = write_checksum_manifest(tmp_path)
    report = verify_integrity(tmp_path)

    assert sorted(manifest) == sorted(_FILES)
    assert report.is_valid is True
    assert report.manifest_present is True
    assert sorted(report.verified_paths) == sorted(_FILES)


def test_mismatch_missing_file_and_malformed_line_are_per_file_failures(tmp_path: Path) -> None:
    _populate(tmp_path)
    write_checksum_manifest(tmp_path)
    manifest_path = tmp_path / "checksums.sha256"
    manifest_path.write_text(
        manifest_path.read_text(encoding="utf-8")
        + f"{hashlib.sha256(b'x').hexdigest()}  gone.json\nnot-a-line\n",
        encoding="utf-8",
    )
    (tmp_path / "lint.json").write_bytes(b'{"errors": 1}')

    report = verify_integrity(tmp_path)

    reasons = {failure.path: failure.reason for failure in report.failures}
    assert reasons["lint.json"] == "checksum mismatch against manifest"
    assert reasons["gone.json"] == "file missing"
    assert any(reason.startswith("malformed manifest line") for reason in reasons.values())
    assert "diff.json" in report.verified_paths
    assert report.is_valid is False


def test_index_recorded_checksum_is_cross_checked(tmp_path: Path) -> None:
    _populate(tmp_path)
    index = build_artifact_index(tmp_path)
    (tmp_path / "diff.json").write_bytes(b'{"files": []}')
    write_checksum_manifest(tmp_path)

    report = verify_integrity(tmp_path, index=index)

    assert report.failed_paths == ("diff.json",)
    assert report.failures[0].reason == "checksum mismatch against artifact index"


def test_undecodable_manifest_bytes_are_reported_not_raised(tmp_path: Path) -> None:
    _populate(tmp_path)
    write_checksum_manifest(tmp_path)
    with (tmp_path / "checksums.sha256").open("ab") as handle:
        handle.write(b"\xff\n")

    report = verify_integrity(tmp_path)

    assert report.is_valid is False
    assert [failure.reason for failure in report.failures] == [
        "malformed manifest line 4: expected '<sha256>  <path>'"
    ]
    assert sorted(report.verified_paths) == sorted(_FILES)


def test_missing_task_dir_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        verify_integrity(tmp_path / "absent")


@settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(
    target=st.sampled_from(sorted(_FILES)),
    position=st.integers(min_value=0, max_value=8),
    flip=st.integers(min_value=1, max_value=255),
)
def test_one_byte_mutation_fails_only_the_mutated_file(
    tmp_path_factory: pytest.TempPathFactory, target: str, position: int, flip: int
) -> None:
    root = tmp_path_factory.mktemp("task")
    _populate(root)
    write_checksum_manifest(root)
    assert verify_integrity(root).is_valid

    data = bytearray((root / target).read_bytes())
    data[position % len(data)] ^= flip
    (root / target).write_bytes(bytes(data))

    report = verify_integrity(root)

    assert report.failed_paths == (target,)
    assert sorted(report.verified_paths) == sorted(set(_FILES) - {target})
