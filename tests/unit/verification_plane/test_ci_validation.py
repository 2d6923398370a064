"""CI artifact validator: fixed step order, per-step issues and exit code mapping."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from evidence_gate.artifacts.integrity import write_checksum_manifest
from evidence_gate.constants import CLAIM_SCHEMA_VERSION
from evidence_gate.domain.models import Profile
from evidence_gate.verification_plane.ci_validation import (
    EXIT_MISSING_DOCUMENTS,
    EXIT_OK,
    EXIT_VALIDATION_FAILED,
    validate_task_artifacts,
)


def _write(root: Path, rel_path: str, payload: object) -> None:
    target = root / rel_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload), encoding="utf-8")


def _code_task(root: Path, *, units: int = 1) -> Path:
    _write(
        root,
        "claim.json",
        {
            "schema_version": CLAIM_SCHEMA_VERSION,
            "actor": "worker-1",
            "task_id": "T-7",
            "timestamp": "2026-10-18T12:00:00Z",
            "claim": {
                "type": "code_update",
                "units_total": units,
                "units_list": ["func:a"],
                "scope": {"repo_root": "."},
                "declared": {"intent": "add a"},
            },
        },
    )
    _write(root, "commitment.json", {"task_id": "T-7", "type": "code_update"})
    _write(root, "diff.json", {"files": ["src/a.py"]})
    _write(root, "diff_names.json", ["src/a.py"])
    _write(root, "lint.json", {"errors": 0, "warnings": 0})
    return root


def _steps(report) -> list[str]:
    return [issue.step for issue in report.issues]


def test_complete_code_task_passes(tmp_path: Path) -> None:
    report = validate_task_artifacts(_code_task(tmp_path))

    assert report.ok is True
    assert report.exit_code == EXIT_OK
    assert report.task_type == "code_update"
    assert report.profile == "code_update_default"
    assert report.json_files == 5


def test_missing_task_documents_exit_one(tmp_path: Path) -> None:
    _write(tmp_path, "diff.json", {"files": []})

    report = validate_task_artifacts(tmp_path)

    assert report.missing_documents == ("claim.json", "commitment.json")
    assert report.exit_code == EXIT_MISSING_DOCUMENTS
    assert report.to_dict()["ok"] is False


def test_every_step_runs_and_reports_its_own_issues(tmp_path: Path) -> None:
    _code_task(tmp_path, units=3)
    (tmp_path / "lint.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "diff_names.json").unlink()

    report = validate_task_artifacts(tmp_path)

    assert report.exit_code == EXIT_VALIDATION_FAILED
    assert _steps(report) == ["json", "claim", "required_artifacts"]
    assert report.issues[0].path == "lint.json"
    assert report.issues[2].to_dict() == {
        "step": "required_artifacts",
        "message": "missing required artifact code:diff_names",
        "path": "diff_names.json",
    }


def test_profile_flags_extend_required_artifacts(tmp_path: Path) -> None:
    _code_task(tmp_path)
    profiles = {
        "code_update_default": Profile(
            name="code_update_default",
            coverage_min=80.0,
            required_artifacts=("custom:sbom",),
        )
    }

    report = validate_task_artifacts(tmp_path, profiles=profiles)

    assert [issue.message for issue in report.issues] == [
        "missing required artifact code:coverage",
        "missing required artifact custom:sbom",
    ]
    assert report.issues[1].path is None


def test_tampered_file_fails_checksum_step(tmp_path: Path) -> None:
    _code_task(tmp_path)
    write_checksum_manifest(tmp_path)
    _write(tmp_path, "diff.json", {"files": ["src/b.py"]})

    report = validate_task_artifacts(tmp_path)

    assert report.exit_code == EXIT_VALIDATION_FAILED
    assert [(issue.step, issue.path) for issue in report.issues] == [("checksums", "diff.json")]


def test_undecodable_claim_is_a_validation_failure(tmp_path: Path) -> None:
    _code_task(tmp_path)
    (tmp_path / "claim.json").write_bytes(b'{"actor": "\xff"}')

    report = validate_task_artifacts(tmp_path)

    assert report.exit_code == EXIT_VALIDATION_FAILED
    assert [(issue.step, issue.path) for issue in report.issues] == [
        ("json", "claim.json"),
        ("claim", "claim.json"),
    ]
    assert report.issues[1].message == "claim file is not readable JSON"


def test_missing_task_dir_raises(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        validate_task_artifacts(tmp_path / "absent")
