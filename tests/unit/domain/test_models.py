"""Domain model parsing: strict field paths, lenient claim views and canonical dicts."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from evidence_gate.domain.models import (
    AdapterManifest,
    ArtifactIndex,
    Certainty,
    CheckRecord,
    Claim,
    Commitment,
    FunctionMap,
    GateType,
    Profile,
    Verdict,
    VerdictStatus,
    unit_identifier,
)


def test_commitment_reads_nested_sections_and_profile_alias() -> None:
    commitment = Commitment.from_mapping(
        {
            "task_id": "T-1",
            "type": "code_change",
            "profile": "strict",
            "commitments": {"expected_total": 3, "quality": {"word_min": 250}},
            "requirements": {"functions": ["parse"], "endpoints": ["/health"]},
        }
    )

    assert commitment == Commitment(
        task_id="T-1",
        type="code_change",
        profile_name="strict",
        expected_total=3,
        word_min=250,
        required_functions=("parse",),
        required_endpoints=("/health",),
    )


def test_commitment_errors_name_the_offending_field() -> None:
    with pytest.raises(ValueError, match=r"commitment\.commitments\.expected_total: must be >= 0"):
        Commitment.from_mapping({"commitments": {"expected_total": -1}})


def test_claim_view_never_rejects_a_document() -> None:
    empty = Claim.from_mapping(None)
    odd = Claim.from_mapping({"task_id": "  ", "claim": {"units_total": True, "units_list": "x"}})
    claim = Claim.from_mapping(
        {"task_id": " T-2 ", "claim": {"units_total": 2.0, "units_list": ["a", {"path": "b.md"}]}}
    )

    assert (empty.task_id, empty.units_total, empty.units_list) == (None, 0, ())
    assert (odd.task_id, odd.units_total, odd.units_list) == (None, 0, ())
    assert claim.task_id == "T-2"
    assert claim.units_total == 2
    assert claim.unit_ids == ("a", "b.md")


def test_profile_aliases_and_defaults() -> None:
    profile = Profile.from_mapping(
        "lenient",
        {"test_pass_required": True, "function_certainty_required": "certain_or_fuzzy"},
    )

    assert profile.tests_required is True
    assert profile.lint_clean is True
    assert profile.function_certainty_required is Certainty.FUZZY
    assert profile.coverage_min is None


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"lint_clean": "yes"}, "profiles.p.lint_clean: expected boolean, got str"),
        ({"coverage_min": -5}, "profiles.p.coverage_min: must be >= 0"),
        ({"function_certainty_required": "maybe"}, "invalid certainty 'maybe'"),
    ],
)
def test_profile_rejects_bad_values(payload: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Profile.from_mapping("p", payload)


def test_function_map_counts_matches_against_certainty_bar() -> None:
    function_map = FunctionMap.from_mapping(
        {
            "matched": [
                {"claim": "a", "symbol": "a", "certainty": "certain"},
                {"claim": "b", "function": "b", "certainty": " Fuzzy "},
                {"claim": "c", "symbol": "c"},
            ],
            "unmatched_claims": [{"name": "d"}],
            "unmatched_diffs": [{"file": "x.py", "significant": True}, {"significant": False}],
        }
    )

    assert function_map.matched_count(Certainty.CERTAIN) == 1
    assert function_map.matched_count(Certainty.FUZZY) == 2
    assert function_map.matched[1].symbol == "b"
    assert function_map.unmatched_claims == ("d",)
    assert [item.file for item in function_map.significant_unmatched_diffs] == ["x.py"]
    assert function_map.unmatched_diffs[1].file == "<unknown>"


def test_verdict_dict_flattens_check_details_and_omits_unset_gate_type() -> None:
    checks = (CheckRecord("lint_clean", False, {"errors": 2}),)
    verdict = Verdict(
        task_id="T-3",
        status=VerdictStatus.FAIL,
        type="code",
        profile="code_default",
        checks=checks,
        reasons=("Lint errors found: 2",),
        timestamp="2026-10-18T12:00:00.000Z",
    )

    payload = verdict.to_dict()

    assert payload["checks"] == [{"name": "lint_clean", "passed": False, "errors": 2}]
    assert "gate_type" not in payload
    assert verdict.passed is False

    typed = replace(verdict, gate_type=GateType.DIFF_MISMATCH)
    assert typed.to_dict()["gate_type"] == "DIFF_MISMATCH"


def test_artifact_index_parses_and_exposes_checksums() -> None:
    index = ArtifactIndex.from_mapping(
        {
            "task_id": "T-4",
            "task_dir": "/runs/T-4",
            "timestamp": "2026-10-18T12:00:00.000Z",
            "files": [
                {"path": "a.json", "size": 2, "modified": "2026-10-18T12:00:00Z", "checksum": "f"}
            ],
            "artifacts": [{"type": "lint", "path": "lint.json"}, {"path": "loose.txt"}],
        }
    )

    assert index.checksums == {"a.json": "f"}
    assert index.artifact_types() == frozenset({"lint"})
    assert index.to_dict()["summary"] == {}

    with pytest.raises(ValueError, match=r"artifact\.size: must be >= 0"):
        ArtifactIndex.from_mapping(
            {"files": [{"path": "a", "size": -1, "modified": "m", "checksum": "c"}]}
        )


def test_adapter_manifest_resolves_entry_relative_to_manifest(tmp_path: Path) -> None:
    manifest_path = tmp_path / "eslint" / "manifest.json"

    manifest = AdapterManifest.from_mapping(
        "eslint", manifest_path, {"capabilities": ["code:lint"], "entry": "bin/run.sh"}
    )

    assert manifest.entry_path == (tmp_path / "eslint" / "bin" / "run.sh").resolve()
    with pytest.raises(ValueError, match=r"adapters\.eslint\.entry: expected string"):
        AdapterManifest.from_mapping("eslint", manifest_path, {"capabilities": []})


@pytest.mark.parametrize(
    ("unit", "expected"),
    [
        ("plain", "plain"),
        ({"id": "u1", "name": "n"}, "u1"),
        ({"url": "https://x"}, "https://x"),
        (7, "7"),
    ],
)
def test_unit_identifier(unit: object, expected: str) -> None:
    assert unit_identifier(unit) == expected
