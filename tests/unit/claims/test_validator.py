"""
evidence-gate: unit tests for the claim validator

File: tests/unit/claims/test_validator.py
Last updated: 2026-10-18

Purpose
- Validate schema tag, structure, unit-count consistency and forbidden-field policy.

What this test file should cover
- Every error is reported in one pass.
- ``units_total`` must equal ``len(units_list)`` for a valid claim.
- Forbidden fields are reported with their exact dotted path; scope subtrees are exempt.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from evidence_gate.claims.validator import (
    FORBIDDEN_FIELDS,
    ClaimDocumentError,
    find_forbidden_fields,
    load_claim,
    validate_claim,
)
from evidence_gate.constants import CLAIM_SCHEMA_VERSION


def _claim(**body_overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "type": "code_update",
        "units_total": 2,
        "units_list": ["func:parse", "func:render"],
        "scope": {"repo_root": ".", "files": ["src/app.py"]},
        "declared": {"intent": "refactor parser"},
    }
    body.update(body_overrides)
    return {
        "schema_version": CLAIM_SCHEMA_VERSION,
        "actor": "worker-1",
        "task_id": "T-100",
        "timestamp": "2026-10-18T12:00:00Z",
        "claim": body,
    }


def test_valid_claim_has_no_errors_or_warnings() -> None:
    result = validate_claim(_claim())

    assert result.valid is True
    assert result.errors == ()
    assert result.warnings == ()
    assert result.to_dict() == {"valid": True, "errors": [], "warnings": []}


def test_wrong_schema_version_is_rejected() -> None:
    document = _claim()
    document["schema_version"] = "verify.claim/v1.0"

    result = validate_claim(document)

    assert result.valid is False
    assert any("Invalid schema_version" in error for error in result.errors)


def test_all_problems_are_reported_in_one_pass() -> None:
    document = _claim(units_total=3)
    del document["actor"]
    document["timestamp"] = "yesterday"
    document["claim"]["coverage"] = 91  # type: ignore[index]

    result = validate_claim(document)

    assert "Missing required field: actor" in result.errors
    assert "Invalid timestamp: 'yesterday'" in result.errors
    assert "units_total (3) does not match units_list length (2)" in result.errors
    assert "Forbidden field 'coverage' at claim.coverage" in result.errors
    assert len(result.errors) == 4


def test_non_object_document_is_invalid() -> None:
    result = validate_claim(["not", "a", "claim"])

    assert result.valid is False
    assert result.errors == ("claim document must be an object, got list",)


def test_units_total_must_be_numeric_and_list_must_be_array() -> None:
    result = validate_claim(_claim(units_total="2", units_list="a,b"))

    assert "claim.units_total must be a number, got str" in result.errors
    assert "claim.units_list must be an array, got str" in result.errors


def test_missing_repo_root_and_declared_intent() -> None:
    document = _claim(scope={"files": []})
    del document["claim"]["declared"]  # type: ignore[attr-defined]

    result = validate_claim(document)

    assert "Missing required field: claim.scope.repo_root" in result.errors
    assert result.warnings == ("claim.declared is missing; intent is not stated",)


def test_forbidden_field_reported_with_nested_path() -> None:
    document = _claim(evidence=[{"ok": True}, {"metrics": {"lint_errors": 0}}])

    assert find_forbidden_fields(document) == ("claim.evidence[1].metrics.lint_errors",)
    result = validate_claim(document)
    assert "Forbidden field 'lint_errors' at claim.evidence[1].metrics.lint_errors" in (
        result.errors
    )


def test_scope_files_and_functions_are_exempt_from_forbidden_scan() -> None:
    document = _claim(
        scope={
            "repo_root": ".",
            "files": [{"path": "a.py", "line_count": 40}],
            "functions": {"coverage": "named, not measured"},
        }
    )

    assert find_forbidden_fields(document) == ()
    assert validate_claim(document).valid is True


def test_load_claim_reports_missing_and_undecodable_files(tmp_path: Path) -> None:
    with pytest.raises(ClaimDocumentError, match="claim file not found"):
        load_claim(tmp_path / "missing.json")

    broken = tmp_path / "claim.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ClaimDocumentError, match="invalid JSON"):
        load_claim(broken)

    broken.write_bytes(b'{"actor": "\xff"}')
    with pytest.raises(ClaimDocumentError, match="not valid UTF-8"):
        load_claim(broken)

    broken.write_text(json.dumps(_claim()), encoding="utf-8")
    assert validate_claim(load_claim(broken)).valid is True


_units = st.lists(st.text(min_size=1, max_size=12), max_size=8)


@settings(max_examples=60, deadline=None)
@given(units=_units, delta=st.integers(min_value=-3, max_value=3))
def test_valid_claims_always_have_matching_unit_totals(units: list[str], delta: int) -> None:
    result = validate_claim(_claim(units_list=units, units_total=len(units) + delta))

    if result.valid:
        assert delta == 0
    else:
        assert delta != 0
        assert any("does not match units_list length" in error for error in result.errors)


@settings(max_examples=60, deadline=None)
@given(
    field=st.sampled_from(sorted(FORBIDDEN_FIELDS)),
    depth=st.integers(min_value=0, max_value=3),
)
def test_forbidden_field_path_is_exact_at_any_depth(field: str, depth: int) -> None:
    document = copy.deepcopy(_claim())
    node: dict[str, object] = document["claim"]  # type: ignore[assignment]
    path = "claim"
    for level in range(depth):
        child: dict[str, object] = {}
        node[f"n{level}"] = child
        node = child
        path = f"{path}.n{level}"
    node[field] = 1

    assert find_forbidden_fields(document) == (f"{path}.{field}",)
