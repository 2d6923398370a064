"""Profile loading from YAML and JSON files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from evidence_gate.domain.models import Certainty
from evidence_gate.verification_plane.profiles import (
    ProfileLoadError,
    load_profiles,
    parse_profiles,
)


def test_yaml_profiles_are_parsed(tmp_path: Path) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text(
        """
profiles:
  code_default:
    tests_required: true
    coverage_min: 80
    function_certainty_required: fuzzy
  links_default:
    link_failure_threshold: 0.05
""".strip(),
        encoding="utf-8",
    )

    profiles = load_profiles(path)

    assert sorted(profiles) == ["code_default", "links_default"]
    code = profiles["code_default"]
    assert code.tests_required is True
    assert code.coverage_min == 80.0
    assert code.lint_clean is True
    assert code.function_certainty_required is Certainty.FUZZY
    assert profiles["links_default"].link_failure_threshold == 0.05


def test_json_profiles_without_wrapper(tmp_path: Path) -> None:
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps({"api_default": {"schema_required": True}}), encoding="utf-8")

    profiles = load_profiles(path)

    assert profiles["api_default"].schema_required is True
    assert profiles["api_default"].name == "api_default"


def test_legacy_test_pass_required_alias() -> None:
    profiles = parse_profiles({"code_default": {"test_pass_required": True}})

    assert profiles["code_default"].tests_required is True


def test_profile_named_profiles_is_not_mistaken_for_the_wrapper() -> None:
    profiles = parse_profiles(
        {"profiles": {"coverage_min": 90}, "code_default": {"tests_required": True}}
    )

    assert sorted(profiles) == ["code_default", "profiles"]
    assert profiles["profiles"].coverage_min == 90.0
    assert parse_profiles({"profiles": {"docs": {}}})["docs"].name == "docs"


def test_empty_document_yields_no_profiles() -> None:
    assert parse_profiles(None) == {}


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (["code_default"], "profiles root must be a mapping"),
        ({"code_default": {"coverage_min": "high"}}, "profiles.code_default.coverage_min"),
        ({"code_default": {"function_certainty_required": "maybe"}}, "certainty"),
    ],
)
def test_invalid_profiles_raise_load_error(payload: object, message: str) -> None:
    with pytest.raises(ProfileLoadError, match=message):
        parse_profiles(payload, source="profiles.yaml")


def test_unreadable_or_undecodable_file(tmp_path: Path) -> None:
    with pytest.raises(ProfileLoadError, match="unable to read"):
        load_profiles(tmp_path / "missing.yaml")

    broken = tmp_path / "profiles.json"
    broken.write_text("{broken", encoding="utf-8")
    with pytest.raises(ProfileLoadError, match="invalid profiles file"):
        load_profiles(broken)

    broken.write_bytes(b'{"code_default": {"note": "\xff"}}')
    with pytest.raises(ProfileLoadError, match="unable to read"):
        load_profiles(broken)
