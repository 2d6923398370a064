"""Required-artifact table shared by the gate and the CI validator."""

from __future__ import annotations

import pytest

from evidence_gate.domain.models import Profile
from evidence_gate.verification_plane.requirements import artifact_path, required_artifacts


def _types(task_type: str, profile: Profile, **kwargs: bool) -> list[str]:
    return [item.artifact_type for item in required_artifacts(task_type, profile, **kwargs)]


def test_code_defaults_follow_profile_flags() -> None:
    assert _types("code", Profile(name="p")) == ["code:diff", "code:diff_names", "code:lint"]
    assert _types(
        "code_update",
        Profile(name="p", lint_clean=False, tests_required=True, coverage_min=80.0),
    ) == ["code:diff", "code:diff_names", "code:tests", "code:coverage"]


@pytest.mark.parametrize(
    ("task_type", "profile", "expected"),
    [
        ("links", Profile(name="p"), ["links:urlset", "links:check"]),
        ("content", Profile(name="p"), ["content:scan"]),
        ("api", Profile(name="p"), []),
        ("api_test", Profile(name="p", schema_required=True), ["api:schema"]),
        ("unknown", Profile(name="p"), []),
    ],
)
def test_family_defaults(task_type: str, profile: Profile, expected: list[str]) -> None:
    assert _types(task_type, profile) == expected


def test_documents_and_profile_extras_are_appended_without_duplicates() -> None:
    profile = Profile(name="p", required_artifacts=("code:diff", "custom:sbom"))

    assert _types("code", profile, include_documents=True) == [
        "task:claim",
        "task:commitment",
        "code:diff",
        "code:diff_names",
        "code:lint",
        "custom:sbom",
    ]
    assert _types("code", profile, include_defaults=False) == ["code:diff", "custom:sbom"]


def test_paths_come_from_the_fixed_filenames() -> None:
    requirements = required_artifacts(
        "links", Profile(name="p", required_artifacts=("custom:sbom",)), include_documents=True
    )

    assert [item.to_dict() for item in requirements] == [
        {"type": "task:claim", "path": "claim.json"},
        {"type": "task:commitment", "path": "commitment.json"},
        {"type": "links:urlset", "path": "links/urlset.json"},
        {"type": "links:check", "path": "links/statuses.json"},
        {"type": "custom:sbom", "path": None},
    ]
    assert artifact_path("api:schema") == "api/schema_result.json"
    assert artifact_path("nope") is None
