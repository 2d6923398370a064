"""
evidence-gate: unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-10-18

Purpose
- Validate the built-in defaults, strict key checks and redaction.

What this test file should cover
- Every issue is collected with its dotted path before failing.
- Secret-looking keys are rejected and redacted.
"""

from __future__ import annotations

import pytest

from evidence_gate.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _issues(config: object) -> dict[str, str]:
    return {issue.path: issue.message for issue in validate_config(config).issues}


def test_defaults_are_valid_and_copied() -> None:
    config = default_config()
    config["gate"]["write_verdict"] = True

    assert assert_valid_config(default_config())["gate"]["write_verdict"] is False
    assert validate_config(default_config()).is_valid


def test_all_issues_are_reported_in_one_pass() -> None:
    config = merge_config(
        default_config(),
        {
            "gate": {"default_link_failure_threshold": 1.5},
            "observability": {"log_level": "TRACE"},
            "adapters": {"priority": ["eslint", "eslint", "bad name"]},
            "extras": {},
        },
    )

    issues = _issues(config)

    assert issues == {
        "extras": "unknown field",
        "gate.default_link_failure_threshold": "must be <= 1.0",
        "observability.log_level": (
            "invalid value 'TRACE'; expected one of: DEBUG, ERROR, INFO, WARNING"
        ),
        "adapters.priority[1]": "duplicate adapter name 'eslint'",
        "adapters.priority[2]": "invalid adapter name 'bad name'",
    }


def test_missing_sections_and_fields_are_reported() -> None:
    issues = _issues({"meta": {"schema_version": 1}, "paths": {"state_db": "db.sqlite"}})

    assert issues["paths.adapters_dir"] == "missing required field"
    assert issues["gate"] == "missing required field"
    assert "observability" in issues


def test_secret_looking_keys_are_rejected() -> None:
    config = merge_config(default_config(), {"gate": {"apiToken": "abc"}})

    assert _issues(config) == {
        "gate.apiToken": "embedded secret values are forbidden in config files"
    }


def test_schema_version_mismatch_carries_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    assert str(excinfo.value) == f"invalid config:\n- meta.schema_version: {migration_guidance(2)}"
    assert "upgrade the evidence-gate runtime" in migration_guidance(2)
    assert migration_guidance(1) == "schema version is current"


def test_non_mapping_root_is_invalid() -> None:
    result = validate_config(["not", "a", "mapping"])

    assert result.config is None
    assert result.issues[0].path == "<root>"


def test_redaction_masks_sensitive_keys_recursively() -> None:
    redacted = redact_config(
        {"paths": {"state_db": "db.sqlite"}, "extra": {"client_secret": "s", "nested": [1, 2]}}
    )

    assert redacted == {
        "extra": {"client_secret": "<redacted>", "nested": [1, 2]},
        "paths": {"state_db": "db.sqlite"},
    }
    assert redact_config("nope") == {}
