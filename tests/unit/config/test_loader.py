"""
evidence-gate: unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Redacted, reproducible effective config dumps.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from evidence_gate.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
)
from evidence_gate.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "evidence_gate.toml",
        """
[gate]
default_link_failure_threshold = 0.1
write_verdict = true

[observability]
log_level = "DEBUG"
log_format = "text"
""".strip(),
    )

    config = load_config(
        config_path,
        environ={
            "EGATE_GATE_DEFAULT_LINK_FAILURE_THRESHOLD": "0.2",
            "EGATE_OBSERVABILITY_LOG_LEVEL": "WARNING",
        },
        cli_overrides={"observability.log_level": "ERROR", "gate.write_verdict": None},
    )

    assert config["gate"] == {"default_link_failure_threshold": 0.2, "write_verdict": True}
    assert config["observability"]["log_level"] == "ERROR"
    assert config["observability"]["log_format"] == "text"
    assert config["observability"]["redact_secrets"] is True


def test_env_values_are_coerced_by_default_type(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path / "evidence_gate.toml", ""),
        environ={
            "EGATE_ADAPTERS_PRIORITY": "eslint, ruff,",
            "EGATE_GATE_WRITE_VERDICT": "yes",
            "EGATE_UNRELATED": "ignored",
        },
    )

    assert config["adapters"]["priority"] == ["eslint", "ruff"]
    assert config["gate"]["write_verdict"] is True
    assert env_name_for_path(("paths", "state_db")) == "EGATE_PATHS_STATE_DB"


@pytest.mark.parametrize(
    ("env_name", "raw", "message"),
    [
        ("EGATE_GATE_WRITE_VERDICT", "maybe", "must be a boolean"),
        ("EGATE_GATE_DEFAULT_LINK_FAILURE_THRESHOLD", "lots", "must be a number"),
        ("EGATE_META_SCHEMA_VERSION", "one", "must be an integer"),
    ],
)
def test_env_coercion_failures(tmp_path: Path, env_name: str, raw: str, message: str) -> None:
    config_path = _write_config(tmp_path / "evidence_gate.toml", "")

    with pytest.raises(ConfigLoadError, match=message):
        load_config(config_path, environ={env_name: raw})


def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conf" / "evidence_gate.toml",
        """
[paths]
state_db = "../state/outcomes.sqlite"
""".strip(),
    )

    config = load_config(config_path, environ={})

    root = tmp_path.resolve()
    assert config["paths"] == {
        "adapters_dir": (root / "conf" / "adapters").as_posix(),
        "profiles": (root / "conf" / "profiles.yaml").as_posix(),
        "state_db": (root / "state" / "outcomes.sqlite").as_posix(),
    }


def test_default_config_file_is_optional(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    expected = (tmp_path.resolve() / "state" / "verify.sqlite").as_posix()
    assert config["paths"]["state_db"] == expected


def test_explicit_missing_or_broken_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})

    broken = _write_config(tmp_path / "broken.toml", "[gate\n")
    with pytest.raises(ConfigLoadError, match="invalid TOML in"):
        load_config(broken, environ={})


def test_file_with_unknown_keys_fails_validation(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "evidence_gate.toml",
        """
[gate]
strictness = 3
""".strip(),
    )

    with pytest.raises(ConfigValidationError, match="gate.strictness: unknown field"):
        load_config(config_path, environ={})


def test_effective_config_dump_is_reproducible(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "evidence_gate.toml", "")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    assert first.startswith('{"adapters":{"priority":[]}')
