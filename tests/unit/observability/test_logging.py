"""
evidence-gate: unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-18

Purpose
- Validate structured decision logging with redaction and correlation metadata.

What this test file should cover
- JSON line validity and redaction guarantees.
- Level filtering and the text renderer.
- Correlation field propagation and scope cleanup.
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterator

import pytest
import structlog

from evidence_gate.observability.logging import (
    REDACTED_VALUE,
    correlation_scope,
    redact_text,
    redact_value,
    reset_logging,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    reset_logging()


def _records(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_lines_are_valid_and_redacted() -> None:
    stream = io.StringIO()
    setup_logging("INFO", "json", stream=stream)

    structlog.get_logger("tests").info(
        "gate_verdict",
        task_id="T-1",
        api_token="abc123",
        detail="retrying with password=hunter2",
        headers={"Authorization": "Bearer abc.def", "accept": "json"},
    )

    (record,) = _records(stream)
    assert record["event"] == "gate_verdict"
    assert record["level"] == "info"
    assert str(record["timestamp"]).endswith("Z")
    assert record["api_token"] == REDACTED_VALUE
    assert record["detail"] == f"retrying with password={REDACTED_VALUE}"
    assert record["headers"] == {"Authorization": REDACTED_VALUE, "accept": "json"}


def test_level_filtering_and_text_renderer() -> None:
    stream = io.StringIO()
    setup_logging("WARNING", "text", stream=stream)
    logger = structlog.get_logger("tests")

    logger.info("hidden")
    logger.warning("adapter_manifest_skipped", path="adapters/broken")

    lines = stream.getvalue().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("timestamp=")
    assert "level='warning' event='adapter_manifest_skipped'" in lines[0]


def test_redaction_can_be_disabled() -> None:
    stream = io.StringIO()
    setup_logging(stream=stream, redact_secrets=False)

    structlog.get_logger("tests").info("raw", api_token="abc123")

    assert _records(stream)[0]["api_token"] == "abc123"


def test_correlation_fields_are_bound_within_scope() -> None:
    stream = io.StringIO()
    setup_logging("DEBUG", "json", stream=stream)
    logger = structlog.get_logger("tests")

    with correlation_scope(command="gate", run_id=None):
        with correlation_scope(task_id=" T-9 "):
            logger.debug("inside")
        logger.debug("outer")
    logger.debug("after")

    inside, outer, after = _records(stream)
    assert (inside["command"], inside["task_id"]) == ("gate", "T-9")
    assert "task_id" not in outer
    assert "command" not in after
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.parametrize(
    ("fields", "message"),
    [
        ({"user": "alice"}, "unsupported correlation key"),
        ({"task_id": "  "}, "must be a non-empty string"),
    ],
)
def test_correlation_scope_rejects_bad_fields(fields: dict[str, str], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        with correlation_scope(**fields):
            pass


@pytest.mark.parametrize(("level", "log_format"), [("LOUD", "json"), ("INFO", "xml")])
def test_setup_rejects_unknown_level_or_format(level: str, log_format: str) -> None:
    with pytest.raises(ValueError, match="unknown log"):
        setup_logging(level, log_format, stream=io.StringIO())


def test_redact_text_patterns() -> None:
    text = "auth Bearer abc.def-123 key sk-ABCDEFGHIJKLMNOP token: zzz"

    assert redact_text(text) == (
        f"auth Bearer {REDACTED_VALUE} key {REDACTED_VALUE} token:{REDACTED_VALUE}"
    )
    assert redact_value(["ok", {"cookie": "c"}]) == ["ok", {"cookie": REDACTED_VALUE}]
