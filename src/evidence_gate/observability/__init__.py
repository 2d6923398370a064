"""Observability helpers: structured logging setup and correlation scopes."""

from evidence_gate.observability.logging import (
    REDACTED_VALUE,
    correlation_scope,
    redact_event,
    redact_text,
    redact_value,
    reset_logging,
    setup_logging,
)

__all__ = [
    "REDACTED_VALUE",
    "correlation_scope",
    "redact_event",
    "redact_text",
    "redact_value",
    "reset_logging",
    "setup_logging",
]
