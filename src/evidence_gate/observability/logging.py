"""Structured decision logging on stderr with secret redaction and correlation scopes."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import IO, Any, Final

import structlog

REDACTED_VALUE: Final[str] = "***REDACTED***"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_SECRET_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-[A-Za-z0-9_-]{12,}\b")

# Keys structlog itself adds; never treated as secrets.
_RESERVED_KEYS: Final[frozenset[str]] = frozenset({"event", "level", "timestamp", "logger"})

_CORRELATION_KEYS: Final[frozenset[str]] = frozenset({"task_id", "command", "run_id"})


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    *,
    redact_secrets: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """
    Configure structlog for the process.

    Records are rendered as JSON lines (or ``key=value`` text) to ``stream``, defaulting to
    stderr so stdout stays reserved for command results.
    """

    level_number = logging.getLevelNamesMapping().get(level.upper())
    if level_number is None:
        raise ValueError(f"unknown log level {level!r}")
    if log_format not in {"json", "text"}:
        raise ValueError(f"unknown log format {log_format!r}")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if redact_secrets:
        processors.append(redact_event)
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "event"], sort_keys=True
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_number),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def reset_logging() -> None:
    """Restore structlog's default configuration."""

    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields onto every log record in scope."""

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if key not in _CORRELATION_KEYS:
            raise ValueError(f"unsupported correlation key {key!r}")
        if value is None:
            continue
        normalized = value.strip() if isinstance(value, str) else ""
        if not normalized:
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
        bound[key] = normalized
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def redact_event(
    _logger: object, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that deep-redacts secret-looking keys and values."""

    for key in list(event_dict):
        if key in _RESERVED_KEYS:
            value = event_dict[key]
            if isinstance(value, str):
                event_dict[key] = redact_text(value)
            continue
        event_dict[key] = redact_value(event_dict[key], key_context=key)
    return event_dict


def redact_value(value: object, *, key_context: str | None = None) -> object:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return REDACTED_VALUE
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, (list, tuple)):
        return [redact_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): redact_value(item, key_context=str(key)) for key, item in value.items()}
    return value


def redact_text(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {REDACTED_VALUE}", redacted)
    return _SECRET_KEY_PATTERN.sub(REDACTED_VALUE, redacted)


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


__all__ = [
    "REDACTED_VALUE",
    "correlation_scope",
    "redact_event",
    "redact_text",
    "redact_value",
    "reset_logging",
    "setup_logging",
]
