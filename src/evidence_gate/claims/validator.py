"""
evidence-gate: claim validator

File: src/evidence_gate/claims/validator.py
Last updated: 2026-10-18

Purpose
- Validate a worker claim document's schema tag, structure, and forbidden-field policy.

Functional requirements
- Accumulate every problem in one pass; never stop at the first error.
- Enforce ``units_total == len(units_list)``.
- Reject measured facts (coverage, lint counters, latency, ...) anywhere in the document
  except under ``claim.scope.files`` and ``claim.scope.functions``, naming the exact path.
- Claims may assert only intent and scope; measurements come from artifacts.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Final

import structlog

from evidence_gate.constants import CLAIM_SCHEMA_VERSION

FORBIDDEN_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "word_count",
        "word_min",
        "word_max",
        "coverage",
        "coverage_percent",
        "coverage_min",
        "coverage_claimed",
        "http_status",
        "status_code",
        "response_code",
        "response_time",
        "latency",
        "duration",
        "test_passed",
        "test_failed",
        "test_results",
        "lint_errors",
        "lint_warnings",
        "lint_clean",
        "lint_fixed",
        "build_status",
        "build_success",
        "compile_errors",
        "file_size",
        "line_count",
        "character_count",
        "tests_updated",
        "functions_touched",
        "files_modified",
    }
)

# Subtrees where naming things is legitimate.
_SCAN_EXEMPT_PATHS: Final[frozenset[str]] = frozenset(
    {"claim.scope.files", "claim.scope.functions"}
)

_REQUIRED_TOP_LEVEL: Final[tuple[str, ...]] = ("actor", "task_id", "timestamp")

logger = structlog.get_logger(__name__)


class ClaimDocumentError(ValueError):
    """Raised when a claim file cannot be read or decoded at all."""


@dataclass(frozen=True, slots=True)
class ClaimValidationResult:
    valid: bool
    errors: tuple[str, ...]
    warnings: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def load_claim(path: str | Path) -> object:
    """Read and decode a claim file; decoding failures are usage errors."""

    target = Path(path)
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ClaimDocumentError(f"claim file not found: {target}") from exc
    except OSError as exc:
        raise ClaimDocumentError(f"unable to read claim file {target}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ClaimDocumentError(f"claim file {target} is not valid UTF-8: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ClaimDocumentError(f"invalid JSON in claim file {target}: {exc}") from exc


def validate_claim(document: object) -> ClaimValidationResult:
    """Validate ``document`` and return every error and warning found."""

    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(document, Mapping):
        errors.append(f"claim document must be an object, got {type(document).__name__}")
        return ClaimValidationResult(valid=False, errors=tuple(errors), warnings=())

    schema_version = document.get("schema_version")
    if schema_version != CLAIM_SCHEMA_VERSION:
        errors.append(
            f"Invalid schema_version: expected {CLAIM_SCHEMA_VERSION!r}, got {schema_version!r}"
        )

    for key in _REQUIRED_TOP_LEVEL:
        if _is_blank(document.get(key)):
            errors.append(f"Missing required field: {key}")

    timestamp = document.get("timestamp")
    if not _is_blank(timestamp) and not _is_iso_instant(timestamp):
        errors.append(f"Invalid timestamp: {timestamp!r}")

    body = document.get("claim")
    if not isinstance(body, Mapping):
        errors.append("Missing required field: claim")
    else:
        _validate_claim_body(body, errors, warnings)

    for hit in find_forbidden_fields(document):
        errors.append(f"Forbidden field '{hit.rsplit('.', 1)[-1]}' at {hit}")

    result = ClaimValidationResult(
        valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
    logger.debug(
        "claim_validated",
        task_id=document.get("task_id") if isinstance(document.get("task_id"), str) else None,
        valid=result.valid,
        error_count=len(result.errors),
        warning_count=len(result.warnings),
    )
    return result


def find_forbidden_fields(document: object) -> tuple[str, ...]:
    """Return dotted paths of denylisted keys outside the exempt scope subtrees."""

    hits: list[str] = []
    _scan(document, "", hits)
    return tuple(hits)


def _validate_claim_body(
    body: Mapping[str, object],
    errors: list[str],
    warnings: list[str],
) -> None:
    if _is_blank(body.get("type")):
        errors.append("Missing required field: claim.type")

    units_total = body.get("units_total")
    total_is_number = _is_number(units_total)
    if not total_is_number:
        errors.append(f"claim.units_total must be a number, got {_type_name(units_total)}")

    units_list = body.get("units_list")
    list_is_sequence = isinstance(units_list, list)
    if not list_is_sequence:
        errors.append(f"claim.units_list must be an array, got {_type_name(units_list)}")

    if total_is_number and isinstance(units_list, list) and units_total != len(units_list):
        errors.append(
            f"units_total ({units_total}) does not match units_list length ({len(units_list)})"
        )

    scope = body.get("scope")
    if not isinstance(scope, Mapping) or _is_blank(scope.get("repo_root")):
        errors.append("Missing required field: claim.scope.repo_root")

    if "declared" not in body:
        warnings.append("claim.declared is missing; intent is not stated")


def _scan(node: object, path: str, hits: list[str]) -> None:
    if path in _SCAN_EXEMPT_PATHS:
        return
    if isinstance(node, Mapping):
        for key in node:
            key_text = str(key)
            child_path = f"{path}.{key_text}" if path else key_text
            if key_text in FORBIDDEN_FIELDS and child_path not in _SCAN_EXEMPT_PATHS:
                hits.append(child_path)
            _scan(node[key], child_path, hits)
        return
    if isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        for index, item in enumerate(node):
            _scan(item, f"{path}[{index}]", hits)


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_iso_instant(value: object) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    return type(value).__name__


__all__ = [
    "FORBIDDEN_FIELDS",
    "ClaimDocumentError",
    "ClaimValidationResult",
    "find_forbidden_fields",
    "load_claim",
    "validate_claim",
]
