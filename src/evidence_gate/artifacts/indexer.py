"""
evidence-gate: artifact indexer

File: src/evidence_gate/artifacts/indexer.py
Last updated: 2026-10-18

Purpose
- Walk a task evidence directory, content-hash every regular file, and derive
  best-effort summaries plus typed artifact entries from well-known filenames.

Functional requirements
- Recursion is unbounded in depth and files-only.
- A malformed well-known file degrades only its summary (``None``); it never fails the index.
- The index is rebuilt wholesale per request and never patched incrementally.

Non-functional requirements
- Output ordering is sorted by path so repeated runs over unchanged bytes are identical
  apart from ``timestamp``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from evidence_gate.constants import (
    API_SCHEMA_RESULT_FILE,
    ARTIFACT_INDEX_FILE,
    CLAIM_FILE,
    COMMITMENT_FILE,
    CONTENT_SCAN_FILE,
    COVERAGE_FILE,
    DIFF_FILE,
    DIFF_NAMES_FILE,
    FUNCTION_MAP_FILE,
    LINKS_STATUSES_FILE,
    LINKS_URLSET_FILE,
    LINT_FILE,
    TESTS_FILE,
)
from evidence_gate.domain.models import ArtifactIndex, ArtifactRecord, JSONValue
from evidence_gate.utils.fs import atomic_write_json, read_json_optional
from evidence_gate.utils.hashing import iter_regular_files, sha256_file

ArtifactExtractor = Callable[[object], dict[str, JSONValue] | None]

# Files whose parsed bodies are carried verbatim in ``summary``.
SUMMARY_FILES: Final[tuple[tuple[str, str], ...]] = (
    ("diff", DIFF_FILE),
    ("lint", LINT_FILE),
    ("tests", TESTS_FILE),
    ("coverage", COVERAGE_FILE),
)

logger = structlog.get_logger(__name__)


def build_artifact_index(task_dir: str | Path, *, now: datetime | None = None) -> ArtifactIndex:
    """Index ``task_dir`` and return a fresh :class:`ArtifactIndex`."""

    root = Path(task_dir)
    if not root.is_dir():
        raise NotADirectoryError(f"task directory not found: {root}")

    records: list[ArtifactRecord] = []
    for rel_path, file_path in iter_regular_files(root):
        if rel_path == ARTIFACT_INDEX_FILE:
            continue
        stat_result = file_path.stat()
        records.append(
            ArtifactRecord(
                path=rel_path,
                size=stat_result.st_size,
                modified=_iso8601z(datetime.fromtimestamp(stat_result.st_mtime, tz=UTC)),
                checksum=sha256_file(file_path),
            )
        )
    present = {record.path for record in records}

    summary: dict[str, JSONValue] = {}
    for key, file_name in SUMMARY_FILES:
        summary[key] = _load_optional(root, file_name) if file_name in present else None

    artifacts: list[dict[str, JSONValue]] = []
    for file_name, artifact_type, extractor in _TYPED_ARTIFACTS:
        if file_name not in present:
            continue
        payload = _load_optional(root, file_name)
        entry = extractor(payload) if payload is not None else None
        if entry is None:
            logger.warning(
                "artifact_summary_unreadable",
                task_dir=str(root),
                path=file_name,
                artifact_type=artifact_type,
            )
            continue
        artifacts.append({"type": artifact_type, "path": file_name, **entry})

    index = ArtifactIndex(
        task_dir=str(root),
        timestamp=_iso8601z(now or datetime.now(UTC)),
        files=tuple(records),
        summary=summary,
        metrics=_metrics(records, summary),
        artifacts=tuple(artifacts),
        task_id=_task_id(root, present),
    )
    logger.info(
        "artifact_index_built",
        task_dir=str(root),
        total_files=len(records),
        artifact_types=sorted(index.artifact_types()),
    )
    return index


def write_artifact_index(task_dir: str | Path, *, now: datetime | None = None) -> ArtifactIndex:
    """Build the index and atomically write it to ``<task_dir>/artifacts.json``."""

    index = build_artifact_index(task_dir, now=now)
    atomic_write_json(Path(task_dir) / ARTIFACT_INDEX_FILE, index.to_dict())
    return index


def _metrics(
    records: Sequence[ArtifactRecord], summary: Mapping[str, JSONValue]
) -> dict[str, JSONValue]:
    lint = summary.get("lint")
    tests = summary.get("tests")
    coverage = summary.get("coverage")

    lint_passed: bool | None = None
    if isinstance(lint, Mapping):
        lint_passed = lint.get("exitCode", lint.get("exit_code")) == 0

    tests_passed: bool | None = None
    if isinstance(tests, Mapping):
        failed = _number(tests.get("failed"))
        total = _number(tests.get("total"))
        tests_passed = failed == 0 and total is not None and total > 0

    coverage_pct: JSONValue = None
    if isinstance(coverage, Mapping):
        coverage_pct = _number(coverage.get("pct"))

    return {
        "total_files": len(records),
        "has_diff": summary.get("diff") is not None,
        "has_lint": lint is not None,
        "has_tests": tests is not None,
        "has_coverage": coverage is not None,
        "lint_passed": lint_passed,
        "tests_passed": tests_passed,
        "coverage_pct": coverage_pct,
    }


def _load_optional(root: Path, rel_path: str) -> JSONValue:
    loaded = read_json_optional(root / rel_path)
    return loaded  # type: ignore[return-value]


def _task_id(root: Path, present: set[str]) -> str | None:
    for file_name in (CLAIM_FILE, COMMITMENT_FILE):
        if file_name not in present:
            continue
        payload = read_json_optional(root / file_name)
        if isinstance(payload, Mapping):
            value = payload.get("task_id")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


# ---------------------------------------------------------------------------
# Typed artifact extractors
# ---------------------------------------------------------------------------


def _extract_present(payload: object) -> dict[str, JSONValue] | None:
    return {}


def _extract_lint(payload: object) -> dict[str, JSONValue] | None:
    if not isinstance(payload, Mapping):
        return None
    errors = _number(payload.get("errors", payload.get("errorCount")))
    warnings = _number(payload.get("warnings", payload.get("warningCount")))
    return {
        "errors": int(errors) if errors is not None else None,
        "warnings": int(warnings) if warnings is not None else None,
        "exit_code": _number(payload.get("exitCode", payload.get("exit_code"))),
    }


def _extract_tests(payload: object) -> dict[str, JSONValue] | None:
    if not isinstance(payload, Mapping):
        return None
    passed = _number(payload.get("passed"))
    failed = _number(payload.get("failed"))
    total = _number(payload.get("total"))
    return {
        "passed": int(passed) if passed is not None else None,
        "failed": int(failed) if failed is not None else None,
        "total": int(total) if total is not None else None,
    }


def _extract_coverage(payload: object) -> dict[str, JSONValue] | None:
    if not isinstance(payload, Mapping):
        return None
    pct = _number(payload.get("pct"))
    if pct is None:
        lines = payload.get("lines")
        if isinstance(lines, Mapping):
            pct = _number(lines.get("pct"))
    return {"percentage": pct}


def _extract_urlset(payload: object) -> dict[str, JSONValue] | None:
    if isinstance(payload, Mapping):
        urls = payload.get("urls")
        return {"url_count": len(urls) if isinstance(urls, list) else len(payload)}
    if isinstance(payload, list):
        return {"url_count": len(payload)}
    return None


def _extract_link_statuses(payload: object) -> dict[str, JSONValue] | None:
    if isinstance(payload, Mapping) and "total_count" in payload:
        failed = _number(payload.get("failed_count"))
        total = _number(payload.get("total_count"))
        if failed is None or total is None:
            return None
        return {"failed_count": int(failed), "total_count": int(total)}

    outcomes: list[bool] = []
    if isinstance(payload, Mapping):
        for _url, status in sorted(payload.items()):
            outcomes.append(_link_ok(status))
    elif isinstance(payload, list):
        for item in payload:
            if isinstance(item, Mapping):
                outcomes.append(_link_ok(item.get("ok", item.get("status"))))
    else:
        return None
    return {
        "failed_count": sum(1 for ok in outcomes if not ok),
        "total_count": len(outcomes),
    }


def _extract_content_scan(payload: object) -> dict[str, JSONValue] | None:
    raw_files: object = None
    if isinstance(payload, Mapping):
        raw_files = payload.get("files")
        content = payload.get("content")
        if raw_files is None and isinstance(content, Mapping):
            raw_files = content.get("files")
    elif isinstance(payload, list):
        raw_files = payload
    if not isinstance(raw_files, list):
        return None
    files: list[JSONValue] = []
    for item in raw_files:
        if not isinstance(item, Mapping):
            continue
        name = item.get("name", item.get("path"))
        count = _number(item.get("word_count"))
        files.append(
            {
                "name": str(name) if name is not None else "<unnamed>",
                "word_count": int(count) if count is not None else 0,
            }
        )
    return {"files": files}


def schema_result_summary(payload: object) -> dict[str, JSONValue] | None:
    """Normalize an ``api/schema_result.json`` body; ``None`` when it is not an object."""

    if not isinstance(payload, Mapping):
        return None
    errors = payload.get("errors")
    return {
        "ok": payload.get("ok") is True,
        "errors": [str(item) for item in errors] if isinstance(errors, list) else [],
        "response_time_ms": _number(payload.get("response_time_ms")),
        "status_code": _number(payload.get("status_code")),
    }


def _link_ok(status: object) -> bool:
    if isinstance(status, bool):
        return status
    number = _number(status)
    if number is None:
        return False
    return 200 <= number < 400


def _number(value: object) -> float | int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_TYPED_ARTIFACTS: Final[tuple[tuple[str, str, ArtifactExtractor], ...]] = (
    (DIFF_FILE, "code:diff", _extract_present),
    (DIFF_NAMES_FILE, "code:diff_names", _extract_present),
    (LINT_FILE, "code:lint", _extract_lint),
    (TESTS_FILE, "code:tests", _extract_tests),
    (COVERAGE_FILE, "code:coverage", _extract_coverage),
    (LINKS_URLSET_FILE, "links:urlset", _extract_urlset),
    (LINKS_STATUSES_FILE, "links:check", _extract_link_statuses),
    (CONTENT_SCAN_FILE, "content:scan", _extract_content_scan),
    (API_SCHEMA_RESULT_FILE, "api:schema", schema_result_summary),
    (FUNCTION_MAP_FILE, "code:function_map", _extract_present),
)

ARTIFACT_TYPE_FILES: Final[dict[str, str]] = {
    artifact_type: file_name for file_name, artifact_type, _ in _TYPED_ARTIFACTS
}


__all__ = [
    "ARTIFACT_TYPE_FILES",
    "SUMMARY_FILES",
    "build_artifact_index",
    "schema_result_summary",
    "write_artifact_index",
]
