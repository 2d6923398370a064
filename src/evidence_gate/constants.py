"""Stable constants shared across gate components."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Claim document schema tag.
CLAIM_SCHEMA_VERSION: Final[str] = "verify.claim/v1.1"

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 2

# Fixed evidence filenames, relative to a task directory.
DIFF_FILE: Final[str] = "diff.json"
DIFF_NAMES_FILE: Final[str] = "diff_names.json"
LINT_FILE: Final[str] = "lint.json"
TESTS_FILE: Final[str] = "tests.json"
COVERAGE_FILE: Final[str] = "coverage.json"
CLAIM_FILE: Final[str] = "claim.json"
COMMITMENT_FILE: Final[str] = "commitment.json"
VERDICT_FILE: Final[str] = "verdict.json"
CHECKSUMS_FILE: Final[str] = "checksums.sha256"
ARTIFACT_INDEX_FILE: Final[str] = "artifacts.json"
LINKS_URLSET_FILE: Final[str] = str(PurePosixPath("links") / "urlset.json")
LINKS_STATUSES_FILE: Final[str] = str(PurePosixPath("links") / "statuses.json")
CONTENT_SCAN_FILE: Final[str] = str(PurePosixPath("content") / "scan.json")
API_SCHEMA_RESULT_FILE: Final[str] = str(PurePosixPath("api") / "schema_result.json")
FUNCTION_MAP_FILE: Final[str] = "function_map.json"

# Adapter discovery.
ADAPTER_MANIFEST_FILE: Final[str] = "manifest.json"

# Default runtime paths (relative to the config file directory unless overridden).
DEFAULT_ADAPTERS_DIR: Final[PurePosixPath] = PurePosixPath("adapters")
DEFAULT_STATE_DB: Final[PurePosixPath] = PurePosixPath("state/verify.sqlite")
DEFAULT_PROFILES_FILE: Final[PurePosixPath] = PurePosixPath("profiles.yaml")

# Task-type families used by the gate battery.
CODE_TASK_TYPES: Final[frozenset[str]] = frozenset({"code", "code_update", "code_change"})
CONTENT_TASK_TYPES: Final[frozenset[str]] = frozenset({"content", "content_update"})
LINK_TASK_TYPES: Final[frozenset[str]] = frozenset({"links", "link_check"})
API_TASK_TYPES: Final[frozenset[str]] = frozenset({"api", "api_test"})

__all__ = [
    "ADAPTER_MANIFEST_FILE",
    "API_SCHEMA_RESULT_FILE",
    "API_TASK_TYPES",
    "ARTIFACT_INDEX_FILE",
    "CHECKSUMS_FILE",
    "CLAIM_FILE",
    "CLAIM_SCHEMA_VERSION",
    "CODE_TASK_TYPES",
    "COMMITMENT_FILE",
    "CONFIG_SCHEMA_VERSION",
    "CONTENT_SCAN_FILE",
    "CONTENT_TASK_TYPES",
    "COVERAGE_FILE",
    "DEFAULT_ADAPTERS_DIR",
    "DEFAULT_PROFILES_FILE",
    "DEFAULT_STATE_DB",
    "DIFF_FILE",
    "DIFF_NAMES_FILE",
    "FUNCTION_MAP_FILE",
    "LINK_TASK_TYPES",
    "LINKS_STATUSES_FILE",
    "LINKS_URLSET_FILE",
    "LINT_FILE",
    "STATE_DB_SCHEMA_VERSION",
    "TESTS_FILE",
    "VERDICT_FILE",
]
