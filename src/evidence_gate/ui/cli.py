"""Command-line interface router for evidence-gate."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog

from evidence_gate.adapters import CapabilityRegistry, NoAdapterError
from evidence_gate.artifacts import (
    build_artifact_index,
    verify_integrity,
    write_artifact_index,
    write_checksum_manifest,
)
from evidence_gate.claims import ClaimDocumentError, load_claim, validate_claim
from evidence_gate.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from evidence_gate.config.schema import LOG_FORMATS, LOG_LEVELS
from evidence_gate.constants import ARTIFACT_INDEX_FILE, CLAIM_FILE, VERDICT_FILE
from evidence_gate.domain.models import ArtifactIndex, Profile, VerdictStatus
from evidence_gate.observability import correlation_scope, setup_logging
from evidence_gate.persistence import (
    MetricRepo,
    SessionRepo,
    StateDB,
    UnitRepo,
    persist_verdict,
)
from evidence_gate.utils.fs import JSONReadError, atomic_write_json, read_json, read_json_optional
from evidence_gate.verification_plane import (
    ProfileLoadError,
    evaluate_gate,
    load_gate_inputs,
    load_profiles,
    validate_task_artifacts,
)

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VALIDATION_FAILED = 2


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = EXIT_FAILURE) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported workflows."""

    parser = argparse.ArgumentParser(
        prog="egate",
        description=(
            "evidence-gate: verify work claims against collected evidence.\n\n"
            "Common workflows:\n"
            "  egate index runs/T-1 --write            Index a task evidence directory\n"
            "  egate gate runs/T-1/artifacts.json      Evaluate the gate for a task\n"
            "  egate validate-claim runs/T-1/claim.json\n"
            "  egate ci-validate runs/T-1              Pre-merge artifact validation\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to evidence_gate.toml (default: ./evidence_gate.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level.",
    )
    common.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Override observability.log_level (wins over --verbose).",
    )
    common.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Override observability.log_format.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    gate_parser = subparsers.add_parser(
        "gate",
        parents=[common],
        help="Evaluate the gate for an artifact index",
        description=(
            "Evaluate a task against its commitment and profile.\n"
            "Sibling commitment.json, claim.json, function_map.json and\n"
            "api/schema_result.json are read from the index's directory.\n\n"
            "Exit codes: 0 pass, 1 fail or inconclusive (always 0 with --dry-run)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    gate_parser.add_argument("artifacts", help="Path to artifacts.json")
    gate_parser.add_argument(
        "profiles",
        nargs="?",
        default=None,
        help="Profiles file (.json or .yaml); defaults to paths.profiles from config.",
    )
    gate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the verdict but exit 0 regardless of status.",
    )
    gate_parser.add_argument(
        "--write-verdict",
        action="store_true",
        help="Write verdict.json next to the artifact index.",
    )
    gate_parser.set_defaults(handler=_cmd_gate)

    claim_parser = subparsers.add_parser(
        "validate-claim",
        parents=[common],
        help="Validate a claim document",
    )
    claim_parser.add_argument("claim", help="Path to claim.json")
    claim_parser.set_defaults(handler=_cmd_validate_claim)

    resolve_parser = subparsers.add_parser(
        "resolve",
        parents=[common],
        help="Resolve a capability to an adapter entrypoint",
    )
    resolve_parser.add_argument("capability", help="Capability string, e.g. code:lint")
    resolve_parser.add_argument(
        "--adapters-dir",
        default=None,
        help="Adapters directory (default: paths.adapters_dir from config).",
    )
    resolve_parser.add_argument(
        "--list",
        dest="list_all",
        action="store_true",
        help="Print the full capability map as JSON instead.",
    )
    resolve_parser.set_defaults(handler=_cmd_resolve)

    index_parser = subparsers.add_parser(
        "index",
        parents=[common],
        help="Build the artifact index for a task directory",
    )
    index_parser.add_argument("task_dir", help="Task evidence directory")
    index_parser.add_argument(
        "--write",
        action="store_true",
        help="Also write artifacts.json into the task directory.",
    )
    index_parser.add_argument(
        "--checksums",
        action="store_true",
        help="Write checksums.sha256 for the task directory before indexing.",
    )
    index_parser.set_defaults(handler=_cmd_index)

    integrity_parser = subparsers.add_parser(
        "verify-integrity",
        parents=[common],
        help="Verify checksums of a task directory",
    )
    integrity_parser.add_argument("task_dir", help="Task evidence directory")
    integrity_parser.set_defaults(handler=_cmd_verify_integrity)

    ci_parser = subparsers.add_parser(
        "ci-validate",
        parents=[common],
        help="Validate task artifacts before merge",
        description=(
            "Check documents, JSON syntax, claim schema, required artifacts and checksums.\n\n"
            "Exit codes: 0 ok, 1 missing claim/commitment, 2 validation failures."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ci_parser.add_argument("task_dir", help="Task evidence directory")
    ci_parser.add_argument(
        "--profiles",
        default=None,
        help="Profiles file (default: paths.profiles from config).",
    )
    ci_parser.set_defaults(handler=_cmd_ci_validate)

    persist_parser = subparsers.add_parser(
        "persist",
        parents=[common],
        help="Persist a verdict into the outcome store",
    )
    persist_parser.add_argument("verdict", help="Path to verdict.json")
    persist_parser.add_argument(
        "--claim",
        default=None,
        help="Claim file (default: claim.json next to the verdict, if present).",
    )
    persist_parser.add_argument("--task-id", default=None, help="Fallback task id.")
    persist_parser.add_argument(
        "--db", default=None, help="State DB path (default: paths.state_db from config)."
    )
    persist_parser.set_defaults(handler=_cmd_persist)

    history_parser = subparsers.add_parser(
        "history",
        parents=[common],
        help="Show stored task sessions",
    )
    history_parser.add_argument("--task-id", default=None, help="Show one task in detail.")
    history_parser.add_argument("--limit", type=int, default=20)
    history_parser.add_argument("--offset", type=int, default=0)
    history_parser.add_argument(
        "--status",
        choices=[item.value for item in VerdictStatus],
        default=None,
    )
    history_parser.add_argument("--db", default=None, help="State DB path.")
    history_parser.set_defaults(handler=_cmd_history)

    stats_parser = subparsers.add_parser(
        "stats",
        parents=[common],
        help="Show totals by status and the pass rate",
    )
    stats_parser.add_argument("--db", default=None, help="State DB path.")
    stats_parser.set_defaults(handler=_cmd_stats)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return the process exit code."""

    parser = build_parser()
    try:
        namespace = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        return EXIT_OK if exc.code in (0, None) else EXIT_FAILURE

    try:
        config = _load_effective_config(namespace)
        observability = config["observability"]
        setup_logging(
            observability["log_level"],
            observability["log_format"],
            redact_secrets=observability["redact_secrets"],
        )
        with correlation_scope(command=namespace.command):
            return int(namespace.handler(namespace, config))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_gate(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    artifacts_path = Path(args.artifacts)
    try:
        inputs = load_gate_inputs(artifacts_path)
    except ValueError as exc:
        raise CLIError(str(exc)) from exc

    profiles = _load_profiles(args.profiles, config)
    with correlation_scope(task_id=inputs.index.task_id or inputs.claim.task_id):
        verdict = evaluate_gate(
            inputs.commitment,
            inputs.claim,
            profiles,
            inputs.index,
            function_map=inputs.function_map,
            schema_result=inputs.schema_result,
            default_link_failure_threshold=config["gate"]["default_link_failure_threshold"],
        )
        payload = verdict.to_dict()
        write_verdict = args.write_verdict or config["gate"]["write_verdict"]
        if write_verdict and not args.dry_run:
            target = artifacts_path.parent / VERDICT_FILE
            atomic_write_json(target, payload)
            logger.info("verdict_written", path=str(target))

    _emit_json(payload)
    if args.dry_run or verdict.status is VerdictStatus.PASS:
        return EXIT_OK
    return EXIT_FAILURE


def _cmd_validate_claim(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    del config
    try:
        document = load_claim(args.claim)
    except ClaimDocumentError as exc:
        raise CLIError(str(exc)) from exc
    result = validate_claim(document)
    _emit_json(result.to_dict())
    return EXIT_OK if result.valid else EXIT_VALIDATION_FAILED


def _cmd_resolve(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    adapters_dir = args.adapters_dir or config["paths"]["adapters_dir"]
    try:
        registry = CapabilityRegistry.scan(adapters_dir, priority=config["adapters"]["priority"])
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise CLIError(str(exc)) from exc

    if args.list_all:
        _emit_json(registry.to_dict())
        return EXIT_OK
    try:
        entry = registry.resolve(args.capability)
    except NoAdapterError as exc:
        raise CLIError(str(exc)) from exc
    print(entry)
    return EXIT_OK


def _cmd_index(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    del config
    try:
        if args.checksums:
            write_checksum_manifest(args.task_dir)
        if args.write:
            index = write_artifact_index(args.task_dir)
        else:
            index = build_artifact_index(args.task_dir)
    except NotADirectoryError as exc:
        raise CLIError(str(exc)) from exc
    _emit_json(index.to_dict())
    return EXIT_OK


def _cmd_verify_integrity(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    del config
    task_dir = Path(args.task_dir)
    index_raw = read_json_optional(task_dir / ARTIFACT_INDEX_FILE)
    try:
        index = ArtifactIndex.from_mapping(index_raw) if isinstance(index_raw, Mapping) else None
        report = verify_integrity(task_dir, index=index)
    except (NotADirectoryError, ValueError) as exc:
        raise CLIError(str(exc)) from exc
    _emit_json(report.to_dict())
    return EXIT_OK if report.is_valid else EXIT_VALIDATION_FAILED


def _cmd_ci_validate(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    profiles = _load_profiles(args.profiles, config)
    try:
        report = validate_task_artifacts(args.task_dir, profiles=profiles)
    except NotADirectoryError as exc:
        raise CLIError(str(exc)) from exc
    _emit_json(report.to_dict())
    return report.exit_code


def _cmd_persist(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    verdict_path = Path(args.verdict)
    try:
        verdict = read_json(verdict_path)
        if args.claim is not None:
            claim = read_json(args.claim)
        else:
            claim = read_json_optional(verdict_path.parent / CLAIM_FILE)
    except JSONReadError as exc:
        raise CLIError(str(exc)) from exc
    if not isinstance(verdict, Mapping):
        raise CLIError(f"{verdict_path}: verdict must be a JSON object")

    db = StateDB(_state_db_path(args, config))
    try:
        result = persist_verdict(
            db,
            verdict,
            claim if isinstance(claim, Mapping) else None,
            task_id=args.task_id,
        )
    except ValueError as exc:
        raise CLIError(str(exc)) from exc
    _emit_json(result.to_dict())
    return EXIT_OK


def _cmd_history(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    db = StateDB(_state_db_path(args, config))
    if args.task_id is not None:
        session = SessionRepo(db).get(args.task_id)
        if session is None:
            raise CLIError(f"task not found: {args.task_id}")
        _emit_json(
            {
                "session": session.to_dict(),
                "units": [item.to_dict() for item in UnitRepo(db).list_for_task(args.task_id)],
                "metrics": MetricRepo(db).latest(args.task_id),
            }
        )
        return EXIT_OK

    try:
        sessions = SessionRepo(db).list(limit=args.limit, offset=args.offset, status=args.status)
    except ValueError as exc:
        raise CLIError(str(exc)) from exc
    _emit_json({"sessions": [item.to_dict() for item in sessions]})
    return EXIT_OK


def _cmd_stats(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    db = StateDB(_state_db_path(args, config))
    _emit_json(SessionRepo(db).stats())
    return EXIT_OK


def _cmd_config(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    _emit_json({"config_path": args.config_path, "config": effective_config(config)})
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: object) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    """Load config with command-line flags layered over env, file and defaults."""

    level = args.log_level or ("DEBUG" if args.verbose else None)
    overrides = {
        "observability.log_level": level,
        "observability.log_format": args.log_format,
    }
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc


def _load_profiles(explicit: str | None, config: Mapping[str, Any]) -> dict[str, Profile]:
    """Load profiles from ``explicit`` or, when it exists, the configured profiles file."""

    if explicit is None:
        configured = Path(config["paths"]["profiles"])
        if not configured.is_file():
            logger.debug("profiles_file_absent", path=str(configured))
            return {}
        path = configured
    else:
        path = Path(explicit)
    try:
        return load_profiles(path)
    except ProfileLoadError as exc:
        raise CLIError(str(exc)) from exc


def _state_db_path(args: argparse.Namespace, config: Mapping[str, Any]) -> Path:
    raw = args.db or config["paths"]["state_db"]
    return Path(raw).expanduser()


__all__ = ["CLIError", "build_parser", "run_cli"]
