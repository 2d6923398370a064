"""Command-line surface for evidence-gate."""

from evidence_gate.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
