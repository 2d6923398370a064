"""
evidence-gate: package root.

File: src/evidence_gate/__init__.py
Last updated: 2026-10-18

Purpose
- Verify that a unit of work claimed as done actually is, from collected evidence alone.
- Public surface: claim validation, artifact indexing and integrity, capability
  resolution, gate evaluation and outcome persistence.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
