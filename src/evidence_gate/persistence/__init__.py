"""
evidence-gate: persistence layer

File: src/evidence_gate/persistence/__init__.py
Last updated: 2026-10-18

Purpose
- Outcome store access, migrations, repositories, and verdict normalization/persistence.

Non-functional requirements
- SQLite-first; no server database dependency.
"""

from evidence_gate.persistence.normalizer import extract_metrics, normalize_units
from evidence_gate.persistence.persister import PersistResult, persist_verdict
from evidence_gate.persistence.repositories import MetricRepo, SessionRepo, UnitRepo
from evidence_gate.persistence.state_db import (
    StateDB,
    StateDBBusyError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "MetricRepo",
    "PersistResult",
    "SessionRepo",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
    "UnitRepo",
    "extract_metrics",
    "normalize_units",
    "persist_verdict",
]
