"""Shared fixtures for outcome store tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from evidence_gate.persistence.state_db import StateDB


@pytest.fixture
def db(tmp_path: Path) -> StateDB:
    store = StateDB(tmp_path / "state" / "evidence_gate.sqlite3")
    store.migrate()
    return store
