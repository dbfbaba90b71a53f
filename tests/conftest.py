"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from healthkb.db.connection import Database
from healthkb.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "healthkb.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep HEALTHKB_* overrides and the user's global config out of tests."""
    for var in ("HEALTHKB_DB", "HEALTHKB_CHAT_MODEL", "HEALTHKB_CATALOG", "HEALTHKB_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("healthkb.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
