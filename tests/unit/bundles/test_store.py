from __future__ import annotations

import sqlite3
from pathlib import Path

from bundleos.store import get_migration_status, init_db


def test_init_db_creates_schema_and_is_repeatable(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "registry.sqlite"

    assert init_db(db_path) == db_path
    init_db(db_path)

    conn = sqlite3.connect(str(db_path))
    try:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        versions = [r[0] for r in conn.execute("SELECT version FROM schema_version")]
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    finally:
        conn.close()

    assert {"bundles", "bundle_migrations", "schema_version"} <= tables
    assert versions == ["0.1.0"]
    assert journal_mode == "wal"


def test_migration_status(tmp_path: Path) -> None:
    missing = get_migration_status(tmp_path / "missing.sqlite")
    assert missing["error"] == "Database not found"

    db_path = init_db(tmp_path / "registry.sqlite")
    status = get_migration_status(db_path)

    assert status["current_version"] == 1
    assert status["pending_count"] == 0
    assert status["applied_migrations"] == ["v01"]
