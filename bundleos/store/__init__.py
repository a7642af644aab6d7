"""Store module - SQLite database management"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .migrator import auto_migrate, get_migration_status

logger = logging.getLogger(__name__)

__all__ = [
    "connect",
    "get_db_path",
    "init_db",
    "ensure_migrations",
    "get_migration_status",
]


def get_db_path() -> Path:
    """Get the configured registry database path"""
    from bundleos.core.config import get_config

    return get_config().db_path


def connect(db_path: Path, busy_timeout: int = 5000) -> sqlite3.Connection:
    """
    Open a connection with the pragmas every BundleOS connection needs

    Args:
        db_path: Database file path
        busy_timeout: Milliseconds to wait on a locked database before failing
    """
    conn = sqlite3.connect(str(db_path), timeout=busy_timeout / 1000)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout)}")
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def init_db(db_path: Optional[Path] = None) -> Path:
    """
    Initialize the database and bring its schema up to date

    Safe to call repeatedly; an existing database only receives pending migrations.
    """
    db_path = db_path or get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        logger.info(f"Creating new database: {db_path}")
        conn = sqlite3.connect(str(db_path))
        try:
            # WAL: readers never block on registry writes
            conn.execute("PRAGMA journal_mode=WAL")
            conn.commit()
        finally:
            conn.close()

    migrated = ensure_migrations(db_path)
    if migrated > 0:
        logger.info(f"Applied {migrated} pending migrations")
    return db_path


def ensure_migrations(db_path: Path) -> int:
    """Apply pending schema migrations, returning how many ran"""
    return auto_migrate(db_path)
