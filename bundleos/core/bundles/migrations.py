"""Runs schema migrations shipped inside plugin bundles"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Protocol, runtime_checkable

from bundleos.core.bundles.exceptions import MigrationError
from bundleos.store import connect

logger = logging.getLogger(__name__)


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@runtime_checkable
class MigrationRunner(Protocol):
    """Triggers a module's pending schema migrations"""

    def run(self, module_name: str, module_path: Path) -> List[str]: ...


class SQLMigrationRunner:
    """
    Applies <module>/<migrations_subdir>/*.sql to the host database

    Files run in name order, each in its own transaction, and are recorded in
    bundle_migrations so later activations only run new files.
    """

    def __init__(
        self,
        db_path: Path,
        migrations_subdir: str = "Database/Migrations",
        busy_timeout: int = 5000
    ):
        self.db_path = db_path
        self.migrations_subdir = migrations_subdir
        self.busy_timeout = busy_timeout

    def _connect(self) -> sqlite3.Connection:
        try:
            return connect(self.db_path, self.busy_timeout)
        except sqlite3.Error as e:
            raise MigrationError(f"Cannot open migration database {self.db_path}: {e}") from e

    def pending(self, module_name: str, module_path: Path) -> List[Path]:
        """List migration files not yet applied for a module"""
        migrations_dir = module_path / self.migrations_subdir
        if not migrations_dir.is_dir():
            return []

        available = sorted(migrations_dir.glob("*.sql"), key=lambda p: p.name)
        if not available:
            return []

        conn = self._connect()
        try:
            applied = {
                row["migration"] for row in conn.execute(
                    "SELECT migration FROM bundle_migrations WHERE module_name = ?",
                    (module_name,)
                ).fetchall()
            }
        except sqlite3.Error as e:
            raise MigrationError(f"Failed to read migration state for {module_name}: {e}") from e
        finally:
            conn.close()

        return [p for p in available if p.name not in applied]

    def run(self, module_name: str, module_path: Path) -> List[str]:
        """
        Apply pending migrations

        Returns:
            Names of the files applied in this run

        Raises:
            MigrationError: On the first failing file; earlier files stay applied
        """
        pending = self.pending(module_name, module_path)
        if not pending:
            logger.debug(f"No pending migrations for {module_name}")
            return []

        applied: List[str] = []
        conn = self._connect()
        try:
            for migration_file in pending:
                logger.info(f"Running migration {module_name}/{migration_file.name}")
                try:
                    sql = migration_file.read_text(encoding="utf-8")
                    # Bookkeeping row commits atomically with the migration itself
                    conn.executescript(
                        f"BEGIN;\n{sql}\n;\n"
                        f"INSERT INTO bundle_migrations (module_name, migration) "
                        f"VALUES ({_sql_literal(module_name)}, {_sql_literal(migration_file.name)});\n"
                        f"COMMIT;"
                    )
                except (OSError, sqlite3.Error) as e:
                    if conn.in_transaction:
                        conn.rollback()
                    raise MigrationError(
                        f"Migration {migration_file.name} failed for module {module_name}: {e}"
                    ) from e
                applied.append(migration_file.name)
        finally:
            conn.close()

        logger.info(f"Applied {len(applied)} migration(s) for {module_name}")
        return applied
