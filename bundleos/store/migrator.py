"""Database Migration System

Detects and applies pending schema migration files.
Migration files are named schema_vXX.sql or schema_vXX_suffix.sql (XX is a two-digit version).

Properties:
1. Pending migrations are detected automatically
2. Migrations run in version order
3. Idempotent (IF NOT EXISTS)
4. One transaction per migration file
5. Applied versions are tracked in the schema_version table
"""

import logging
import re
import sqlite3
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

MIGRATION_PATTERN = re.compile(r'schema_v(\d+)(?:_[a-z0-9_]+)?\.sql')


class SchemaMigrationError(Exception):
    """Raised when a schema migration fails"""
    pass


class Migrator:
    """Applies schema_vXX.sql files to a SQLite database"""

    def __init__(self, db_path: Path, migrations_dir: Path):
        """
        Initialize migrator

        Args:
            db_path: Database file path
            migrations_dir: Directory containing schema_vXX.sql files
        """
        self.db_path = db_path
        self.migrations_dir = migrations_dir

    def _ensure_version_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()

    def get_current_version(self, conn: sqlite3.Connection) -> int:
        """
        Get the current database version

        Returns:
            Highest applied version number, 0 if none
        """
        try:
            rows = conn.execute("SELECT version FROM schema_version").fetchall()
        except sqlite3.OperationalError:
            return 0

        versions = []
        for row in rows:
            match = re.search(r'0\.(\d+)\.', row[0])
            if match:
                versions.append(int(match.group(1)))

        return max(versions) if versions else 0

    def get_available_migrations(self) -> List[Tuple[int, Path]]:
        """
        List migration files

        Returns:
            (version, path) tuples sorted by version
        """
        migrations = []
        for sql_file in self.migrations_dir.glob('schema_v*.sql'):
            match = MIGRATION_PATTERN.match(sql_file.name)
            if match:
                migrations.append((int(match.group(1)), sql_file))

        migrations.sort(key=lambda x: x[0])
        return migrations

    def get_pending_migrations(self, conn: sqlite3.Connection) -> List[Tuple[int, Path]]:
        current_version = self.get_current_version(conn)
        all_migrations = self.get_available_migrations()
        pending = [(v, p) for v, p in all_migrations if v > current_version]

        logger.debug(
            f"Current version: v{current_version:02d}, "
            f"Available migrations: {len(all_migrations)}, "
            f"Pending: {len(pending)}"
        )
        return pending

    def execute_migration(
        self,
        conn: sqlite3.Connection,
        version: int,
        migration_file: Path
    ) -> None:
        """
        Execute a single migration file

        Raises:
            SchemaMigrationError: If the migration fails
        """
        logger.info(f"Executing migration v{version:02d}: {migration_file.name}")

        try:
            migration_sql = migration_file.read_text(encoding='utf-8')
            conn.executescript(f"BEGIN;\n{migration_sql}\nCOMMIT;")

            # Record the version unless the file already did
            cursor = conn.execute(
                "SELECT COUNT(*) FROM schema_version WHERE version = ?",
                (f'0.{version}.0',)
            )
            if cursor.fetchone()[0] == 0:
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (f'0.{version}.0',)
                )
            conn.commit()
            logger.info(f"Migration v{version:02d} completed successfully")

        except Exception as e:
            if conn.in_transaction:
                conn.rollback()
            error_msg = f"Migration v{version:02d} failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise SchemaMigrationError(error_msg) from e

    def migrate(self) -> int:
        """
        Apply all pending migrations

        Returns:
            Number of migrations applied

        Raises:
            SchemaMigrationError: If a migration fails
        """
        if not self.db_path.exists():
            raise SchemaMigrationError(
                f"Database not found: {self.db_path}. "
                "Please run init_db() first."
            )

        conn = sqlite3.connect(str(self.db_path))
        try:
            self._ensure_version_table(conn)
            pending_migrations = self.get_pending_migrations(conn)

            if not pending_migrations:
                return 0

            for version, migration_file in pending_migrations:
                self.execute_migration(conn, version, migration_file)

            logger.info(f"Successfully applied {len(pending_migrations)} migrations")
            return len(pending_migrations)

        finally:
            conn.close()

    def status(self) -> dict:
        """
        Get migration status

        Returns:
            {
                "current_version": int,
                "latest_version": int,
                "pending_count": int,
                "applied_migrations": List[str],
                "pending_migrations": List[str]
            }
        """
        if not self.db_path.exists():
            return {
                "current_version": 0,
                "latest_version": 0,
                "pending_count": 0,
                "applied_migrations": [],
                "pending_migrations": [],
                "error": "Database not found"
            }

        conn = sqlite3.connect(str(self.db_path))
        try:
            self._ensure_version_table(conn)
            current_version = self.get_current_version(conn)
            all_migrations = self.get_available_migrations()
            pending_migrations = self.get_pending_migrations(conn)
            latest_version = all_migrations[-1][0] if all_migrations else 0

            return {
                "current_version": current_version,
                "latest_version": latest_version,
                "pending_count": len(pending_migrations),
                "applied_migrations": [f"v{v:02d}" for v, _ in all_migrations if v <= current_version],
                "pending_migrations": [f"v{v:02d}" for v, _ in pending_migrations],
            }
        finally:
            conn.close()


def auto_migrate(db_path: Path) -> int:
    """Apply the bundled schema migrations to db_path"""
    migrations_dir = Path(__file__).parent / 'migrations'
    return Migrator(db_path, migrations_dir).migrate()


def get_migration_status(db_path: Path) -> dict:
    migrations_dir = Path(__file__).parent / 'migrations'
    return Migrator(db_path, migrations_dir).status()
