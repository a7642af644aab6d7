"""Bundle registry for database operations"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bundleos.core.bundles.exceptions import (
    BundleNotFoundError,
    DuplicateModuleError,
    DuplicateSlugError,
    RegistryError,
)
from bundleos.core.bundles.models import BundleKind, BundleRecord, ThemeTarget
from bundleos.store import connect, init_db

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BundleRegistry:
    """
    Registry for bundle records

    Every call opens its own connection, so reads always observe committed writes
    from other requests. Uniqueness of slug and module_name is enforced by the
    schema, not by this class.
    """

    def __init__(self, db_path: Optional[Path] = None, busy_timeout: int = 5000):
        """
        Initialize registry

        Args:
            db_path: Database file path (optional, defaults to the configured registry)
            busy_timeout: SQLite busy timeout in milliseconds
        """
        if db_path is None:
            from bundleos.core.config import get_config

            config = get_config()
            db_path = config.db_path
            busy_timeout = config.sqlite_busy_timeout

        self.db_path = init_db(db_path)
        self.busy_timeout = busy_timeout

    def _get_connection(self) -> sqlite3.Connection:
        return connect(self.db_path, self.busy_timeout)

    def create(self, record: BundleRecord) -> BundleRecord:
        """
        Insert a new bundle record

        Raises:
            DuplicateSlugError: If the slug is taken
            DuplicateModuleError: If the module name is taken
            RegistryError: On any other database failure
        """
        logger.info(f"Registering bundle: {record.slug} ({record.kind.value}) as module {record.module_name}")
        now = _now()
        conn = self._get_connection()

        try:
            conn.execute("""
                INSERT INTO bundles (
                    slug, name, description, version, author, author_url,
                    bundle_url, screenshot, module_name, kind, theme_target,
                    is_active, auto_activate, dependencies,
                    customization_options, raw_manifest, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.slug,
                record.name,
                record.description,
                record.version,
                record.author,
                record.author_url,
                record.bundle_url,
                record.screenshot,
                record.module_name,
                record.kind.value,
                record.theme_target.value if record.theme_target else None,
                False,
                record.auto_activate,
                json.dumps(record.dependencies),
                json.dumps(record.customization_options),
                json.dumps(record.raw_manifest),
                now,
                now,
            ))
            conn.commit()

        except sqlite3.IntegrityError as e:
            conn.rollback()
            message = str(e)
            if "bundles.slug" in message:
                raise DuplicateSlugError(record.slug) from e
            if "bundles.module_name" in message:
                raise DuplicateModuleError(record.module_name) from e
            raise RegistryError(f"Failed to register bundle '{record.slug}': {e}") from e
        except sqlite3.Error as e:
            conn.rollback()
            raise RegistryError(f"Failed to register bundle '{record.slug}': {e}") from e
        finally:
            conn.close()

        return self.find_by_slug(record.slug)

    def find_by_slug(self, slug: str) -> Optional[BundleRecord]:
        """Get a bundle by slug, or None"""
        return self._find_one("SELECT * FROM bundles WHERE slug = ?", (slug,))

    def find_by_module_name(self, module_name: str) -> Optional[BundleRecord]:
        """Get a bundle by module name, or None"""
        return self._find_one("SELECT * FROM bundles WHERE module_name = ?", (module_name,))

    def find_active_theme(self, target: ThemeTarget) -> Optional[BundleRecord]:
        """Get the active theme for a site area, or None"""
        return self._find_one(
            "SELECT * FROM bundles WHERE kind = ? AND theme_target = ? AND is_active = 1",
            (BundleKind.THEME.value, target.value)
        )

    def get(self, slug: str) -> BundleRecord:
        """
        Get a bundle by slug

        Raises:
            BundleNotFoundError: If no record exists
        """
        record = self.find_by_slug(slug)
        if record is None:
            raise BundleNotFoundError(slug)
        return record

    def _find_one(self, query: str, params: tuple) -> Optional[BundleRecord]:
        conn = self._get_connection()
        try:
            row = conn.execute(query, params).fetchone()
            return self._row_to_record(row) if row else None
        except sqlite3.Error as e:
            raise RegistryError(f"Failed to query bundles: {e}") from e
        finally:
            conn.close()

    def _filters(
        self,
        kind: Optional[BundleKind],
        active: Optional[bool],
        theme_target: Optional[ThemeTarget]
    ):
        query = " WHERE 1=1"
        params: List[Any] = []

        if kind is not None:
            query += " AND kind = ?"
            params.append(kind.value)

        if active is not None:
            query += " AND is_active = ?"
            params.append(1 if active else 0)

        if theme_target is not None:
            query += " AND theme_target = ?"
            params.append(theme_target.value)

        return query, params

    def list_bundles(
        self,
        kind: Optional[BundleKind] = None,
        active: Optional[bool] = None,
        theme_target: Optional[ThemeTarget] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[BundleRecord]:
        """
        List bundles ordered by name

        Args:
            kind: Only plugins or only themes
            active: Only active (True) or inactive (False) bundles
            theme_target: Only themes for this site area
            limit: Page size (None for all)
            offset: Rows to skip
        """
        where, params = self._filters(kind, active, theme_target)
        query = "SELECT * FROM bundles" + where + " ORDER BY name, slug"

        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        conn = self._get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_record(row) for row in rows]
        except sqlite3.Error as e:
            raise RegistryError(f"Failed to list bundles: {e}") from e
        finally:
            conn.close()

    def count_bundles(
        self,
        kind: Optional[BundleKind] = None,
        active: Optional[bool] = None,
        theme_target: Optional[ThemeTarget] = None
    ) -> int:
        where, params = self._filters(kind, active, theme_target)
        conn = self._get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM bundles" + where, params).fetchone()[0]
        except sqlite3.Error as e:
            raise RegistryError(f"Failed to count bundles: {e}") from e
        finally:
            conn.close()

    def set_active(self, slug: str, active: bool) -> BundleRecord:
        """
        Set the active flag of one bundle

        Raises:
            BundleNotFoundError: If no record exists
            RegistryError: If the update fails (including theme exclusivity violations)
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE bundles SET is_active = ?, updated_at = ? WHERE slug = ?",
                (active, _now(), slug)
            )
            if cursor.rowcount == 0:
                conn.rollback()
                raise BundleNotFoundError(slug)
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            raise RegistryError(f"Failed to update bundle '{slug}': {e}") from e
        finally:
            conn.close()

        return self.get(slug)

    def activate_exclusive(self, slug: str) -> List[str]:
        """
        Activate a theme and deactivate every other theme of the same target

        Both updates run in a single IMMEDIATE transaction, so no reader can see
        two active themes for one target and concurrent activations serialize.

        Returns:
            Slugs of the themes that were deactivated

        Raises:
            BundleNotFoundError: If no record exists
            RegistryError: If the bundle is not a theme or the transaction fails
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")

            row = conn.execute(
                "SELECT kind, theme_target FROM bundles WHERE slug = ?",
                (slug,)
            ).fetchone()
            if row is None:
                conn.rollback()
                raise BundleNotFoundError(slug)
            if row['kind'] != BundleKind.THEME.value:
                conn.rollback()
                raise RegistryError(f"Bundle '{slug}' is not a theme")

            target = row['theme_target']
            displaced = [
                r['slug'] for r in conn.execute(
                    "SELECT slug FROM bundles WHERE kind = ? AND theme_target = ? "
                    "AND is_active = 1 AND slug != ?",
                    (BundleKind.THEME.value, target, slug)
                ).fetchall()
            ]

            now = _now()
            conn.execute(
                "UPDATE bundles SET is_active = 0, updated_at = ? "
                "WHERE kind = ? AND theme_target = ? AND slug != ? AND is_active = 1",
                (now, BundleKind.THEME.value, target, slug)
            )
            conn.execute(
                "UPDATE bundles SET is_active = 1, updated_at = ? WHERE slug = ?",
                (now, slug)
            )
            conn.commit()

            if displaced:
                logger.info(f"Theme '{slug}' replaced active {target} theme(s): {', '.join(displaced)}")
            return displaced

        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            raise RegistryError(f"Failed to activate theme '{slug}': {e}") from e
        finally:
            conn.close()

    def delete(self, slug: str) -> None:
        """
        Remove a bundle record

        Raises:
            BundleNotFoundError: If no record exists
        """
        logger.info(f"Unregistering bundle from database: {slug}")
        conn = self._get_connection()
        try:
            cursor = conn.execute("DELETE FROM bundles WHERE slug = ?", (slug,))
            if cursor.rowcount == 0:
                conn.rollback()
                raise BundleNotFoundError(slug)
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            raise RegistryError(f"Failed to delete bundle '{slug}': {e}") from e
        finally:
            conn.close()

    def _row_to_record(self, row: sqlite3.Row) -> BundleRecord:
        """Convert database row to BundleRecord"""
        try:
            return BundleRecord(
                slug=row['slug'],
                name=row['name'],
                description=row['description'],
                version=row['version'],
                author=row['author'],
                author_url=row['author_url'],
                bundle_url=row['bundle_url'],
                screenshot=row['screenshot'],
                module_name=row['module_name'],
                kind=BundleKind(row['kind']),
                theme_target=ThemeTarget(row['theme_target']) if row['theme_target'] else None,
                is_active=bool(row['is_active']),
                auto_activate=bool(row['auto_activate']),
                dependencies=json.loads(row['dependencies'] or '[]'),
                customization_options=self._load_json(row['customization_options']),
                raw_manifest=self._load_json(row['raw_manifest']),
                created_at=datetime.fromisoformat(row['created_at']),
                updated_at=datetime.fromisoformat(row['updated_at']),
            )
        except Exception as e:
            logger.error(f"Failed to parse bundle record: {e}")
            raise RegistryError(f"Invalid bundle record in database: {e}")

    @staticmethod
    def _load_json(value: Optional[str]) -> Dict[str, Any]:
        return json.loads(value) if value else {}
