"""Kind-specific lifecycle hooks for plugins and themes"""

import logging
from pathlib import Path
from typing import List

from bundleos.core.bundles.assets import AssetPublisher
from bundleos.core.bundles.exceptions import MigrationError
from bundleos.core.bundles.migrations import MigrationRunner
from bundleos.core.bundles.models import BundleKind, BundleRecord
from bundleos.core.bundles.registry import BundleRegistry

logger = logging.getLogger(__name__)


class BundleStrategy:
    """
    Hooks the lifecycle manager calls around each transition

    Subclasses override only what differs for their kind; the defaults do
    nothing beyond flipping the active flag.
    """

    kind: BundleKind

    def prepare_activation(self, record: BundleRecord, module_path: Path) -> None:
        """Side effects that must succeed before the record is marked active"""

    def rollback_activation(self, record: BundleRecord) -> None:
        """Undo prepare_activation after a failed flip"""

    def mark_active(self, registry: BundleRegistry, record: BundleRecord) -> List[str]:
        """Flip the active flag; returns slugs of bundles deactivated as a result"""
        registry.set_active(record.slug, True)
        return []

    def after_activation(self, record: BundleRecord, module_path: Path) -> None:
        """Side effects that run once the bundle is active"""

    def release(self, record: BundleRecord) -> None:
        """Undo activation side effects on deactivate and uninstall"""


class PluginStrategy(BundleStrategy):
    """Plugins run their pending schema migrations once active"""

    kind = BundleKind.PLUGIN

    def __init__(self, migration_runner: MigrationRunner):
        self.migration_runner = migration_runner

    def after_activation(self, record: BundleRecord, module_path: Path) -> None:
        # Migration failures never undo an activation; they are only logged
        try:
            self.migration_runner.run(record.module_name, module_path)
        except MigrationError as e:
            logger.error(
                f"Plugin '{record.slug}' activated but its migrations failed: {e}",
                exc_info=True
            )


class ThemeStrategy(BundleStrategy):
    """Themes are exclusive per target and publish static assets"""

    kind = BundleKind.THEME

    def __init__(self, publisher: AssetPublisher):
        self.publisher = publisher

    def prepare_activation(self, record: BundleRecord, module_path: Path) -> None:
        self.publisher.publish(record.module_name, module_path)

    def rollback_activation(self, record: BundleRecord) -> None:
        self.publisher.unpublish(record.module_name)

    def mark_active(self, registry: BundleRegistry, record: BundleRecord) -> List[str]:
        return registry.activate_exclusive(record.slug)

    def release(self, record: BundleRecord) -> None:
        self.publisher.unpublish(record.module_name)
