"""
Bundle Lifecycle Manager

Drives installed bundles through activate / deactivate / uninstall.

States per bundle:
    uninstalled -> installed(inactive) <-> installed(active) -> uninstalled

Invariants:
- A bundle activates only when its module directory exists and every direct
  dependency is installed and active
- At most one theme per target is active; the switch happens in one
  registry transaction
- Uninstall removes files before the record, so a failure partway leaves
  the record behind as evidence
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from bundleos.core.bundles.assets import AssetPublisher
from bundleos.core.bundles.exceptions import (
    BundleError,
    BundleModuleNotFoundError,
    MissingDependencyError,
)
from bundleos.core.bundles.host import ModuleHost
from bundleos.core.bundles.materializer import BundleMaterializer
from bundleos.core.bundles.migrations import MigrationRunner
from bundleos.core.bundles.models import BundleKind, BundleRecord, ThemeTarget
from bundleos.core.bundles.registry import BundleRegistry
from bundleos.core.bundles.strategies import BundleStrategy, PluginStrategy, ThemeStrategy

logger = logging.getLogger(__name__)


class BundleLifecycleManager:
    """One lifecycle service for both bundle kinds, specialized by strategy"""

    def __init__(
        self,
        registry: BundleRegistry,
        host: ModuleHost,
        materializer: BundleMaterializer,
        publisher: AssetPublisher,
        migration_runner: MigrationRunner
    ):
        self.registry = registry
        self.host = host
        self.materializer = materializer
        self._strategies: Dict[BundleKind, BundleStrategy] = {
            BundleKind.PLUGIN: PluginStrategy(migration_runner),
            BundleKind.THEME: ThemeStrategy(publisher),
        }

    def strategy_for(self, kind: BundleKind) -> BundleStrategy:
        return self._strategies[kind]

    # ============================================
    # Queries
    # ============================================

    def get(self, slug: str) -> BundleRecord:
        return self.registry.get(slug)

    def list_bundles(
        self,
        kind: Optional[BundleKind] = None,
        active: Optional[bool] = None,
        theme_target: Optional[ThemeTarget] = None
    ) -> List[BundleRecord]:
        return self.registry.list_bundles(kind=kind, active=active, theme_target=theme_target)

    def get_active_plugins(self) -> List[BundleRecord]:
        return self.registry.list_bundles(kind=BundleKind.PLUGIN, active=True)

    def get_active_theme(self, target: ThemeTarget = ThemeTarget.FRONTEND) -> Optional[BundleRecord]:
        return self.registry.find_active_theme(target)

    def module_path(self, record: BundleRecord) -> Path:
        return self.materializer.module_path(record.module_name)

    # ============================================
    # Transitions
    # ============================================

    def check_dependencies(self, record: BundleRecord) -> None:
        """
        Validate direct dependencies only

        Raises:
            MissingDependencyError: Naming the first dependency that is absent or inactive
        """
        for dependency in record.dependencies:
            dep = self.registry.find_by_slug(dependency)
            if dep is None or not dep.is_active:
                raise MissingDependencyError(record.slug, dependency)

    def activate(self, slug: str) -> BundleRecord:
        """
        Activate an installed bundle

        Raises:
            BundleNotFoundError: If no record exists
            BundleModuleNotFoundError: If the module directory is missing
            MissingDependencyError: If a direct dependency is not active
            PublishError: If theme assets cannot be published
        """
        record = self.registry.get(slug)
        if record.is_active:
            logger.info(f"Bundle already active: {slug}")
            return record

        module_path = self.module_path(record)
        if not module_path.is_dir() or not self.host.exists(record.module_name):
            raise BundleModuleNotFoundError(record.module_name)

        self.check_dependencies(record)

        strategy = self.strategy_for(record.kind)
        logger.info(f"Activating {record.kind.value} '{slug}' ({record.module_name})")

        strategy.prepare_activation(record, module_path)
        try:
            self.host.enable(record.module_name)
            try:
                displaced = strategy.mark_active(self.registry, record)
            except BaseException:
                self.host.disable(record.module_name)
                raise
        except BaseException:
            strategy.rollback_activation(record)
            raise

        for other_slug in displaced:
            self._release_displaced(other_slug)

        strategy.after_activation(record, module_path)

        logger.info(f"Bundle activated: {slug}")
        return self.registry.get(slug)

    def _release_displaced(self, slug: str) -> None:
        """Undo side effects for a theme switched off by another activation"""
        other = self.registry.find_by_slug(slug)
        if other is None:
            return
        try:
            self.host.disable(other.module_name)
            self.strategy_for(other.kind).release(other)
        except BundleError as e:
            # The registry already reflects the switch; leftovers go at uninstall
            logger.warning(f"Failed to release displaced theme '{slug}': {e}")

    def deactivate(self, slug: str) -> BundleRecord:
        """
        Deactivate a bundle

        Dependents are left active; the dependency graph is not enforced on
        the way down. The record flips first and the host follows; published
        assets are removed last, and a failure there is only logged.

        Raises:
            BundleNotFoundError: If no record exists
            RegistryError / ModuleHostError: If the flip fails; the bundle stays active
        """
        record = self.registry.get(slug)
        if not record.is_active:
            logger.info(f"Bundle already inactive: {slug}")
            return record

        logger.info(f"Deactivating {record.kind.value} '{slug}' ({record.module_name})")
        updated = self.registry.set_active(slug, False)
        try:
            self.host.disable(record.module_name)
        except BaseException:
            self.registry.set_active(slug, True)
            raise

        try:
            self.strategy_for(record.kind).release(record)
        except BundleError as e:
            # Same as a displaced theme: the registry is authoritative, leftovers go at uninstall
            logger.warning(f"Failed to release deactivated bundle '{slug}': {e}")

        logger.info(f"Bundle deactivated: {slug}")
        return updated

    def uninstall(self, slug: str) -> None:
        """
        Remove a bundle completely

        Order: deactivate, remove published assets, remove the module
        directory, unregister from the host, delete the record.

        Raises:
            BundleNotFoundError: If no record exists
            PublishError / MaterializationError / ModuleHostError: If a removal
                step fails; the record is kept
        """
        record = self.registry.get(slug)
        logger.info(f"Uninstalling {record.kind.value} '{slug}' ({record.module_name})")

        if record.is_active:
            record = self.deactivate(slug)

        self.strategy_for(record.kind).release(record)
        self.materializer.remove(record.module_name)
        self.host.unregister(record.module_name)
        self.registry.delete(slug)

        logger.info(f"Bundle uninstalled: {slug}")
