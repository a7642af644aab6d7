"""Wires the bundle components together from configuration"""

from dataclasses import dataclass
from typing import Optional

from bundleos.core.bundles.assets import AssetPublisher
from bundleos.core.bundles.consistency import check_consistency
from bundleos.core.bundles.extractor import ArchiveExtractor
from bundleos.core.bundles.host import FilesystemModuleHost, ModuleHost
from bundleos.core.bundles.installer import BundleInstaller
from bundleos.core.bundles.lifecycle import BundleLifecycleManager
from bundleos.core.bundles.manifest import ManifestLoader
from bundleos.core.bundles.materializer import BundleMaterializer
from bundleos.core.bundles.migrations import MigrationRunner, SQLMigrationRunner
from bundleos.core.bundles.models import ConsistencyReport
from bundleos.core.bundles.registry import BundleRegistry
from bundleos.core.config import BundleOSConfig, get_config


@dataclass
class BundleServices:
    """Everything a caller (CLI, web layer, tests) needs to manage bundles"""
    config: BundleOSConfig
    registry: BundleRegistry
    host: ModuleHost
    installer: BundleInstaller
    lifecycle: BundleLifecycleManager

    def check_consistency(self) -> ConsistencyReport:
        return check_consistency(self.registry, self.config.module_root)


def get_bundle_services(
    config: Optional[BundleOSConfig] = None,
    host: Optional[ModuleHost] = None,
    migration_runner: Optional[MigrationRunner] = None
) -> BundleServices:
    """
    Build the bundle services

    Args:
        config: Configuration (default: process-wide config)
        host: Module host (default: FilesystemModuleHost on the module root)
        migration_runner: Migration runner (default: SQL files against the registry db)
    """
    config = config or get_config()

    registry = BundleRegistry(config.db_path, busy_timeout=config.sqlite_busy_timeout)
    host = host or FilesystemModuleHost(config.module_root)
    migration_runner = migration_runner or SQLMigrationRunner(
        config.db_path,
        migrations_subdir=config.migrations_subdir,
        busy_timeout=config.sqlite_busy_timeout,
    )

    materializer = BundleMaterializer(config.module_root)
    lifecycle = BundleLifecycleManager(
        registry=registry,
        host=host,
        materializer=materializer,
        publisher=AssetPublisher(config.public_asset_root, config.asset_subdir),
        migration_runner=migration_runner,
    )
    installer = BundleInstaller(
        extractor=ArchiveExtractor(
            config.scratch_root,
            max_upload_size=config.max_upload_size,
            allowed_extensions=config.allowed_extensions,
        ),
        loader=ManifestLoader(registry, host, config.manifest_filename),
        materializer=materializer,
        registry=registry,
        host=host,
        lifecycle=lifecycle,
        auto_activate_plugins=config.auto_activate_plugins,
        default_author=config.default_author,
        asset_subdir=config.asset_subdir,
        migrations_subdir=config.migrations_subdir,
    )

    return BundleServices(
        config=config,
        registry=registry,
        host=host,
        installer=installer,
        lifecycle=lifecycle,
    )
