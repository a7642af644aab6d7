"""BundleOS Bundles System

Installer and lifecycle for uploadable plugin and theme bundles.

Core principles:
1. Uploads are validated before anything is written to disk
2. Every upload is extracted into its own scratch directory, removed on every path
3. Slug and module name uniqueness is decided by database constraints
4. At most one theme per target is active, switched in a single transaction
5. A module directory exists if and only if its record exists (outside an install)

Components:
- extractor: Upload validation and safe zip extraction
- manifest: module.json loader and validator
- materializer: Moves extracted bundles into the module root
- registry: Bundle records in SQLite
- lifecycle: activate / deactivate / uninstall
- strategies: Plugin and theme specific lifecycle hooks
- installer: Install and scaffold facade
- host, assets, migrations: Side-effect collaborators
"""

from bundleos.core.bundles.exceptions import (
    BundleError,
    ValidationError,
    ExtractionError,
    ManifestError,
    ManifestMissingError,
    ManifestParseError,
    ManifestInvalidError,
    DuplicateSlugError,
    DuplicateModuleError,
    MaterializationError,
    BundleNotFoundError,
    BundleModuleNotFoundError,
    MissingDependencyError,
    MigrationError,
    PublishError,
    ModuleHostError,
    RegistryError,
)
from bundleos.core.bundles.models import (
    BundleKind,
    ThemeTarget,
    ManifestType,
    BundleManifest,
    BundleRecord,
    UploadedBundle,
    ConsistencyReport,
)
from bundleos.core.bundles.extractor import ArchiveExtractor
from bundleos.core.bundles.manifest import ManifestLoader
from bundleos.core.bundles.materializer import BundleMaterializer
from bundleos.core.bundles.registry import BundleRegistry
from bundleos.core.bundles.host import ModuleHost, FilesystemModuleHost
from bundleos.core.bundles.assets import AssetPublisher
from bundleos.core.bundles.migrations import MigrationRunner, SQLMigrationRunner
from bundleos.core.bundles.lifecycle import BundleLifecycleManager
from bundleos.core.bundles.installer import BundleInstaller
from bundleos.core.bundles.service import BundleServices, get_bundle_services

__all__ = [
    # Exceptions
    "BundleError",
    "ValidationError",
    "ExtractionError",
    "ManifestError",
    "ManifestMissingError",
    "ManifestParseError",
    "ManifestInvalidError",
    "DuplicateSlugError",
    "DuplicateModuleError",
    "MaterializationError",
    "BundleNotFoundError",
    "BundleModuleNotFoundError",
    "MissingDependencyError",
    "MigrationError",
    "PublishError",
    "ModuleHostError",
    "RegistryError",
    # Models
    "BundleKind",
    "ThemeTarget",
    "ManifestType",
    "BundleManifest",
    "BundleRecord",
    "UploadedBundle",
    "ConsistencyReport",
    # Components
    "ArchiveExtractor",
    "ManifestLoader",
    "BundleMaterializer",
    "BundleRegistry",
    "ModuleHost",
    "FilesystemModuleHost",
    "AssetPublisher",
    "MigrationRunner",
    "SQLMigrationRunner",
    "BundleLifecycleManager",
    "BundleInstaller",
    "BundleServices",
    "get_bundle_services",
]
