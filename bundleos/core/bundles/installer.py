"""Installer facade: upload -> extract -> validate -> materialize -> register"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from bundleos.core.bundles.exceptions import BundleError, DuplicateModuleError, MaterializationError
from bundleos.core.bundles.extractor import ArchiveExtractor
from bundleos.core.bundles.host import ModuleHost
from bundleos.core.bundles.lifecycle import BundleLifecycleManager
from bundleos.core.bundles.manifest import ManifestLoader
from bundleos.core.bundles.materializer import BundleMaterializer
from bundleos.core.bundles.models import (
    BundleKind,
    BundleManifest,
    BundleRecord,
    ThemeTarget,
    UploadedBundle,
    slugify,
)
from bundleos.core.bundles.registry import BundleRegistry

logger = logging.getLogger(__name__)


class BundleInstaller:
    """
    Installs uploaded bundle archives and scaffolds empty ones

    The inactive record is inserted before the module root is touched, so the
    registry's unique constraints decide concurrent installs of the same slug
    or module name. Any failure after that point removes the host entry, the
    module directory and the record again.
    """

    def __init__(
        self,
        extractor: ArchiveExtractor,
        loader: ManifestLoader,
        materializer: BundleMaterializer,
        registry: BundleRegistry,
        host: ModuleHost,
        lifecycle: BundleLifecycleManager,
        auto_activate_plugins: bool = True,
        default_author: str = "BundleOS",
        asset_subdir: str = "Resources/assets",
        migrations_subdir: str = "Database/Migrations"
    ):
        self.extractor = extractor
        self.loader = loader
        self.materializer = materializer
        self.registry = registry
        self.host = host
        self.lifecycle = lifecycle
        self.auto_activate_plugins = auto_activate_plugins
        self.default_author = default_author
        self.asset_subdir = asset_subdir
        self.migrations_subdir = migrations_subdir

    def install(
        self,
        upload: UploadedBundle,
        expected_kind: Optional[BundleKind] = None
    ) -> BundleRecord:
        """
        Install an uploaded archive

        Args:
            upload: The uploaded archive
            expected_kind: Reject bundles of the other kind (None accepts both)

        Returns:
            The installed record (active if it was auto-activated)

        Raises:
            ValidationError: If the upload is rejected before extraction
            ExtractionError: If the archive is corrupt or unsafe
            ManifestError: If module.json is missing, unparsable or invalid
            DuplicateSlugError / DuplicateModuleError: If the bundle clashes
            MaterializationError: If the module cannot be moved into place
        """
        logger.info(f"Installing bundle from upload: {upload.filename}")

        with self.extractor.scratch(upload) as scratch_dir:
            bundle_root = self.loader.resolve_bundle_root(scratch_dir)
            manifest = self.loader.load_manifest(scratch_dir)
            self.loader.check_kind(manifest, expected_kind)
            self.loader.check_uniqueness(manifest)

            record = self._claim(manifest)
            try:
                module_path = self.materializer.materialize(bundle_root, manifest.module_name)
                self.host.register(manifest.module_name, module_path)
            except BaseException:
                self._rollback(record)
                raise

        logger.info(
            f"Installed {record.kind.value} '{record.slug}' v{record.version} "
            f"as module {record.module_name}"
        )

        if self.auto_activate_plugins and record.kind == BundleKind.PLUGIN and record.auto_activate:
            record = self._auto_activate(record)

        return record

    def _claim(self, manifest: BundleManifest) -> BundleRecord:
        """Insert the inactive record; the unique constraints are the race guard"""
        return self.registry.create(BundleRecord.from_manifest(manifest))

    def _rollback(self, record: BundleRecord) -> None:
        """Undo a partially completed install, keeping the original error primary"""
        logger.warning(f"Rolling back install of '{record.slug}'")
        steps = (
            ("unregister module", lambda: self.host.unregister(record.module_name)),
            ("remove module directory", lambda: self.materializer.remove(record.module_name)),
            ("delete record", lambda: self.registry.delete(record.slug)),
        )
        for label, step in steps:
            try:
                step()
            except BundleError as e:
                logger.warning(f"Rollback of '{record.slug}' could not {label}: {e}")

    def _auto_activate(self, record: BundleRecord) -> BundleRecord:
        try:
            return self.lifecycle.activate(record.slug)
        except BundleError as e:
            logger.warning(f"Auto-activation of '{record.slug}' failed; left inactive: {e}")
            return self.registry.get(record.slug)

    def scaffold(
        self,
        name: str,
        kind: BundleKind = BundleKind.PLUGIN,
        theme_target: Optional[ThemeTarget] = None
    ) -> BundleRecord:
        """
        Create an empty module skeleton in the module root and register it

        Args:
            name: Display name; the slug and module name derive from it
            kind: Plugin or theme
            theme_target: Site area for themes (default: frontend)

        Raises:
            ManifestInvalidError: If the name yields no usable slug or module name
            DuplicateSlugError / DuplicateModuleError: If the bundle clashes
            MaterializationError: If the skeleton cannot be written
        """
        if kind == BundleKind.THEME:
            manifest_type = (theme_target or ThemeTarget.FRONTEND).value
        else:
            manifest_type = "plugin"

        data: Dict[str, Any] = {
            "name": name,
            "slug": slugify(name),
            "description": f"A {kind.value} module for {name}",
            "version": "1.0.0",
            "author": self.default_author,
            "type": manifest_type,
        }
        manifest = self.loader.validate(data)
        self.loader.check_uniqueness(manifest)
        # Unlike an upload, a scaffold never replaces an unregistered directory
        if self.materializer.module_path(manifest.module_name).exists():
            raise DuplicateModuleError(manifest.module_name)

        logger.info(f"Scaffolding {kind.value} '{manifest.slug}' as module {manifest.module_name}")

        record = self._claim(manifest)
        try:
            module_path = self._write_skeleton(manifest, data)
            self.host.register(manifest.module_name, module_path)
        except BaseException:
            self._rollback(record)
            raise

        return record

    def _write_skeleton(self, manifest: BundleManifest, data: Dict[str, Any]) -> Path:
        module_path = self.materializer.module_path(manifest.module_name)
        subdir = self.asset_subdir if manifest.kind == BundleKind.THEME else self.migrations_subdir

        try:
            module_path.mkdir(parents=True)
            (module_path / subdir).mkdir(parents=True)
            (module_path / self.loader.manifest_filename).write_text(
                json.dumps(data, indent=4) + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise MaterializationError(f"Failed to scaffold module {manifest.module_name}: {e}") from e

        return module_path
