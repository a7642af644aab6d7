"""Manifest loader and validator for extracted bundles"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from bundleos.core.bundles.exceptions import (
    DuplicateModuleError,
    DuplicateSlugError,
    ManifestInvalidError,
    ManifestMissingError,
    ManifestParseError,
)
from bundleos.core.bundles.host import ModuleHost
from bundleos.core.bundles.models import BundleKind, BundleManifest
from bundleos.core.bundles.registry import BundleRegistry

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "slug", "version", "type")
MAX_MANIFEST_SIZE = 100 * 1024  # 100KB


class ManifestLoader:
    """Reads module.json from an extracted bundle and checks it against the registry"""

    def __init__(
        self,
        registry: BundleRegistry,
        host: ModuleHost,
        manifest_filename: str = "module.json"
    ):
        self.registry = registry
        self.host = host
        self.manifest_filename = manifest_filename

    def resolve_bundle_root(self, scratch_dir: Path) -> Path:
        """
        Locate the directory holding the manifest

        Archives are accepted either with the manifest at the top level or
        wrapped in a single top-level directory.

        Raises:
            ManifestMissingError: If neither layout contains the manifest
        """
        if (scratch_dir / self.manifest_filename).is_file():
            return scratch_dir

        entries = [p for p in scratch_dir.iterdir() if p.name != "__MACOSX"]
        if len(entries) == 1 and entries[0].is_dir():
            if (entries[0] / self.manifest_filename).is_file():
                logger.debug(f"Bundle root is nested directory: {entries[0].name}")
                return entries[0]

        raise ManifestMissingError(
            f"Module configuration file ({self.manifest_filename}) not found."
        )

    def load_manifest(self, scratch_dir: Path) -> BundleManifest:
        """
        Read, parse and validate the manifest of an extracted bundle

        Raises:
            ManifestMissingError: If the manifest file is absent
            ManifestParseError: If it is not a JSON object
            ManifestInvalidError: If required fields are missing or malformed
        """
        manifest_path = self.resolve_bundle_root(scratch_dir) / self.manifest_filename

        raw_bytes = manifest_path.read_bytes()
        if len(raw_bytes) > MAX_MANIFEST_SIZE:
            raise ManifestParseError(
                f"{self.manifest_filename} too large: {len(raw_bytes) / 1024:.2f}KB "
                f"(max: {MAX_MANIFEST_SIZE / 1024:.0f}KB)"
            )

        try:
            data = json.loads(raw_bytes.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestParseError(f"Invalid module configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ManifestParseError(
                f"Invalid module configuration file: expected a JSON object, "
                f"got {type(data).__name__}"
            )

        return self.validate(data)

    def validate(self, data: Dict[str, Any]) -> BundleManifest:
        """
        Validate a parsed manifest dictionary

        Raises:
            ManifestInvalidError: If required fields are missing or malformed
        """
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ManifestInvalidError(
                f"Missing required field: {', '.join(missing)}",
                missing_fields=missing
            )

        try:
            manifest = BundleManifest(**{**data, "raw_manifest": data})
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ManifestInvalidError(f"Invalid module configuration: {problems}") from e

        if not manifest.module_name:
            raise ManifestInvalidError(
                f"Bundle name '{manifest.name}' does not yield a usable module name"
            )

        if manifest.slug in manifest.dependencies:
            raise ManifestInvalidError(f"Bundle '{manifest.slug}' cannot depend on itself")

        logger.info(f"Manifest validation passed: {manifest.slug} v{manifest.version} ({manifest.type.value})")
        return manifest

    def check_kind(self, manifest: BundleManifest, expected_kind: Optional[BundleKind]) -> None:
        """Reject a theme uploaded as a plugin and vice versa"""
        if expected_kind is not None and manifest.kind != expected_kind:
            raise ManifestInvalidError(
                f"Expected a {expected_kind.value} bundle, but module.json declares "
                f"type '{manifest.type.value}'"
            )

    def check_uniqueness(self, manifest: BundleManifest) -> None:
        """
        Check slug and module name against current persisted state

        This is a fast-path check only; the registry's unique constraints
        decide races between concurrent installs.

        Raises:
            DuplicateSlugError: If a record with this slug exists
            DuplicateModuleError: If the module name is registered or live in the host
        """
        if self.registry.find_by_slug(manifest.slug) is not None:
            raise DuplicateSlugError(manifest.slug)

        module_name = manifest.module_name
        if self.registry.find_by_module_name(module_name) is not None or self.host.exists(module_name):
            raise DuplicateModuleError(module_name)
