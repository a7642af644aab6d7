"""Publishes theme assets into the public asset root"""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional

from bundleos.core.bundles.exceptions import PublishError

logger = logging.getLogger(__name__)


class AssetPublisher:
    """Copies <module>/<asset_subdir> to <public_root>/<ModuleName>"""

    def __init__(self, public_root: Path, asset_subdir: str = "Resources/assets"):
        self.public_root = public_root
        self.asset_subdir = asset_subdir

    def published_path(self, module_name: str) -> Path:
        return self.public_root / module_name

    def publish(self, module_name: str, module_path: Path) -> Optional[Path]:
        """
        Publish a module's assets, replacing any previous copy

        The new copy is fully staged next to the destination before the old
        copy is moved aside, so the swap itself is two renames.

        Returns:
            Published path, or None if the module ships no assets

        Raises:
            PublishError: If copying or swapping fails
        """
        source = module_path / self.asset_subdir
        if not source.is_dir():
            logger.info(f"Module {module_name} has no {self.asset_subdir}; nothing to publish")
            return None

        destination = self.published_path(module_name)
        token = uuid.uuid4().hex[:8]
        staging = self.public_root / f".staging_{module_name}_{token}"
        retired = self.public_root / f".retired_{module_name}_{token}"

        try:
            self.public_root.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, staging)

            if destination.exists():
                os.replace(destination, retired)
            os.replace(staging, destination)

        except OSError as e:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
            if retired.exists() and not destination.exists():
                os.replace(retired, destination)
            raise PublishError(f"Failed to publish assets for {module_name}: {e}") from e

        if retired.exists():
            shutil.rmtree(retired, ignore_errors=True)

        logger.info(f"Published assets for {module_name} -> {destination}")
        return destination

    def unpublish(self, module_name: str) -> bool:
        """
        Remove a module's published assets

        Returns:
            True if anything was removed

        Raises:
            PublishError: If the published directory cannot be removed
        """
        destination = self.published_path(module_name)
        if not destination.exists():
            return False

        try:
            shutil.rmtree(destination)
        except OSError as e:
            raise PublishError(f"Failed to remove published assets {destination}: {e}") from e

        logger.info(f"Removed published assets for {module_name}")
        return True
