"""Moves extracted bundles into the permanent module root"""

import errno
import logging
import os
import shutil
import uuid
from pathlib import Path

from bundleos.core.bundles.exceptions import MaterializationError

logger = logging.getLogger(__name__)


def _count_files(root: Path) -> int:
    return sum(1 for p in root.rglob("*") if p.is_file())


class BundleMaterializer:
    """Places an extracted bundle at <module_root>/<ModuleName>"""

    def __init__(self, module_root: Path):
        self.module_root = module_root

    def module_path(self, module_name: str) -> Path:
        """Deterministic permanent location of a module"""
        if not module_name or "/" in module_name or "\\" in module_name or module_name in (".", ".."):
            raise MaterializationError(f"Invalid module name: {module_name!r}")
        return self.module_root / module_name

    def materialize(self, source_dir: Path, module_name: str) -> Path:
        """
        Move source_dir into the module root under module_name

        Any directory already at the target is treated as a stale leftover and
        deleted; callers must have run the duplicate-module check first.

        Returns:
            Permanent module path

        Raises:
            MaterializationError: If any filesystem step fails
        """
        target = self.module_path(module_name)
        logger.info(f"Materializing module {module_name} -> {target}")

        try:
            self.module_root.mkdir(parents=True, exist_ok=True)

            if target.exists():
                logger.warning(f"Replacing stale module directory: {target}")
                shutil.rmtree(target)

            try:
                os.replace(source_dir, target)
            except OSError as e:
                if e.errno != errno.EXDEV:
                    raise
                self._move_across_devices(source_dir, target)

        except MaterializationError:
            raise
        except OSError as e:
            raise MaterializationError(f"Failed to materialize module '{module_name}': {e}") from e

        return target

    def _move_across_devices(self, source_dir: Path, target: Path) -> None:
        """Copy into a staging directory beside target, verify, rename, then drop the source"""
        staging = target.parent / f".staging_{target.name}_{uuid.uuid4().hex[:8]}"
        logger.debug(f"Cross-device move via {staging}")

        try:
            shutil.copytree(source_dir, staging, symlinks=True)

            expected = _count_files(source_dir)
            copied = _count_files(staging)
            if copied != expected:
                raise MaterializationError(
                    f"Incomplete copy of {source_dir}: {copied} of {expected} files"
                )

            os.replace(staging, target)
        except BaseException:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
            raise

        try:
            shutil.rmtree(source_dir)
        except OSError as e:
            # Module is already in place; the scratch guard retries this removal
            logger.warning(f"Failed to remove moved source {source_dir}: {e}")

    def remove(self, module_name: str) -> bool:
        """
        Delete a materialized module directory

        Returns:
            True if a directory was removed

        Raises:
            MaterializationError: If the directory exists but cannot be removed
        """
        target = self.module_path(module_name)
        if not target.exists():
            return False

        try:
            shutil.rmtree(target)
        except OSError as e:
            raise MaterializationError(f"Failed to remove module directory {target}: {e}") from e

        logger.info(f"Module directory removed: {target}")
        return True
