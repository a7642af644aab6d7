"""Archive extractor for uploaded bundles"""

import logging
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from bundleos.core.bundles.exceptions import ExtractionError, ValidationError
from bundleos.core.bundles.models import UploadedBundle

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_SIZE = 10240 * 1024  # 10240 KB


def remove_tree(path: Path) -> None:
    """Remove a directory tree, logging instead of raising"""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Failed to clean up {path}: {e}")


class ArchiveExtractor:
    """Validates uploaded archives and extracts them into private scratch directories"""

    def __init__(
        self,
        scratch_root: Path,
        max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE,
        allowed_extensions: Optional[List[str]] = None
    ):
        """
        Initialize extractor

        Args:
            scratch_root: Parent directory for per-upload scratch directories
            max_upload_size: Maximum accepted upload size in bytes
            allowed_extensions: Accepted file extensions (default: zip)
        """
        self.scratch_root = scratch_root
        self.max_upload_size = max_upload_size
        self.allowed_extensions = allowed_extensions or ["zip"]

    def validate_upload(self, upload: UploadedBundle) -> None:
        """
        Check extension and size before anything touches the filesystem

        Raises:
            ValidationError: If the upload is not an accepted archive or is too large
        """
        if upload.extension not in self.allowed_extensions:
            raise ValidationError(
                f"File must be a {'/'.join(e.upper() for e in self.allowed_extensions)} archive "
                f"(got '{upload.filename}')."
            )

        if upload.size > self.max_upload_size:
            raise ValidationError(
                f"File size exceeds maximum allowed size: {upload.size / 1024:.0f}KB "
                f"(max: {self.max_upload_size / 1024:.0f}KB)."
            )

    def extract(self, upload: UploadedBundle) -> Path:
        """
        Extract an upload into a fresh, randomly named scratch directory

        The caller owns the returned directory and must remove it; use
        scratch() to get that guarantee.

        Raises:
            ValidationError: If the upload fails validation
            ExtractionError: If the archive is corrupt, unsafe or cannot be decompressed
        """
        self.validate_upload(upload)

        self.scratch_root.mkdir(parents=True, exist_ok=True)
        scratch_dir = Path(tempfile.mkdtemp(prefix="bundle_", dir=str(self.scratch_root)))
        logger.info(f"Extracting {upload.filename} to {scratch_dir}")

        try:
            self._extract_zip(Path(upload.path), scratch_dir)
        except BaseException:
            remove_tree(scratch_dir)
            raise

        return scratch_dir

    @contextmanager
    def scratch(self, upload: UploadedBundle) -> Iterator[Path]:
        """Extract an upload and remove whatever is left of the scratch directory on exit"""
        scratch_dir = self.extract(upload)
        try:
            yield scratch_dir
        finally:
            remove_tree(scratch_dir)

    def _extract_zip(self, zip_path: Path, target_dir: Path) -> None:
        """Extract zip with path traversal protection"""
        target_resolved = target_dir.resolve()

        try:
            with zipfile.ZipFile(zip_path, 'r') as zf:
                members = zf.infolist()
                if not members:
                    raise ExtractionError("Archive is empty.")

                for info in members:
                    name = info.filename

                    if '..' in Path(name).parts or name.startswith('/') or Path(name).is_absolute():
                        raise ExtractionError(f"Unsafe path in archive: {name}")

                    # Unix symlinks carry file type 0xA in the high bits of external_attr
                    if (info.external_attr >> 28) == 0xA:
                        raise ExtractionError(f"Symlinks are not allowed in bundles: {name}")

                    target_path = target_dir / name
                    try:
                        target_path.resolve().relative_to(target_resolved)
                    except ValueError:
                        raise ExtractionError(f"Archive entry escapes extraction directory: {name}")

                    if info.is_dir():
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as source, open(target_path, 'wb') as target:
                        shutil.copyfileobj(source, target)

        except ExtractionError:
            raise
        except Exception as e:
            # BadZipFile, zlib.error, NotImplementedError (unsupported compression), OSError
            raise ExtractionError(f"Could not extract ZIP file: {e}") from e

        logger.debug(f"Extraction complete: {target_dir}")
