"""
Cross-process file locks

- Unix/Linux/macOS: fcntl.flock
- Windows: msvcrt.locking

Locks are taken on a separate lock file, so the file being protected can be
replaced with os.replace while the lock is held.

Usage:
    from bundleos.core.utils.filelock import locked

    with locked(module_root / ".modules_statuses.lock"):
        # ... read-modify-write ...
"""

import logging
import platform
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

logger = logging.getLogger(__name__)


class FileLockError(Exception):
    """Raised when a lock cannot be taken or released"""
    pass


class LockAcquisitionError(FileLockError):
    """Raised when a non-blocking acquire finds the lock held"""
    pass


def acquire_lock(file_handle: IO, non_blocking: bool = False) -> None:
    """
    Take an exclusive lock on an open file

    Args:
        file_handle: Open file object
        non_blocking: Fail immediately instead of waiting when the lock is held

    Raises:
        LockAcquisitionError: Lock held elsewhere (non_blocking=True only)
        FileLockError: Any other locking failure
    """
    if platform.system() == "Windows":
        _acquire_lock_windows(file_handle, non_blocking)
    else:
        _acquire_lock_unix(file_handle, non_blocking)
    logger.debug(f"Acquired lock on {file_handle.name}")


def release_lock(file_handle: IO) -> None:
    if platform.system() == "Windows":
        _release_lock_windows(file_handle)
    else:
        _release_lock_unix(file_handle)
    logger.debug(f"Released lock on {file_handle.name}")


@contextmanager
def locked(lock_path: Path, non_blocking: bool = False) -> Iterator[None]:
    """Hold an exclusive lock on lock_path for the duration of the block"""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        handle = open(lock_path, "a+", encoding="utf-8")
    except OSError as e:
        raise FileLockError(f"Cannot open lock file {lock_path}: {e}") from e

    try:
        acquire_lock(handle, non_blocking=non_blocking)
        try:
            yield
        finally:
            release_lock(handle)
    finally:
        handle.close()


# ============================================
# Unix/Linux/macOS
# ============================================

def _acquire_lock_unix(file_handle: IO, non_blocking: bool) -> None:
    import fcntl

    flags = fcntl.LOCK_EX
    if non_blocking:
        flags |= fcntl.LOCK_NB
    try:
        fcntl.flock(file_handle.fileno(), flags)
    except BlockingIOError as e:
        raise LockAcquisitionError(f"Lock is held by another process: {file_handle.name}") from e
    except OSError as e:
        raise FileLockError(f"fcntl.flock failed: {e}") from e


def _release_lock_unix(file_handle: IO) -> None:
    import fcntl

    try:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        raise FileLockError(f"fcntl.flock unlock failed: {e}") from e


# ============================================
# Windows
# ============================================

def _acquire_lock_windows(file_handle: IO, non_blocking: bool) -> None:
    import msvcrt

    # Lock the first byte; LK_LOCK retries for about ten seconds before failing
    file_handle.seek(0)
    mode = msvcrt.LK_NBLCK if non_blocking else msvcrt.LK_LOCK
    try:
        msvcrt.locking(file_handle.fileno(), mode, 1)
    except OSError as e:
        if e.errno in (13, 36):
            raise LockAcquisitionError(f"Lock is held by another process: {file_handle.name}") from e
        raise FileLockError(f"msvcrt.locking failed: {e}") from e


def _release_lock_windows(file_handle: IO) -> None:
    import msvcrt

    file_handle.seek(0)
    try:
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)
    except OSError as e:
        raise FileLockError(f"msvcrt.locking unlock failed: {e}") from e
