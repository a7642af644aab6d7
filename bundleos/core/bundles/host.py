"""Module host: the narrow view of the host application's module loader"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Protocol, runtime_checkable

from bundleos.core.bundles.exceptions import ModuleHostError
from bundleos.core.utils.filelock import FileLockError, locked

logger = logging.getLogger(__name__)

STATUSES_FILENAME = "modules_statuses.json"
LOCK_FILENAME = ".modules_statuses.lock"


@runtime_checkable
class ModuleHost(Protocol):
    """Capability the lifecycle needs from the host framework's module discovery"""

    def register(self, name: str, path: Path) -> None: ...

    def unregister(self, name: str) -> None: ...

    def enable(self, name: str) -> None: ...

    def disable(self, name: str) -> None: ...

    def exists(self, name: str) -> bool: ...


class FilesystemModuleHost:
    """
    Module host backed by a modules_statuses.json file in the module root

    The host application reads the same file at boot to decide which module
    directories to load. Writes go through a temp file and os.replace so the
    loader never observes a half-written status file. Every read-modify-write
    holds an exclusive lock on a sibling lock file, so separate host instances
    and separate processes never drop each other's updates.
    """

    def __init__(self, module_root: Path):
        self.module_root = module_root
        self.statuses_path = module_root / STATUSES_FILENAME
        self.lock_path = module_root / LOCK_FILENAME

    @contextmanager
    def _locked(self) -> Iterator[Dict[str, bool]]:
        """Yield the current statuses with the status file locked"""
        try:
            with locked(self.lock_path):
                yield self._read()
        except FileLockError as e:
            raise ModuleHostError(f"Failed to lock {self.statuses_path}: {e}") from e

    def _read(self) -> Dict[str, bool]:
        if not self.statuses_path.exists():
            return {}
        try:
            data = json.loads(self.statuses_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ModuleHostError(f"Failed to read {self.statuses_path}: {e}") from e
        if not isinstance(data, dict):
            raise ModuleHostError(f"Corrupt module status file: {self.statuses_path}")
        return {str(k): bool(v) for k, v in data.items()}

    def _write(self, statuses: Dict[str, bool]) -> None:
        self.module_root.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".statuses_", dir=str(self.module_root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(statuses, f, indent=2, sort_keys=True)
            os.replace(tmp, self.statuses_path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise ModuleHostError(f"Failed to write {self.statuses_path}: {e}") from e

    def register(self, name: str, path: Path) -> None:
        """Make a materialized module known to the host, initially disabled"""
        if path.resolve() != self.path_for(name).resolve():
            raise ModuleHostError(f"Module '{name}' must live at {self.path_for(name)}, got {path}")
        with self._locked() as statuses:
            statuses[name] = False
            self._write(statuses)
        logger.debug(f"Registered module {name}")

    def unregister(self, name: str) -> None:
        with self._locked() as statuses:
            if statuses.pop(name, None) is not None:
                self._write(statuses)
                logger.debug(f"Unregistered module {name}")

    def enable(self, name: str) -> None:
        with self._locked() as statuses:
            if name not in statuses:
                raise ModuleHostError(f"Module not registered with host: {name}")
            statuses[name] = True
            self._write(statuses)
        logger.info(f"Module enabled: {name}")

    def disable(self, name: str) -> None:
        # Disabling an unknown module is a no-op so deactivate stays idempotent
        with self._locked() as statuses:
            if statuses.get(name):
                statuses[name] = False
                self._write(statuses)
                logger.info(f"Module disabled: {name}")

    def exists(self, name: str) -> bool:
        """True when the module is registered and its directory is present"""
        return name in self._read() and self.path_for(name).is_dir()

    def is_enabled(self, name: str) -> bool:
        return self._read().get(name, False)

    def registered_modules(self) -> Dict[str, bool]:
        return self._read()

    def path_for(self, name: str) -> Path:
        return self.module_root / name
