# bundleos/core/storage/paths.py
from __future__ import annotations
from pathlib import Path
from typing import Optional


def bundleos_home() -> Path:
    """Default root of all BundleOS state"""
    return Path.home() / ".bundleos"

def store_root(home: Optional[Path] = None) -> Path:
    return (home or bundleos_home()) / "store"

def db_path(home: Optional[Path] = None) -> Path:
    return store_root(home) / "registry.sqlite"

def module_root(home: Optional[Path] = None) -> Path:
    """Materialized bundles, one directory per module name"""
    return (home or bundleos_home()) / "Modules"

def public_asset_root(home: Optional[Path] = None) -> Path:
    """Published theme assets, served statically by the web server"""
    return (home or bundleos_home()) / "public" / "modules"

def scratch_root(home: Optional[Path] = None) -> Path:
    """Per-upload extraction directories"""
    return store_root(home) / "tmp"

def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path
