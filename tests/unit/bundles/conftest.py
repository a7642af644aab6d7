from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

from bundleos.core.bundles.models import UploadedBundle
from bundleos.core.bundles.service import BundleServices, get_bundle_services
from bundleos.core.config import BundleOSConfig


def manifest_data(name: str, slug: str, type_: str = "plugin", **extra: Any) -> Dict[str, Any]:
    data = {"name": name, "slug": slug, "version": "1.0.0", "type": type_}
    data.update(extra)
    return data


def write_zip(
    path: Path,
    files: Dict[str, Any],
    wrap: Optional[str] = None
) -> Path:
    """Write a zip archive; dict values are dumped as JSON, str/bytes written as-is"""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            arcname = f"{wrap}/{name}" if wrap else name
            if isinstance(content, dict):
                content = json.dumps(content)
            zf.writestr(arcname, content)
    return path


@pytest.fixture
def config(tmp_path: Path) -> BundleOSConfig:
    return BundleOSConfig(home=tmp_path / "home")


@pytest.fixture
def services(config: BundleOSConfig) -> BundleServices:
    return get_bundle_services(config)


@pytest.fixture
def make_bundle(tmp_path: Path) -> Callable[..., UploadedBundle]:
    """Build an uploadable bundle archive from a manifest plus extra files"""
    counter = {"n": 0}

    def _make(
        manifest: Optional[Dict[str, Any]],
        files: Optional[Dict[str, Any]] = None,
        wrap: Optional[str] = None,
        filename: Optional[str] = None
    ) -> UploadedBundle:
        counter["n"] += 1
        uploads = tmp_path / "uploads"
        uploads.mkdir(exist_ok=True)
        contents: Dict[str, Any] = dict(files or {})
        if manifest is not None:
            contents["module.json"] = manifest
        archive = write_zip(uploads / (filename or f"bundle{counter['n']}.zip"), contents, wrap=wrap)
        return UploadedBundle.from_path(archive)

    return _make


@pytest.fixture
def install(services: BundleServices, make_bundle: Callable[..., UploadedBundle]):
    """Install a bundle straight from its manifest"""

    def _install(manifest: Dict[str, Any], files: Optional[Dict[str, Any]] = None):
        return services.installer.install(make_bundle(manifest, files))

    return _install


@pytest.fixture
def build_zip() -> Callable[..., Path]:
    return write_zip


@pytest.fixture
def manifest() -> Callable[..., Dict[str, Any]]:
    return manifest_data
