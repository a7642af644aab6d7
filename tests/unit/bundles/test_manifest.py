from __future__ import annotations

import json
from pathlib import Path

import pytest

from bundleos.core.bundles.exceptions import (
    DuplicateModuleError,
    DuplicateSlugError,
    ManifestInvalidError,
    ManifestMissingError,
    ManifestParseError,
)
from bundleos.core.bundles.manifest import ManifestLoader
from bundleos.core.bundles.models import BundleKind, BundleRecord, ThemeTarget, slugify, studly


@pytest.fixture
def loader(services) -> ManifestLoader:
    return ManifestLoader(services.registry, services.host)


def _scratch(tmp_path: Path, content, nested: str = "") -> Path:
    scratch = tmp_path / "scratch"
    root = scratch / nested if nested else scratch
    root.mkdir(parents=True)
    if content is not None:
        text = content if isinstance(content, str) else json.dumps(content)
        (root / "module.json").write_text(text, encoding="utf-8")
    return scratch


def test_load_plugin_manifest(tmp_path: Path, loader: ManifestLoader) -> None:
    scratch = _scratch(tmp_path, {
        "name": "Gallery",
        "slug": "gallery",
        "version": "2.1.0",
        "type": "plugin",
        "dependencies": ["media-core"],
        "auto_activate": True,
        "x-custom": {"keep": "me"},
    })

    manifest = loader.load_manifest(scratch)

    assert manifest.slug == "gallery"
    assert manifest.module_name == "Gallery"
    assert manifest.kind == BundleKind.PLUGIN
    assert manifest.theme_target is None
    assert manifest.dependencies == ["media-core"]
    assert manifest.raw_manifest["x-custom"] == {"keep": "me"}


@pytest.mark.parametrize("type_,target", [("frontend", ThemeTarget.FRONTEND), ("admin", ThemeTarget.ADMIN)])
def test_theme_type_maps_to_target(tmp_path: Path, loader: ManifestLoader, type_, target) -> None:
    scratch = _scratch(tmp_path, {"name": "dark mode", "slug": "dark", "version": "1.0", "type": type_})

    manifest = loader.load_manifest(scratch)

    assert manifest.kind == BundleKind.THEME
    assert manifest.theme_target == target
    assert manifest.module_name == "DarkMode"


def test_manifest_inside_single_top_level_directory(tmp_path: Path, loader: ManifestLoader) -> None:
    scratch = _scratch(tmp_path, {"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin"},
                       nested="gallery-1.0")
    (scratch / "__MACOSX").mkdir()

    assert loader.resolve_bundle_root(scratch) == scratch / "gallery-1.0"
    assert loader.load_manifest(scratch).slug == "gallery"


def test_missing_manifest(tmp_path: Path, loader: ManifestLoader) -> None:
    scratch = _scratch(tmp_path, None)
    (scratch / "README.md").write_text("no manifest here")

    with pytest.raises(ManifestMissingError, match="module.json"):
        loader.load_manifest(scratch)


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", "\"plugin\""])
def test_unparsable_manifest(tmp_path: Path, loader: ManifestLoader, content: str) -> None:
    scratch = _scratch(tmp_path, content)

    with pytest.raises(ManifestParseError):
        loader.load_manifest(scratch)


def test_manifest_with_bom_is_accepted(tmp_path: Path, loader: ManifestLoader) -> None:
    scratch = _scratch(tmp_path, None)
    data = {"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin"}
    (scratch / "module.json").write_bytes(b"\xef\xbb\xbf" + json.dumps(data).encode("utf-8"))

    assert loader.load_manifest(scratch).name == "Gallery"


def test_missing_required_fields_are_listed(loader: ManifestLoader) -> None:
    with pytest.raises(ManifestInvalidError) as exc_info:
        loader.validate({"name": "Gallery", "type": "plugin"})

    assert exc_info.value.missing_fields == ["slug", "version"]


@pytest.mark.parametrize("data", [
    {"name": "Gallery", "slug": "Not A Slug", "version": "1", "type": "plugin"},
    {"name": "Gallery", "slug": "gallery", "version": "1", "type": "widget"},
    {"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin", "dependencies": "media-core"},
    {"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin", "dependencies": ["gallery"]},
    {"name": "---", "slug": "gallery", "version": "1", "type": "plugin"},
])
def test_malformed_values_rejected(loader: ManifestLoader, data) -> None:
    with pytest.raises(ManifestInvalidError):
        loader.validate(data)


def test_null_optional_fields_fall_back_to_defaults(loader: ManifestLoader) -> None:
    manifest = loader.validate({
        "name": "Gallery",
        "slug": "gallery",
        "version": "1.0.0",
        "type": "plugin",
        "description": None,
        "author": None,
        "author_url": None,
        "plugin_url": None,
        "auto_activate": None,
        "dependencies": None,
        "customization_options": None,
    })

    record = BundleRecord.from_manifest(manifest)
    assert record.description == ""
    assert record.author == ""
    assert record.bundle_url == ""
    assert record.auto_activate is False
    assert record.dependencies == []
    assert record.raw_manifest["description"] is None


def test_null_required_field_is_reported_missing(loader: ManifestLoader) -> None:
    with pytest.raises(ManifestInvalidError) as exc_info:
        loader.validate({"name": "Gallery", "slug": None, "version": "1", "type": "plugin"})

    assert exc_info.value.missing_fields == ["slug"]


@pytest.mark.parametrize("name,module_name", [
    ("media core", "MediaCore"),
    ("my-plugin", "MyPlugin"),
    ("my_plugin", "MyPlugin"),
    ("galleryPro", "GalleryPro"),
    ("Galería", "Galería"),
    ("éclair noir", "ÉclairNoir"),
])
def test_module_name_derivation(name: str, module_name: str) -> None:
    assert studly(name) == module_name


@pytest.mark.parametrize("name,slug", [
    ("Media Core", "media-core"),
    ("MediaCore", "media-core"),
    ("Galería", "galeria"),
])
def test_slug_derivation(name: str, slug: str) -> None:
    assert slugify(name) == slug


def test_kind_mismatch_rejected(loader: ManifestLoader) -> None:
    manifest = loader.validate({"name": "Dark", "slug": "dark", "version": "1", "type": "frontend"})

    loader.check_kind(manifest, None)
    loader.check_kind(manifest, BundleKind.THEME)
    with pytest.raises(ManifestInvalidError, match="Expected a plugin"):
        loader.check_kind(manifest, BundleKind.PLUGIN)


def test_duplicate_slug_detected_against_registry(services, loader: ManifestLoader) -> None:
    existing = loader.validate({"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin"})
    services.registry.create(BundleRecord.from_manifest(existing))

    clash = loader.validate({"name": "Other Gallery", "slug": "gallery", "version": "2", "type": "plugin"})
    with pytest.raises(DuplicateSlugError):
        loader.check_uniqueness(clash)


def test_duplicate_module_name_detected_against_registry(services, loader: ManifestLoader) -> None:
    existing = loader.validate({"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin"})
    services.registry.create(BundleRecord.from_manifest(existing))

    clash = loader.validate({"name": "gallery", "slug": "gallery-two", "version": "1", "type": "plugin"})
    with pytest.raises(DuplicateModuleError) as exc_info:
        loader.check_uniqueness(clash)
    assert exc_info.value.module_name == "Gallery"


def test_duplicate_module_name_detected_against_host(services, loader: ManifestLoader) -> None:
    module_path = services.config.module_root / "Gallery"
    module_path.mkdir(parents=True)
    services.host.register("Gallery", module_path)

    manifest = loader.validate({"name": "Gallery", "slug": "gallery", "version": "1", "type": "plugin"})
    with pytest.raises(DuplicateModuleError):
        loader.check_uniqueness(manifest)
