from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from bundleos.core.bundles.exceptions import (
    BundleNotFoundError,
    DuplicateModuleError,
    DuplicateSlugError,
    RegistryError,
)
from bundleos.core.bundles.models import BundleKind, BundleRecord, ThemeTarget
from bundleos.core.bundles.registry import BundleRegistry


@pytest.fixture
def registry(tmp_path: Path) -> BundleRegistry:
    return BundleRegistry(tmp_path / "registry.sqlite")


def _plugin(slug: str, module_name: str, **kwargs) -> BundleRecord:
    return BundleRecord(slug=slug, name=module_name, version="1.0.0",
                        module_name=module_name, kind=BundleKind.PLUGIN, **kwargs)


def _theme(slug: str, module_name: str, target: ThemeTarget = ThemeTarget.FRONTEND) -> BundleRecord:
    return BundleRecord(slug=slug, name=module_name, version="1.0.0",
                        module_name=module_name, kind=BundleKind.THEME, theme_target=target)


def test_create_and_find(registry: BundleRegistry) -> None:
    created = registry.create(_plugin("gallery", "Gallery", dependencies=["media-core"]))

    assert created.slug == "gallery"
    assert created.is_active is False
    assert created.dependencies == ["media-core"]
    assert created.created_at is not None
    assert registry.find_by_module_name("Gallery").slug == "gallery"
    assert registry.find_by_slug("missing") is None


def test_create_always_inserts_inactive(registry: BundleRegistry) -> None:
    created = registry.create(_plugin("gallery", "Gallery", is_active=True))

    assert created.is_active is False


def test_unique_constraints_are_the_race_guard(registry: BundleRegistry) -> None:
    registry.create(_plugin("gallery", "Gallery"))

    # A second writer that skipped (or raced past) the pre-check still fails
    with pytest.raises(DuplicateSlugError):
        registry.create(_plugin("gallery", "GalleryTwo"))
    with pytest.raises(DuplicateModuleError):
        registry.create(_plugin("gallery-two", "Gallery"))

    assert registry.count_bundles() == 1


def test_get_missing_raises(registry: BundleRegistry) -> None:
    with pytest.raises(BundleNotFoundError):
        registry.get("missing")
    with pytest.raises(BundleNotFoundError):
        registry.set_active("missing", True)
    with pytest.raises(BundleNotFoundError):
        registry.delete("missing")


def test_list_filters(registry: BundleRegistry) -> None:
    registry.create(_plugin("gallery", "Gallery"))
    registry.create(_plugin("media-core", "MediaCore"))
    registry.create(_theme("light", "Light"))
    registry.create(_theme("backend", "Backend", ThemeTarget.ADMIN))
    registry.set_active("media-core", True)

    assert [r.slug for r in registry.list_bundles()] == ["backend", "gallery", "light", "media-core"]
    assert [r.slug for r in registry.list_bundles(kind=BundleKind.PLUGIN, active=True)] == ["media-core"]
    assert [r.slug for r in registry.list_bundles(theme_target=ThemeTarget.ADMIN)] == ["backend"]
    assert [r.slug for r in registry.list_bundles(limit=2, offset=1)] == ["gallery", "light"]
    assert registry.count_bundles(kind=BundleKind.THEME) == 2


def test_activate_exclusive_switches_theme_in_one_step(registry: BundleRegistry) -> None:
    registry.create(_theme("light", "Light"))
    registry.create(_theme("dark", "Dark"))
    registry.create(_theme("backend", "Backend", ThemeTarget.ADMIN))

    assert registry.activate_exclusive("light") == []
    registry.activate_exclusive("backend")
    assert registry.activate_exclusive("dark") == ["light"]

    assert registry.find_active_theme(ThemeTarget.FRONTEND).slug == "dark"
    assert registry.get("light").is_active is False
    # Other targets are untouched
    assert registry.find_active_theme(ThemeTarget.ADMIN).slug == "backend"


def test_activate_exclusive_rejects_plugins(registry: BundleRegistry) -> None:
    registry.create(_plugin("gallery", "Gallery"))

    with pytest.raises(RegistryError, match="not a theme"):
        registry.activate_exclusive("gallery")


def test_schema_forbids_two_active_themes_per_target(registry: BundleRegistry) -> None:
    registry.create(_theme("light", "Light"))
    registry.create(_theme("dark", "Dark"))
    registry.set_active("light", True)

    with pytest.raises(RegistryError):
        registry.set_active("dark", True)

    conn = sqlite3.connect(str(registry.db_path))
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("UPDATE bundles SET is_active = 1 WHERE slug = 'dark'")
    finally:
        conn.close()


def test_delete_removes_record(registry: BundleRegistry) -> None:
    registry.create(_plugin("gallery", "Gallery"))

    registry.delete("gallery")

    assert registry.find_by_slug("gallery") is None
    # Slug and module name are free again
    registry.create(_plugin("gallery", "Gallery"))


def test_registry_reopens_existing_database(tmp_path: Path) -> None:
    db_path = tmp_path / "registry.sqlite"
    BundleRegistry(db_path).create(_plugin("gallery", "Gallery"))

    assert BundleRegistry(db_path).get("gallery").module_name == "Gallery"
