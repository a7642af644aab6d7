"""Data models for the bundle system"""

import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class BundleKind(str, Enum):
    """Kind of installable bundle"""
    PLUGIN = "plugin"
    THEME = "theme"


class ThemeTarget(str, Enum):
    """Site area a theme skins"""
    FRONTEND = "frontend"
    ADMIN = "admin"


class ManifestType(str, Enum):
    """Values accepted in the manifest 'type' field"""
    PLUGIN = "plugin"
    FRONTEND = "frontend"
    ADMIN = "admin"


def studly(value: str) -> str:
    """
    Convert a display name into a StudlyCase module name

    "media core" -> "MediaCore", "my-plugin" -> "MyPlugin", "galleryPro" -> "GalleryPro",
    "Galería" -> "Galería"
    """
    words = re.split(r"[\W_]+", value)
    return "".join(word[:1].upper() + word[1:] for word in words if word)


def slugify(value: str) -> str:
    """Lowercase, hyphen-separated ASCII slug for a display name"""
    # Split camel humps first so "MediaCore" becomes "media-core"
    value = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", value)
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return "-".join(re.findall(r"[a-z0-9]+", value.lower()))


class BundleManifest(BaseModel):
    """module.json schema"""
    name: str = Field(description="Human-readable bundle name; the module name derives from it")
    slug: str = Field(description="Unique URL-safe identifier")
    version: str = Field(description="Bundle version (free-form)")
    type: ManifestType = Field(description="'plugin', 'frontend' or 'admin'")
    description: str = ""
    author: str = ""
    author_url: str = ""
    plugin_url: str = ""
    theme_url: str = ""
    screenshot: str = ""
    auto_activate: bool = False
    dependencies: List[str] = Field(default_factory=list)
    customization_options: Dict[str, Any] = Field(default_factory=dict)
    raw_manifest: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def drop_null_optionals(cls, data: Any) -> Any:
        """A JSON null in an optional field means the field is absent"""
        if isinstance(data, dict):
            required = {name for name, field in cls.model_fields.items() if field.is_required()}
            return {k: v for k, v in data.items() if v is not None or k in required}
        return data

    @field_validator("name", "version")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        """Validate slug format"""
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "slug must be lowercase letters, digits and single hyphens (e.g. 'media-core')"
            )
        return v

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: List[str]) -> List[str]:
        """Validate dependency slugs, keeping declaration order"""
        seen = []
        for dep in v:
            if not SLUG_PATTERN.match(dep):
                raise ValueError(f"invalid dependency slug '{dep}'")
            if dep not in seen:
                seen.append(dep)
        return seen

    @property
    def module_name(self) -> str:
        return studly(self.name)

    @property
    def kind(self) -> BundleKind:
        if self.type == ManifestType.PLUGIN:
            return BundleKind.PLUGIN
        return BundleKind.THEME

    @property
    def theme_target(self) -> Optional[ThemeTarget]:
        if self.kind == BundleKind.THEME:
            return ThemeTarget(self.type.value)
        return None

    @property
    def bundle_url(self) -> str:
        return self.plugin_url if self.kind == BundleKind.PLUGIN else self.theme_url


class BundleRecord(BaseModel):
    """Database record for an installed bundle"""
    slug: str
    name: str
    description: str = ""
    version: str
    author: str = ""
    author_url: str = ""
    bundle_url: str = ""
    screenshot: str = ""
    module_name: str
    kind: BundleKind
    theme_target: Optional[ThemeTarget] = None
    is_active: bool = False
    auto_activate: bool = False
    dependencies: List[str] = Field(default_factory=list)
    customization_options: Dict[str, Any] = Field(default_factory=dict)
    raw_manifest: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_manifest(cls, manifest: BundleManifest) -> "BundleRecord":
        """Build a new, inactive record from a validated manifest"""
        is_plugin = manifest.kind == BundleKind.PLUGIN
        return cls(
            slug=manifest.slug,
            name=manifest.name,
            description=manifest.description,
            version=manifest.version,
            author=manifest.author,
            author_url=manifest.author_url,
            bundle_url=manifest.bundle_url,
            screenshot="" if is_plugin else manifest.screenshot,
            module_name=manifest.module_name,
            kind=manifest.kind,
            theme_target=manifest.theme_target,
            is_active=False,
            auto_activate=manifest.auto_activate if is_plugin else False,
            dependencies=list(manifest.dependencies),
            customization_options={} if is_plugin else dict(manifest.customization_options),
            raw_manifest=dict(manifest.raw_manifest),
        )


@dataclass
class UploadedBundle:
    """
    An uploaded archive handed over by the web layer

    Attributes:
        filename: Original client filename
        size: Size in bytes as reported by the upload
        path: Readable temporary path of the uploaded file
    """
    filename: str
    size: int
    path: Path

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lstrip(".").lower()

    @classmethod
    def from_path(cls, path: Path) -> "UploadedBundle":
        """Wrap a local archive as if it had been uploaded"""
        return cls(filename=path.name, size=path.stat().st_size, path=path)


class ConsistencyReport(BaseModel):
    """Result of comparing registry rows against the module root"""
    orphan_directories: List[str] = Field(default_factory=list)
    dangling_records: List[str] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.orphan_directories and not self.dangling_records
