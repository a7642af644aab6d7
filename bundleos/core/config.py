"""
Centralized Configuration Management for BundleOS

Provides pydantic-based configuration with:
- Environment variable loading (.env support)
- Type validation
- Default values derived from the BundleOS home directory

Usage:
    from bundleos.core.config import get_config

    config = get_config()
    print(config.module_root)
    print(config.max_upload_size)
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bundleos.core.storage import paths


class BundleOSConfig(BaseSettings):
    """
    Central configuration for BundleOS

    All settings can be overridden via environment variables with BUNDLEOS_ prefix.
    For example: BUNDLEOS_MODULE_ROOT, BUNDLEOS_MAX_UPLOAD_SIZE, etc.
    """

    model_config = SettingsConfigDict(
        env_prefix="BUNDLEOS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ============================================
    # Storage Configuration
    # ============================================

    home: Path = Field(
        default_factory=paths.bundleos_home,
        description="Root directory for BundleOS state"
    )

    db_path: Optional[Path] = Field(
        default=None,
        description="SQLite registry database (defaults to <home>/store/registry.sqlite)"
    )

    module_root: Optional[Path] = Field(
        default=None,
        description="Directory holding materialized bundles (defaults to <home>/Modules)"
    )

    public_asset_root: Optional[Path] = Field(
        default=None,
        description="Directory theme assets are published to (defaults to <home>/public/modules)"
    )

    scratch_root: Optional[Path] = Field(
        default=None,
        description="Directory for per-upload extraction (defaults to <home>/store/tmp)"
    )

    sqlite_busy_timeout: int = Field(
        default=5000,
        description="SQLite busy timeout in milliseconds"
    )

    # ============================================
    # Upload Configuration
    # ============================================

    max_upload_size: int = Field(
        default=10240 * 1024,
        description="Maximum upload size in bytes (default: 10240 KB)"
    )

    allowed_extensions: List[str] = Field(
        default_factory=lambda: ["zip"],
        description="Accepted archive extensions"
    )

    manifest_filename: str = Field(
        default="module.json",
        description="Manifest file expected at the bundle root"
    )

    # ============================================
    # Bundle Layout Configuration
    # ============================================

    asset_subdir: str = Field(
        default="Resources/assets",
        description="Theme asset directory inside a module, relative to its root"
    )

    migrations_subdir: str = Field(
        default="Database/Migrations",
        description="Plugin SQL migration directory inside a module"
    )

    auto_activate_plugins: bool = Field(
        default=True,
        description="Honour the manifest auto_activate hint for plugins after install"
    )

    default_author: str = Field(
        default="BundleOS",
        description="Author recorded for scaffolded bundles"
    )

    # ============================================
    # Application Configuration
    # ============================================

    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    @field_validator("max_upload_size")
    @classmethod
    def validate_max_upload_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_upload_size must be positive")
        return v

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [ext.lower().lstrip(".") for ext in v]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @model_validator(mode="after")
    def fill_derived_paths(self) -> "BundleOSConfig":
        """Derive unset paths from home"""
        self.home = self.home.expanduser()
        if self.db_path is None:
            self.db_path = paths.db_path(self.home)
        if self.module_root is None:
            self.module_root = paths.module_root(self.home)
        if self.public_asset_root is None:
            self.public_asset_root = paths.public_asset_root(self.home)
        if self.scratch_root is None:
            self.scratch_root = paths.scratch_root(self.home)
        return self


@lru_cache()
def get_config() -> BundleOSConfig:
    """Get the process-wide configuration instance"""
    return BundleOSConfig()


def reset_config() -> None:
    """Drop the cached configuration (used by tests after changing the environment)"""
    get_config.cache_clear()
