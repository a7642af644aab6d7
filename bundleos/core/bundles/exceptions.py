"""Exception classes for the bundle installer and lifecycle"""

from typing import List, Optional


class BundleError(Exception):
    """Base exception for all bundle-related errors"""
    pass


class ValidationError(BundleError):
    """Raised when an upload is rejected before any filesystem write"""
    pass


class ExtractionError(BundleError):
    """Raised when an archive cannot be opened or safely extracted"""
    pass


class ManifestError(BundleError):
    """Base exception for manifest problems"""
    pass


class ManifestMissingError(ManifestError):
    """Raised when module.json is absent from the bundle root"""
    pass


class ManifestParseError(ManifestError):
    """Raised when module.json is not a valid JSON object"""
    pass


class ManifestInvalidError(ManifestError):
    """Raised when required manifest fields are missing or malformed"""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class DuplicateSlugError(BundleError):
    """Raised when a bundle with the same slug is already registered"""

    def __init__(self, slug: str):
        super().__init__(f"A bundle with slug '{slug}' already exists.")
        self.slug = slug


class DuplicateModuleError(BundleError):
    """Raised when the derived module name is already taken"""

    def __init__(self, module_name: str):
        super().__init__(f"A module named '{module_name}' already exists.")
        self.module_name = module_name


class MaterializationError(BundleError):
    """Raised when the extracted bundle cannot be moved into the module root"""
    pass


class BundleNotFoundError(BundleError):
    """Raised when no bundle record exists for a slug"""

    def __init__(self, slug: str):
        super().__init__(f"Bundle not found: {slug}")
        self.slug = slug


class BundleModuleNotFoundError(BundleError):
    """Raised when a registered bundle has no materialized module directory"""

    def __init__(self, module_name: str):
        super().__init__(f"Module not found: {module_name}")
        self.module_name = module_name


class MissingDependencyError(BundleError):
    """Raised when a direct dependency is not installed and active"""

    def __init__(self, slug: str, dependency: str):
        super().__init__(
            f"Cannot activate '{slug}': required dependency '{dependency}' "
            f"is not installed or not active."
        )
        self.slug = slug
        self.dependency = dependency


class MigrationError(BundleError):
    """Raised when a bundle's schema migrations fail (non-fatal on activation)"""
    pass


class PublishError(BundleError):
    """Raised when theme assets cannot be published or removed"""
    pass


class ModuleHostError(BundleError):
    """Raised when the module host cannot record a module status change"""
    pass


class RegistryError(BundleError):
    """Raised when registry operations fail"""
    pass
