"""
ModuleCatalog - the ordered set of modules taking part in a migration.

Modules are listed in dependency order: identity tables (Tenants) before
everything that references a tenant or user.
"""

from __future__ import annotations

from tenantmigrate.catalog.base import ModuleName, ModuleSpecifics
from tenantmigrate.catalog.core import CoreModuleSpecifics
from tenantmigrate.catalog.files import FilesModuleSpecifics
from tenantmigrate.catalog.tenants import TenantsModuleSpecifics
from tenantmigrate.catalog.webstudio import WebStudioModuleSpecifics

# Modules copied when the user gets a brand-new portal
FULL_MODULES: tuple[ModuleName, ...] = (
    ModuleName.TENANTS,
    ModuleName.CORE,
    ModuleName.WEBSTUDIO,
    ModuleName.FILES,
)

# Modules copied when the user joins an existing portal
NARROW_MODULES: tuple[ModuleName, ...] = (ModuleName.CORE, ModuleName.FILES)


class ModuleCatalog:
    """
    Registry of catalog modules.

    Example:
        >>> catalog = ModuleCatalog()
        >>> [m.name.value for m in catalog.for_destination(to_alias="")]
        ['tenants', 'core', 'webstudio', 'files']
    """

    def __init__(self, modules: list[ModuleSpecifics] | None = None) -> None:
        self._modules = modules or [
            TenantsModuleSpecifics(),
            CoreModuleSpecifics(),
            WebStudioModuleSpecifics(),
            FilesModuleSpecifics(),
        ]

    def all_modules(self) -> list[ModuleSpecifics]:
        return list(self._modules)

    def get(self, name: ModuleName) -> ModuleSpecifics:
        for module in self._modules:
            if module.name is name:
                return module
        raise KeyError(f"Module {name.value} is not in the catalog")

    def _subset(self, names: tuple[ModuleName, ...]) -> list[ModuleSpecifics]:
        return [module for module in self._modules if module.name in names]

    def full(self) -> list[ModuleSpecifics]:
        return self._subset(FULL_MODULES)

    def narrow(self) -> list[ModuleSpecifics]:
        return self._subset(NARROW_MODULES)

    def for_destination(self, to_alias: str | None) -> list[ModuleSpecifics]:
        """Full subset for a new portal, narrow subset when merging into to_alias."""
        return self.narrow() if to_alias else self.full()

    def get_by_storage_module(self, module: str, domain: str = "") -> ModuleSpecifics | None:
        """Catalog module owning blobs of a storage module, or None."""
        for candidate in self._modules:
            if module in candidate.storage_modules:
                return candidate
        return None


__all__ = ["ModuleCatalog", "FULL_MODULES", "NARROW_MODULES"]
