"""
Module catalog: which tables move with a user and how.

Example:
    >>> from tenantmigrate.catalog import ModuleCatalog
    >>> catalog = ModuleCatalog()
    >>> files = catalog.get_by_storage_module("files")
"""

from tenantmigrate.catalog.base import (
    IdType,
    InsertMethod,
    ModuleName,
    ModuleSpecifics,
    RelationInfo,
    TableInfo,
)
from tenantmigrate.catalog.core import CoreModuleSpecifics
from tenantmigrate.catalog.files import FilesModuleSpecifics
from tenantmigrate.catalog.provider import FULL_MODULES, NARROW_MODULES, ModuleCatalog
from tenantmigrate.catalog.tenants import TenantsModuleSpecifics
from tenantmigrate.catalog.webstudio import WebStudioModuleSpecifics

__all__ = [
    "IdType",
    "InsertMethod",
    "ModuleName",
    "ModuleSpecifics",
    "RelationInfo",
    "TableInfo",
    "ModuleCatalog",
    "FULL_MODULES",
    "NARROW_MODULES",
    "TenantsModuleSpecifics",
    "CoreModuleSpecifics",
    "WebStudioModuleSpecifics",
    "FilesModuleSpecifics",
]
