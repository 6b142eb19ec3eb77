"""
tenantmigrate - Move a portal user between tenants and regions.

A user's rows and file blobs are extracted from a source tenant into a
portable archive (MigrationCreator), then replayed into a new or existing
destination tenant with identifiers remapped (MigrationRunner). The
MigrationWorker drains the durable request queue driving both.

Example:
    >>> from tenantmigrate import MigrationCreator, MigrationRunner, StoreFactory
    >>> stores = StoreFactory({"": "sqlite+aiosqlite:///home.db", "eu": "sqlite+aiosqlite:///eu.db"})
    >>> result = await MigrationCreator(stores, blobs, "/tmp").create("acme", "alice@example.com", "eu")
    >>> await MigrationRunner(stores, blobs).run(result.archive_path, "eu", "acme", None, result.total_size)
"""

from tenantmigrate.alias import AliasResolver
from tenantmigrate.archive import ArchiveReader, ArchiveWriter
from tenantmigrate.catalog import ModuleCatalog
from tenantmigrate.column_mapper import ColumnMapper
from tenantmigrate.config import MigrationSettings
from tenantmigrate.creator import MigrationCreator
from tenantmigrate.exceptions import ErrorKind, MigrationError
from tenantmigrate.models import (
    BackupFileInfo,
    CreateResult,
    MigrationConfig,
    MigrationRequest,
    MigrationStatus,
    RestoreResult,
)
from tenantmigrate.restore_task import RestoreModuleTask
from tenantmigrate.runner import MigrationRunner
from tenantmigrate.stores import RegionDirectory, StoreFactory
from tenantmigrate.worker import MigrationWorker

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AliasResolver",
    "ArchiveReader",
    "ArchiveWriter",
    "ModuleCatalog",
    "ColumnMapper",
    "MigrationSettings",
    "MigrationCreator",
    "MigrationRunner",
    "RestoreModuleTask",
    "MigrationWorker",
    "ErrorKind",
    "MigrationError",
    "BackupFileInfo",
    "CreateResult",
    "MigrationConfig",
    "MigrationRequest",
    "MigrationStatus",
    "RestoreResult",
    "RegionDirectory",
    "StoreFactory",
]
