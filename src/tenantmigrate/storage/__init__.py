"""Blob storage used for file contents."""

from tenantmigrate.storage.in_memory import InMemoryBlobStore, InMemoryBlobStoreFactory
from tenantmigrate.storage.interface import (
    BlobStore,
    BlobStoreFactory,
    QuotaController,
    normalize_path,
)
from tenantmigrate.storage.local import LocalBlobStore, LocalBlobStoreFactory
from tenantmigrate.storage.quota import TenantQuotaController

__all__ = [
    "BlobStore",
    "BlobStoreFactory",
    "QuotaController",
    "normalize_path",
    "InMemoryBlobStore",
    "InMemoryBlobStoreFactory",
    "LocalBlobStore",
    "LocalBlobStoreFactory",
    "TenantQuotaController",
]
