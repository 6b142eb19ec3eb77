"""Repositories for state owned by the migration engine."""

from tenantmigrate.repositories.requests import (
    InMemoryMigrationRequestRepository,
    MigrationRequestRepository,
    RequestNotFoundError,
    SQLMigrationRequestRepository,
)

__all__ = [
    "MigrationRequestRepository",
    "SQLMigrationRequestRepository",
    "InMemoryMigrationRequestRepository",
    "RequestNotFoundError",
]
