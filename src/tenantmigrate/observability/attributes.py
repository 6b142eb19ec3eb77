"""
Standard span attributes for tenantmigrate.

Attribute names follow OpenTelemetry semantic conventions where one exists.
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_REQUEST_ID = "tenantmigrate.request.id"
"""Id of the migration_requests row being processed (integer)."""

ATTR_FROM_ALIAS = "tenantmigrate.from_alias"
"""Alias of the source tenant (string)."""

ATTR_TO_ALIAS = "tenantmigrate.to_alias"
"""Alias of the destination tenant, empty for a new tenant (string)."""

ATTR_REGION = "tenantmigrate.region"
"""Region the operation targets (string)."""

ATTR_TENANT_ID = "tenantmigrate.tenant.id"
"""Tenant id in the store being read or written (integer)."""

ATTR_MODULE = "tenantmigrate.module"
"""Catalog module name (string)."""

ATTR_TABLE = "tenantmigrate.table"
"""Table being archived or restored (string)."""

ATTR_ROW_COUNT = "tenantmigrate.row_count"
"""Rows processed by the operation (integer)."""

ATTR_FILE_COUNT = "tenantmigrate.file_count"
"""Blobs processed by the operation (integer)."""

ATTR_TOTAL_SIZE = "tenantmigrate.total_size"
"""Sum of migrated file content lengths in bytes (integer)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'SELECT', 'INSERT')."""

__all__ = [
    "ATTR_REQUEST_ID",
    "ATTR_FROM_ALIAS",
    "ATTR_TO_ALIAS",
    "ATTR_REGION",
    "ATTR_TENANT_ID",
    "ATTR_MODULE",
    "ATTR_TABLE",
    "ATTR_ROW_COUNT",
    "ATTR_FILE_COUNT",
    "ATTR_TOTAL_SIZE",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
]
