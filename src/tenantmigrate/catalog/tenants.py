"""Tenants module: the tenant row itself, its users and its billing rows."""

from __future__ import annotations

from typing import Any

from tenantmigrate.catalog.base import (
    IdType,
    ModuleName,
    ModuleSpecifics,
    TableInfo,
)

TENANTS_TABLE = "tenants_tenants"


class TenantsModuleSpecifics(ModuleSpecifics):
    """
    Tenant identity tables.

    On restore the tenants_tenants row is matched to the placeholder row
    reserved under the same alias, which is updated in place. The status of
    that placeholder is kept (Suspended) until reconciliation activates it.
    """

    name = ModuleName.TENANTS

    tables = (
        TableInfo(
            TENANTS_TABLE,
            tenant_column="id",
            id_column="id",
            id_type=IdType.AUTOINCREMENT,
            user_id_columns=("owner_id",),
            date_columns=("creationdatetime", "statuschanged", "version_changed", "last_modified"),
        ),
        TableInfo("tenants_quotarow", tenant_column="tenant", key_columns=("tenant", "user_id", "path")),
        TableInfo("tenants_tariff", tenant_column="tenant", key_columns=("id",), order_by="id"),
        TableInfo(
            "tenants_tariffrow",
            tenant_column="tenant",
            key_columns=("tenant", "tariff_id", "quota"),
            order_by="tariff_id",
        ),
        TableInfo(
            "core_user",
            tenant_column="tenant",
            id_column="id",
            id_type=IdType.GUID,
            owner_column="id",
            user_id_columns=("created_by",),
            date_columns=("bithdate", "workfromdate", "terminateddate", "create_on", "last_modified"),
        ),
    )

    def find_existing_key(self, table: TableInfo, row: dict[str, Any]) -> dict[str, Any] | None:
        """Destination row an archived row should update instead of inserting."""
        if table.name == TENANTS_TABLE and row.get("alias"):
            return {"alias": row["alias"]}
        return None

    def preserved_columns(self, table: TableInfo) -> frozenset[str]:
        if table.name == TENANTS_TABLE:
            return frozenset({"id", "alias", "status"})
        return frozenset()


__all__ = ["TenantsModuleSpecifics", "TENANTS_TABLE"]
