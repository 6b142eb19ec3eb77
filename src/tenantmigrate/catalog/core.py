"""Core module: group membership, settings and access control entries."""

from __future__ import annotations

from typing import Any

from tenantmigrate.catalog.base import (
    USER_ID_COLUMN,
    USER_TABLE,
    InsertMethod,
    ModuleName,
    ModuleSpecifics,
    RelationInfo,
    TableInfo,
)
from tenantmigrate.models import ADMIN_GROUP_ID, EMPTY_USER_ID

# Settings key holding the licence customer id; never copied between tenants.
LICENSE_CUSTOMER_KEY = "CustomerId"

SYSTEM_GROUP_IDS = frozenset({ADMIN_GROUP_ID, EMPTY_USER_ID})


def _is_custom_group(row: dict[str, Any]) -> bool:
    return str(row.get("groupid", "")).lower() not in SYSTEM_GROUP_IDS


class CoreModuleSpecifics(ModuleSpecifics):
    name = ModuleName.CORE

    tables = (
        TableInfo(
            "core_acl",
            tenant_column="tenant",
            insert_method=InsertMethod.IGNORE,
            owner_column="subject",
            key_columns=("tenant", "subject", "action", "object"),
            order_by="action",
        ),
        TableInfo(
            "core_subscription",
            tenant_column="tenant",
            owner_column="recipient",
            key_columns=("tenant", "source", "action", "recipient", "object"),
            order_by="action",
        ),
        TableInfo(
            "core_usergroup",
            tenant_column="tenant",
            user_id_columns=("userid",),
            owner_column="userid",
            date_columns=("last_modified",),
            key_columns=("tenant", "userid", "groupid", "ref_type"),
            order_by="groupid",
        ),
        TableInfo(
            "core_settings",
            tenant_column="tenant",
            insert_method=InsertMethod.IGNORE,
            date_columns=("last_modified",),
            key_columns=("tenant", "id"),
            order_by="id",
        ),
    )

    relations = (
        RelationInfo(USER_TABLE, USER_ID_COLUMN, "core_acl", "subject"),
        RelationInfo(USER_TABLE, USER_ID_COLUMN, "core_subscription", "recipient"),
        # Memberships in custom groups cannot be carried over; groups are not migrated.
        RelationInfo("core_group", "id", "core_usergroup", "groupid", _is_custom_group),
    )

    def select_condition(
        self, table: TableInfo, params: dict[str, Any], user_id: str | None
    ) -> str:
        condition = super().select_condition(table, params, user_id)
        if table.name == "core_settings":
            params["license_key"] = LICENSE_CUSTOMER_KEY
            condition += " AND t.id <> :license_key"
        return condition


__all__ = ["CoreModuleSpecifics", "LICENSE_CUSTOMER_KEY", "SYSTEM_GROUP_IDS"]
