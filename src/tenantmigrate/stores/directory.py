"""
RegionDirectory - tenant, user, quota and tariff lookups in one region.

The migration engine consumes the portal's identity and billing tables
rather than owning them. RegionDirectory gathers the queries it runs
against them: resolving tenants and users before extraction, reserving a
placeholder tenant for a new alias, and the reconciliation writes that
finish a restore.

Usage:
    >>> directory = RegionDirectory(factory.engine("eu"), region="eu")
    >>> tenant = await directory.get_tenant_by_alias("acme")
    >>> user = await directory.find_active_user(tenant["id"], "alice", None)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tenantmigrate.exceptions import AliasUnavailableError
from tenantmigrate.models import (
    ADMIN_GROUP_ID,
    EMPTY_USER_ID,
    FILES_QUOTA_PATH,
    FILES_QUOTA_TAG,
    MAX_TARIFF_STAMP,
    TRIAL_QUOTA_ID,
    TenantStatus,
    UserStatus,
)
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import ATTR_REGION, ATTR_TENANT_ID
from tenantmigrate.stores._connection import execute_with_connection
from tenantmigrate.stores.tables import fetch_rows, insert_row, statement

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class RegionDirectory:
    """
    Queries against the identity and billing tables of one region.

    Args:
        conn: Engine (or open connection) of the region's store.
        region: Region name, used in errors and span attributes.
        tracer: Optional tracer.
        enable_tracing: Whether to trace calls when no tracer is given.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        region: str = "",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self.region = region
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def _fetch_one(self, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            _, rows = await fetch_rows(conn, sql, params)
        return rows[0] if rows else None

    async def _scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(statement(sql, params), params or {})
            return result.scalar()

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    async def get_tenant_by_alias(self, alias: str) -> dict[str, Any] | None:
        """Tenant row with the given alias (case-insensitive), or None."""
        with self._tracer.span("tenantmigrate.directory.get_tenant_by_alias", {ATTR_REGION: self.region}):
            return await self._fetch_one(
                "SELECT * FROM tenants_tenants WHERE LOWER(alias) = :alias",
                {"alias": alias.lower()},
            )

    async def get_tenant(self, tenant_id: int) -> dict[str, Any] | None:
        return await self._fetch_one("SELECT * FROM tenants_tenants WHERE id = :id", {"id": tenant_id})

    async def taken_aliases(self) -> set[str]:
        """Existing aliases plus forbidden names, lower-cased."""
        async with execute_with_connection(self.conn, transactional=False) as conn:
            tenants = await conn.execute(text("SELECT alias FROM tenants_tenants"))
            forbidden = await conn.execute(text("SELECT address FROM tenants_forbiden"))
            return {row[0].lower() for row in [*tenants.fetchall(), *forbidden.fetchall()] if row[0]}

    async def insert_placeholder_tenant(self, alias: str) -> int:
        """
        Reserve an alias with a suspended, nameless tenant row.

        Returns:
            Id of the placeholder tenant.

        Raises:
            AliasUnavailableError: If the alias was taken in the meantime.
        """
        now = _now()
        values = {
            "alias": alias,
            "name": "",
            "version": 2,
            "status": int(TenantStatus.SUSPENDED),
            "statuschanged": now,
            "creationdatetime": now,
            "last_modified": now,
        }
        with self._tracer.span("tenantmigrate.directory.insert_placeholder_tenant", {ATTR_REGION: self.region}):
            try:
                async with execute_with_connection(self.conn, transactional=True) as conn:
                    tenant_id = await insert_row(conn, "tenants_tenants", values, returning="id")
            except IntegrityError as e:
                raise AliasUnavailableError(alias, self.region) from e
        logger.info(
            "Reserved alias %s as tenant %s in region %r", alias, tenant_id, self.region
        )
        return int(tenant_id)

    async def activate_tenant(self, tenant_id: int, owner_id: str | None = None) -> None:
        """Set the tenant Active, refresh timestamps and clear the payment id."""
        now = _now()
        params: dict[str, Any] = {
            "id": tenant_id,
            "status": int(TenantStatus.ACTIVE),
            "now": now,
        }
        owner = ""
        if owner_id is not None:
            owner = ", owner_id = :owner_id"
            params["owner_id"] = owner_id
        sql = (
            "UPDATE tenants_tenants SET status = :status, statuschanged = :now, "
            f"last_modified = :now, payment_id = ''{owner} WHERE id = :id"
        )
        async with execute_with_connection(self.conn, transactional=True) as conn:
            await conn.execute(statement(sql, params), params)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def find_active_user(
        self, tenant_id: int, user_name: str | None, email: str | None
    ) -> dict[str, Any] | None:
        """
        Active, non-removed user of a tenant matching username and/or email.

        Both criteria apply when both are given.
        """
        if not user_name and not email:
            return None
        clauses = ["tenant = :tenant", "status = :status", "removed = 0"]
        params: dict[str, Any] = {"tenant": tenant_id, "status": int(UserStatus.ACTIVE)}
        if user_name:
            clauses.append("LOWER(username) = :username")
            params["username"] = user_name.lower()
        if email:
            clauses.append("LOWER(email) = :email")
            params["email"] = email.lower()
        return await self._fetch_one(f"SELECT * FROM core_user WHERE {' AND '.join(clauses)}", params)

    async def identity_exists(self, tenant_id: int, user_name: str, email: str) -> bool:
        """True if the username exists in the tenant or the email anywhere in the region."""
        count = await self._scalar(
            """
            SELECT COUNT(*) FROM core_user
            WHERE removed = 0
              AND ((tenant = :tenant AND LOWER(username) = :username)
                   OR LOWER(email) = :email)
            """,
            {"tenant": tenant_id, "username": user_name.lower(), "email": email.lower()},
        )
        return bool(count)

    async def user_exists(self, tenant_id: int, user_id: str | None) -> bool:
        if not user_id:
            return False
        count = await self._scalar(
            "SELECT COUNT(*) FROM core_user WHERE tenant = :tenant AND id = :id AND removed = 0",
            {"tenant": tenant_id, "id": user_id},
        )
        return bool(count)

    async def tenant_users(self, tenant_id: int) -> list[dict[str, Any]]:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            _, rows = await fetch_rows(
                conn,
                "SELECT * FROM core_user WHERE tenant = :tenant AND removed = 0 ORDER BY create_on",
                {"tenant": tenant_id},
            )
        return rows

    async def count_admins(self, tenant_id: int) -> int:
        """Active users of the tenant in the administrator group."""
        count = await self._scalar(
            """
            SELECT COUNT(*) FROM core_user u
            INNER JOIN core_usergroup g ON g.tenant = u.tenant AND g.userid = u.id
            WHERE u.tenant = :tenant AND u.removed = 0 AND u.status = :status
              AND g.groupid = :group AND g.removed = 0
            """,
            {"tenant": tenant_id, "status": int(UserStatus.ACTIVE), "group": ADMIN_GROUP_ID},
        )
        return int(count or 0)

    async def ensure_admin(self, tenant_id: int, user_id: str) -> bool:
        """
        Add the user to the administrator group unless already a member.

        Returns:
            True if a membership row was inserted.
        """
        params = {"tenant": tenant_id, "userid": user_id, "groupid": ADMIN_GROUP_ID}
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(
                text(
                    "SELECT removed FROM core_usergroup "
                    "WHERE tenant = :tenant AND userid = :userid AND groupid = :groupid AND ref_type = 0"
                ),
                params,
            )
            row = result.fetchone()
            if row is not None and not row[0]:
                return False
            if row is not None:
                update = {**params, "now": _now()}
                await conn.execute(
                    statement(
                        "UPDATE core_usergroup SET removed = 0, last_modified = :now "
                        "WHERE tenant = :tenant AND userid = :userid AND groupid = :groupid AND ref_type = 0",
                        update,
                    ),
                    update,
                )
            else:
                await insert_row(
                    conn,
                    "core_usergroup",
                    {**params, "ref_type": 0, "removed": 0, "last_modified": _now()},
                )
        logger.info("Added user %s to the admin group of tenant %d", user_id, tenant_id)
        return True

    # ------------------------------------------------------------------
    # Files and quotas
    # ------------------------------------------------------------------

    async def sum_content_length(self, tenant_id: int, user_id: str) -> int:
        """Bytes of every file version created by the user in the tenant."""
        total = await self._scalar(
            "SELECT SUM(content_length) FROM files_file WHERE tenant_id = :tenant AND create_by = :user_id",
            {"tenant": tenant_id, "user_id": user_id},
        )
        return int(total or 0)

    async def user_file_ids(self, tenant_id: int, user_id: str) -> list[int]:
        """Distinct ids of the files created by the user, ascending."""
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(
                text(
                    "SELECT DISTINCT id FROM files_file "
                    "WHERE tenant_id = :tenant AND create_by = :user_id ORDER BY id"
                ),
                {"tenant": tenant_id, "user_id": user_id},
            )
            return [int(row[0]) for row in result.fetchall()]

    async def get_quota(self, quota_id: int) -> dict[str, Any] | None:
        """tenants_quota row keyed by quota_id (a tenant id, or -3 for the trial plan)."""
        with self._tracer.span("tenantmigrate.directory.get_quota", {ATTR_REGION: self.region}):
            return await self._fetch_one("SELECT * FROM tenants_quota WHERE tenant = :tenant", {"tenant": quota_id})

    async def get_tenant_quota(self, tenant_id: int) -> dict[str, Any] | None:
        """The tenant's own quota, falling back to the trial plan."""
        return await self.get_quota(tenant_id) or await self.get_quota(TRIAL_QUOTA_ID)

    async def write_quota_row(self, tenant_id: int, counter: int) -> None:
        """Overwrite the tenant's storage usage counter."""
        key = {"tenant": tenant_id, "path": FILES_QUOTA_PATH, "user_id": EMPTY_USER_ID}
        values = {**key, "counter": counter, "tag": FILES_QUOTA_TAG, "last_modified": _now()}
        with self._tracer.span(
            "tenantmigrate.directory.write_quota_row",
            {ATTR_REGION: self.region, ATTR_TENANT_ID: tenant_id},
        ):
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(
                    text(
                        "DELETE FROM tenants_quotarow "
                        "WHERE tenant = :tenant AND path = :path AND user_id = :user_id"
                    ),
                    key,
                )
                await insert_row(conn, "tenants_quotarow", values)

    async def set_trial_tariff(self, tenant_id: int) -> None:
        """
        Attach the open-ended trial tariff.

        The tariff id is the negated tenant id; previous tariff rows of the
        tenant are cleared first.
        """
        tariff_id = -tenant_id
        with self._tracer.span(
            "tenantmigrate.directory.set_trial_tariff",
            {ATTR_REGION: self.region, ATTR_TENANT_ID: tenant_id},
        ):
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(
                    text("DELETE FROM tenants_tariffrow WHERE tenant = :tenant"), {"tenant": tenant_id}
                )
                await conn.execute(text("DELETE FROM tenants_tariff WHERE id = :id"), {"id": tariff_id})
                await insert_row(
                    conn,
                    "tenants_tariff",
                    {
                        "id": tariff_id,
                        "tenant": tenant_id,
                        "stamp": MAX_TARIFF_STAMP,
                        "customer_id": "",
                        "create_on": _now(),
                    },
                )
                await insert_row(
                    conn,
                    "tenants_tariffrow",
                    {"tariff_id": tariff_id, "quota": TRIAL_QUOTA_ID, "tenant": tenant_id, "quantity": 1},
                )

    async def current_tariff_quota(self, tenant_id: int) -> int | None:
        """Quota id attached to the tenant's tariff, or None."""
        value = await self._scalar(
            "SELECT quota FROM tenants_tariffrow WHERE tenant = :tenant ORDER BY tariff_id LIMIT 1",
            {"tenant": tenant_id},
        )
        return None if value is None else int(value)


__all__ = ["RegionDirectory"]
