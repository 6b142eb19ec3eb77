"""
MigrationCreator - Extracts one user of a source tenant into an archive.

The creator runs the pre-flight checks that gate every migration, pages the
user's rows out of each catalog table, and copies the user's file blobs
into a tar.gz archive the MigrationRunner later replays.

Responsibilities:
    - Resolve the source tenant, the user and (on merge) the destination tenant
    - Refuse identities that already exist at the destination
    - Check content size and admin seats against destination quotas
    - Reserve a new alias with a placeholder tenant (new-portal case)
    - Archive table snapshots page by page, scrubbing tenant identity
    - Discover blobs with bounded concurrency and copy them with retry

Every pre-flight check runs before the archive file is opened, so a refused
migration moves no data. A failure while writing removes the partial
archive.

Usage:
    >>> creator = MigrationCreator(stores, blobs, work_dir="/var/backups")
    >>> result = await creator.create("acme", "alice@example.com", to_region="eu")
    >>> result.new_alias
    'alice'
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from tenantmigrate.alias import AliasResolver
from tenantmigrate.archive import ArchiveWriter
from tenantmigrate.catalog import InsertMethod, ModuleCatalog, ModuleName, ModuleSpecifics, TableInfo
from tenantmigrate.catalog.base import USER_TABLE
from tenantmigrate.catalog.files import FILES_STORAGE_MODULE
from tenantmigrate.catalog.tenants import TENANTS_TABLE
from tenantmigrate.exceptions import (
    QuotaExceededError,
    QuotaNotConfiguredError,
    RetryError,
    TableArchiveError,
    TenantNotFoundError,
    UserNotFoundError,
    UsernameExistsError,
)
from tenantmigrate.models import (
    TRIAL_QUOTA_ID,
    BackupFileInfo,
    CreateResult,
    MigrationConfig,
    bucket_directory,
)
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import (
    ATTR_FILE_COUNT,
    ATTR_FROM_ALIAS,
    ATTR_MODULE,
    ATTR_REGION,
    ATTR_ROW_COUNT,
    ATTR_TABLE,
    ATTR_TO_ALIAS,
    ATTR_TOTAL_SIZE,
)
from tenantmigrate.retry import RetryConfig, retry_async
from tenantmigrate.serialization import TableSnapshot
from tenantmigrate.storage.interface import BlobStore, BlobStoreFactory
from tenantmigrate.stores.directory import RegionDirectory
from tenantmigrate.stores.factory import StoreFactory
from tenantmigrate.stores.tables import fetch_rows

logger = logging.getLogger(__name__)

# Tables shared by the whole tenant or rebuilt on restore; never part of a
# per-user export.
BLOCKED_TABLES: frozenset[str] = frozenset(
    {
        "files_room_settings",
        "files_thirdparty_account",
        "files_thirdparty_id_mapping",
        "core_subscription",
        "files_security",
        "tenants_quotarow",
        "tenants_tariff",
    }
)

# Tables missing from older schemas; a failed read is skipped with a warning.
OPTIONAL_LEGACY_TABLES: frozenset[str] = frozenset({"tenants_tariffrow"})

THUMBNAIL_MARKER = "/thumb."


def scrub_tenant_rows(snapshot: TableSnapshot, alias: str | None) -> TableSnapshot:
    """
    Blank the identity of archived tenant rows.

    The name is cleared and the industry reset; the alias is replaced when
    a new alias was reserved. Applying the scrub twice yields the same rows.
    """
    for row in snapshot.rows:
        if alias is not None:
            row["alias"] = alias
        row["name"] = ""
        row["industry"] = 0
    return snapshot


class MigrationCreator:
    """
    Builds the archive for one user migration.

    Attributes:
        _stores: Region store factory.
        _blobs: Blob store factory.
        _work_dir: Directory archives are written to.
        _config: Paging, concurrency and retry limits.
        _catalog: Modules taking part in migration.
    """

    def __init__(
        self,
        stores: StoreFactory,
        blobs: BlobStoreFactory,
        work_dir: str | Path,
        *,
        config: MigrationConfig | None = None,
        catalog: ModuleCatalog | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the creator.

        Args:
            stores: Resolves region names to relational stores.
            blobs: Resolves (tenant, module, region) to blob stores.
            work_dir: Directory for the archive files.
            config: Migration limits. Defaults to MigrationConfig().
            catalog: Module catalog. Defaults to the standard modules.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stores = stores
        self._blobs = blobs
        self._work_dir = Path(work_dir)
        self._config = config or MigrationConfig()
        self._catalog = catalog or ModuleCatalog()
        self._alias_resolver = AliasResolver(self._config)

    async def create(
        self,
        from_alias: str,
        email: str | None,
        to_region: str,
        to_alias: str | None = None,
        *,
        user_name: str | None = None,
        from_region: str = "",
    ) -> CreateResult:
        """
        Extract a user into a new archive.

        Args:
            from_alias: Alias of the source tenant.
            email: Email of the user to migrate.
            to_region: Destination region.
            to_alias: Existing destination tenant to merge into; None
                creates a new portal.
            user_name: Username of the user to migrate.
            from_region: Region of the source tenant.

        Returns:
            CreateResult with the archive path, the reserved alias (new
            portal only) and the user's total content size.

        Raises:
            TenantNotFoundError: Source or destination tenant is missing.
            UserNotFoundError: No active user matches.
            UsernameExistsError: The identity exists at the destination.
            QuotaNotConfiguredError: The destination has no quota to check.
            QuotaExceededError: Content size or admin seats exceed quota.
            TableArchiveError: A table could not be read.
        """
        with self._tracer.span(
            "tenantmigrate.creator.create",
            {
                ATTR_FROM_ALIAS: from_alias,
                ATTR_TO_ALIAS: to_alias or "",
                ATTR_REGION: to_region,
            },
        ) as span:
            source = RegionDirectory(self._stores.engine(from_region), from_region, self._tracer)
            destination = RegionDirectory(self._stores.engine(to_region), to_region, self._tracer)

            tenant = await source.get_tenant_by_alias(from_alias)
            if tenant is None:
                raise TenantNotFoundError(from_alias, from_region)
            tenant_id = int(tenant["id"])

            user = await source.find_active_user(tenant_id, user_name, email)
            if user is None:
                raise UserNotFoundError(tenant_id, user_name, email)
            user_id = str(user["id"])

            if to_alias:
                await self._check_destination(destination, to_alias, user)

            total_size = await source.sum_content_length(tenant_id, user_id)
            if span:
                span.set_attribute(ATTR_TOTAL_SIZE, total_size)
            await self._check_size(destination, total_size)

            new_alias = None
            if not to_alias:
                new_alias = await self._reserve_alias(destination, user["username"])

            archive_path = self._work_dir / f"{from_alias}-{uuid4().hex}.tar.gz"
            logger.info(
                "Archiving user %s of tenant %s (%d bytes) to %s",
                user_id,
                from_alias,
                total_size,
                archive_path,
            )

            async with ArchiveWriter(archive_path) as writer:
                tables_archived = 0
                for module, table in self._tables_to_archive(to_alias):
                    snapshot = await self._archive_table(
                        from_region, module, table, tenant_id, user_id
                    )
                    if snapshot is None:
                        continue
                    if table.name == TENANTS_TABLE:
                        scrub_tenant_rows(snapshot, new_alias)
                    await writer.write_table(module.name.value, snapshot)
                    tables_archived += 1

                files = await self.discover_files(
                    self._blobs.get_storage(tenant_id, FILES_STORAGE_MODULE, from_region),
                    await source.user_file_ids(tenant_id, user_id),
                )
                copied, failed = await self._copy_files(writer, files, from_region)
                await writer.write_manifest(copied)

            logger.info(
                "Archive %s complete: %d tables, %d files (%d skipped)",
                archive_path,
                tables_archived,
                len(copied),
                len(failed),
            )
            return CreateResult(
                archive_path=str(archive_path),
                new_alias=new_alias,
                total_size=total_size,
                tables_archived=tables_archived,
                files_archived=len(copied),
                files_failed=tuple(failed),
            )

    # =========================================================================
    # Pre-flight checks
    # =========================================================================

    async def _check_destination(
        self, destination: RegionDirectory, to_alias: str, user: dict[str, Any]
    ) -> None:
        dest_tenant = await destination.get_tenant_by_alias(to_alias)
        if dest_tenant is None:
            raise TenantNotFoundError(to_alias, destination.region)
        dest_id = int(dest_tenant["id"])

        if await destination.identity_exists(dest_id, user["username"], user.get("email") or ""):
            raise UsernameExistsError(user["username"], user.get("email") or "", to_alias)

        quota = await destination.get_tenant_quota(dest_id)
        if quota is None:
            raise QuotaNotConfiguredError(dest_id, destination.region)
        admins = await destination.count_admins(dest_id)
        limit = int(quota["count_room_admin"])
        if admins >= limit:
            raise QuotaExceededError(f"admin seats of {to_alias}", admins + 1, limit)

    async def _check_size(self, destination: RegionDirectory, total_size: int) -> None:
        quota = await destination.get_quota(TRIAL_QUOTA_ID)
        if quota is None:
            raise QuotaNotConfiguredError(TRIAL_QUOTA_ID, destination.region)
        limit = int(quota["max_total_size"])
        if total_size > limit:
            raise QuotaExceededError("storage", total_size, limit)

    async def _reserve_alias(self, destination: RegionDirectory, user_name: str) -> str:
        alias = self._alias_resolver.resolve(
            user_name, await destination.taken_aliases(), destination.region
        )
        await destination.insert_placeholder_tenant(alias)
        return alias

    # =========================================================================
    # Tables
    # =========================================================================

    def _tables_to_archive(self, to_alias: str | None) -> list[tuple[ModuleSpecifics, TableInfo]]:
        selected: list[tuple[ModuleSpecifics, TableInfo]] = []
        if to_alias:
            tenants = self._catalog.get(ModuleName.TENANTS)
            selected.append((tenants, tenants.get_table(USER_TABLE)))

        for module in self._catalog.for_destination(to_alias):
            for table in module.tables_ordered():
                if table.insert_method is InsertMethod.NONE or table.name in BLOCKED_TABLES:
                    continue
                if any(chosen.name == table.name for _, chosen in selected):
                    continue
                selected.append((module, table))
        return selected

    async def _archive_table(
        self,
        region: str,
        module: ModuleSpecifics,
        table: TableInfo,
        tenant_id: int,
        user_id: str,
    ) -> TableSnapshot | None:
        with self._tracer.span(
            "tenantmigrate.creator.archive_table",
            {ATTR_MODULE: module.name.value, ATTR_TABLE: table.name},
        ) as span:
            try:
                async with self._stores.open(region, transactional=False) as conn:
                    snapshot = await self.fetch_table(conn, module, table, tenant_id, user_id)
            except (SQLAlchemyError, OSError, TimeoutError) as e:
                if table.name in OPTIONAL_LEGACY_TABLES:
                    logger.warning("Skipping optional table %s: %s", table.name, e)
                    return None
                raise TableArchiveError(table.name, str(e)) from e

            logger.debug("Archived %d rows of %s", len(snapshot), table.name)
            if span:
                span.set_attribute(ATTR_ROW_COUNT, len(snapshot))
            return module.prepare_data(snapshot)

    async def fetch_table(
        self,
        conn: AsyncConnection,
        module: ModuleSpecifics,
        table: TableInfo,
        tenant_id: int,
        user_id: str | None,
    ) -> TableSnapshot:
        """
        Page through a table until a page comes back short.

        Returns:
            Snapshot holding every selected row.
        """
        page_size = self._config.page_size
        offset = 0
        columns: list[str] = []
        rows: list[dict[str, Any]] = []

        while True:
            sql, params = module.build_select_query(tenant_id, table, page_size, offset, user_id)
            columns, page = await fetch_rows(
                conn, sql, params, timeout=self._config.query_timeout_seconds
            )
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size

        return TableSnapshot(table.name, columns, rows)

    # =========================================================================
    # Blobs
    # =========================================================================

    async def discover_files(self, store: BlobStore, file_ids: Iterable[int]) -> list[BackupFileInfo]:
        """
        List the blobs of the given files.

        At most `discovery_concurrency` listings run at once; their results
        are merged in file order by this coroutine alone. Thumbnails are
        skipped and duplicates dropped.
        """
        ids = list(file_ids)
        limit = self._config.discovery_concurrency
        discovered: dict[BackupFileInfo, None] = {}

        async def list_file(file_id: int) -> list[BackupFileInfo]:
            directory = bucket_directory(file_id)
            paths = await store.list_files_relative("", directory, "*", True)
            return [
                BackupFileInfo("", store.module, f"{directory}/{path}", store.tenant_id)
                for path in paths
            ]

        for start in range(0, len(ids), limit):
            chunk = ids[start : start + limit]
            for found in await asyncio.gather(*(list_file(file_id) for file_id in chunk)):
                for info in found:
                    if THUMBNAIL_MARKER not in info.path:
                        discovered.setdefault(info)

        logger.debug("Discovered %d blobs for %d files", len(discovered), len(ids))
        return list(discovered)

    async def _copy_files(
        self,
        writer: ArchiveWriter,
        files: list[BackupFileInfo],
        region: str,
    ) -> tuple[list[BackupFileInfo], list[str]]:
        retry_config = RetryConfig.for_step(self._config.file_copy_attempts, self._config.retry_delay_seconds)
        copied: list[BackupFileInfo] = []
        failed: list[str] = []

        with self._tracer.span("tenantmigrate.creator.copy_files", {ATTR_FILE_COUNT: len(files)}):
            for info in files:
                store = self._blobs.get_storage(info.tenant_id, info.module, region)
                # Whatever a blob backend raises only costs this one file.
                try:
                    data = await retry_async(
                        lambda store=store, info=info: store.read(info.domain, info.path),
                        retry_config,
                        retryable_exceptions=(Exception,),
                        operation_name=f"copy {info.module}/{info.path}",
                    )
                except RetryError as e:
                    logger.warning(
                        "Skipping blob %s/%s after %d attempts: %s",
                        info.module,
                        info.path,
                        e.attempts,
                        e.last_error,
                    )
                    failed.append(info.path)
                    continue

                await writer.write_blob(info, data)
                copied.append(info)

        return copied, failed


__all__ = [
    "MigrationCreator",
    "BLOCKED_TABLES",
    "OPTIONAL_LEGACY_TABLES",
    "scrub_tenant_rows",
]
