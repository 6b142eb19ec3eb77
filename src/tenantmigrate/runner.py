"""
MigrationRunner - Replays an archive into a destination region.

The runner restores every module of the full catalog (modules absent from
the archive are skipped), copies the archived blobs to the destination
tenant's storage and then reconciles the destination tenant:

    1. the storage usage row is overwritten with the archived total size
    2. the tenant is activated; a tenant whose owner is not one of its
       users is handed to the migrated user
    3. the trial tariff is attached
    4. the owner is made an administrator

Failure semantics: any exception aborts the run. Tables and blobs already
written stay in the destination; there is no compensation.

Usage:
    >>> runner = MigrationRunner(stores, blobs)
    >>> result = await runner.run(archive_path, "eu", "acme", None, total_size)
    >>> result.alias, result.tenant_id
"""

from __future__ import annotations

import logging
from pathlib import Path

from tenantmigrate.archive import ArchiveReader
from tenantmigrate.catalog import ModuleCatalog, ModuleName
from tenantmigrate.catalog.base import USER_ID_COLUMN, USER_TABLE
from tenantmigrate.column_mapper import TENANT_COLUMN, TENANT_TABLE, ColumnMapper
from tenantmigrate.exceptions import TenantNotFoundError, UnmappedReferenceError
from tenantmigrate.models import BackupFileInfo, MigrationConfig, RestoreResult
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import (
    ATTR_FILE_COUNT,
    ATTR_FROM_ALIAS,
    ATTR_REGION,
    ATTR_TENANT_ID,
    ATTR_TO_ALIAS,
    ATTR_TOTAL_SIZE,
)
from tenantmigrate.restore_task import RestoreModuleTask
from tenantmigrate.storage.interface import BlobStore, BlobStoreFactory, QuotaController
from tenantmigrate.stores.directory import RegionDirectory
from tenantmigrate.stores.factory import StoreFactory

logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    Restores archives produced by MigrationCreator.

    Example:
        >>> runner = MigrationRunner(stores, blobs, config=MigrationConfig())
        >>> await runner.run(path, region="eu", from_alias="acme")
    """

    def __init__(
        self,
        stores: StoreFactory,
        blobs: BlobStoreFactory,
        *,
        config: MigrationConfig | None = None,
        catalog: ModuleCatalog | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stores = stores
        self._blobs = blobs
        self._config = config or MigrationConfig()
        self._catalog = catalog or ModuleCatalog()

    async def run(
        self,
        archive_path: str | Path,
        region: str,
        from_alias: str,
        to_alias: str | None = None,
        total_size: int = 0,
        *,
        from_region: str = "",
    ) -> RestoreResult:
        """
        Replay an archive.

        Args:
            archive_path: Archive written by MigrationCreator.
            region: Destination region.
            from_alias: Alias of the source tenant.
            to_alias: Existing tenant the user was merged into; None when
                the archive carries a new tenant.
            total_size: Content size measured during extraction.
            from_region: Region of the source tenant.

        Returns:
            RestoreResult with the destination alias and tenant id.

        Raises:
            TenantNotFoundError: Source or destination tenant is missing.
            TableRestoreError: A table failed on every attempt.
            UnmappedReferenceError: No destination tenant was restored.
        """
        with self._tracer.span(
            "tenantmigrate.runner.run",
            {
                ATTR_FROM_ALIAS: from_alias,
                ATTR_TO_ALIAS: to_alias or "",
                ATTR_REGION: region,
                ATTR_TOTAL_SIZE: total_size,
            },
        ) as span:
            engine = self._stores.engine(region)
            destination = RegionDirectory(engine, region, self._tracer)
            source = RegionDirectory(self._stores.engine(from_region), from_region, self._tracer)

            source_tenant = await source.get_tenant_by_alias(from_alias)
            if source_tenant is None:
                raise TenantNotFoundError(from_alias, from_region)
            source_tenant_id = int(source_tenant["id"])

            mapper = ColumnMapper()
            if to_alias:
                dest_tenant = await destination.get_tenant_by_alias(to_alias)
                if dest_tenant is None:
                    raise TenantNotFoundError(to_alias, region)
                mapper.set_tenant_mapping(source_tenant_id, int(dest_tenant["id"]))
                mapper.commit()

            rows_restored = 0
            async with ArchiveReader(archive_path) as reader:
                for module in self._catalog.full():
                    task = RestoreModuleTask(
                        module,
                        reader,
                        engine,
                        mapper,
                        config=self._config,
                        tracer=self._tracer,
                    )
                    rows_restored += await task.run()

                tenant_id = mapper.get_tenant_mapping(source_tenant_id)
                if tenant_id is None:
                    raise UnmappedReferenceError(TENANT_TABLE, TENANT_COLUMN, source_tenant_id)
                if span:
                    span.set_attribute(ATTR_TENANT_ID, tenant_id)

                migrated_user_id = await self._migrated_user(reader, mapper)
                files_restored = await self._restore_files(reader, mapper, tenant_id, region)

            await self._reconcile(destination, tenant_id, total_size, migrated_user_id)

            tenant = await destination.get_tenant(tenant_id)
            if tenant is None:
                raise TenantNotFoundError(str(tenant_id), region)

            logger.info(
                "Restored %s into tenant %s (%d) in region %r: %d rows, %d files",
                from_alias,
                tenant["alias"],
                tenant_id,
                region,
                rows_restored,
                files_restored,
            )
            return RestoreResult(
                alias=tenant["alias"],
                tenant_id=tenant_id,
                rows_restored=rows_restored,
                files_restored=files_restored,
            )

    async def _migrated_user(self, reader: ArchiveReader, mapper: ColumnMapper) -> str | None:
        snapshot = await reader.read_table(ModuleName.TENANTS.value, USER_TABLE)
        if snapshot is None or not snapshot.rows:
            return None
        old_id = snapshot.rows[0][USER_ID_COLUMN]
        new_id = mapper.get_mapping(USER_TABLE, USER_ID_COLUMN, old_id)
        return None if new_id is None else str(new_id)

    async def _restore_files(
        self,
        reader: ArchiveReader,
        mapper: ColumnMapper,
        tenant_id: int,
        region: str,
    ) -> int:
        manifest = await reader.read_manifest()
        targets: list[tuple[BackupFileInfo, BlobStore, str]] = []
        for info in manifest:
            module = self._catalog.get_by_storage_module(info.module, info.domain)
            if module is None:
                logger.warning("No catalog module owns blob module %s; skipping %s", info.module, info.path)
                continue
            path = module.try_adjust_file_path(mapper, info.path)
            if path is None:
                logger.warning("Skipping blob %s/%s: no destination path", info.module, info.path)
                continue
            targets.append((info, self._blobs.get_storage(tenant_id, info.module, region), path))

        # Usage was checked against the quota before extraction.
        detached: dict[int, tuple[BlobStore, QuotaController | None]] = {}
        for _, store, _ in targets:
            if id(store) not in detached:
                detached[id(store)] = (store, store.quota_controller)
                store.set_quota_controller(None)

        restored = 0
        with self._tracer.span("tenantmigrate.runner.restore_files", {ATTR_FILE_COUNT: len(targets)}):
            try:
                for info, store, path in targets:
                    await store.save(info.domain, path, await reader.read_blob(info))
                    restored += 1
            finally:
                for store, controller in detached.values():
                    store.set_quota_controller(controller)
        return restored

    async def _reconcile(
        self,
        destination: RegionDirectory,
        tenant_id: int,
        total_size: int,
        migrated_user_id: str | None,
    ) -> None:
        with self._tracer.span(
            "tenantmigrate.runner.reconcile",
            {ATTR_TENANT_ID: tenant_id, ATTR_REGION: destination.region},
        ):
            await destination.write_quota_row(tenant_id, total_size)

            tenant = await destination.get_tenant(tenant_id)
            owner_id = tenant.get("owner_id") if tenant else None
            new_owner = None
            if not await destination.user_exists(tenant_id, owner_id) and migrated_user_id:
                new_owner = migrated_user_id
                owner_id = migrated_user_id
                logger.info("Assigning tenant %d to migrated user %s", tenant_id, migrated_user_id)
            await destination.activate_tenant(tenant_id, new_owner)

            await destination.set_trial_tariff(tenant_id)

            if owner_id:
                await destination.ensure_admin(tenant_id, str(owner_id))


__all__ = ["MigrationRunner"]
