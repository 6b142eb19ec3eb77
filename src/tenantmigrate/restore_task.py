"""
RestoreModuleTask - Replays one catalog module's tables into a region.

Each table is replayed in its own transaction. Identifiers allocated while
writing are recorded in the ColumnMapper as pending and committed only once
the table's transaction has committed; a failed attempt rolls both back and
the table is retried from scratch.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tenantmigrate.archive import ArchiveReader
from tenantmigrate.catalog import IdType, InsertMethod, ModuleSpecifics, TableInfo
from tenantmigrate.column_mapper import ColumnMapper
from tenantmigrate.exceptions import RetryError, TableRestoreError
from tenantmigrate.models import MigrationConfig
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import ATTR_MODULE, ATTR_ROW_COUNT, ATTR_TABLE
from tenantmigrate.retry import RetryConfig, retry_async
from tenantmigrate.stores._connection import execute_with_connection
from tenantmigrate.stores.tables import (
    delete_rows,
    fetch_rows,
    identifier,
    insert_row,
    max_value,
    row_exists,
    table_columns,
    update_rows,
)

logger = logging.getLogger(__name__)


class RestoreModuleTask:
    """
    Restores the archived tables of one module.

    Example:
        >>> task = RestoreModuleTask(module, reader, engine, mapper)
        >>> rows = await task.run()
    """

    def __init__(
        self,
        module: ModuleSpecifics,
        reader: ArchiveReader,
        engine: AsyncEngine,
        mapper: ColumnMapper,
        *,
        config: MigrationConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.module = module
        self._reader = reader
        self._engine = engine
        self._mapper = mapper
        self._config = config or MigrationConfig()

    async def run(self) -> int:
        """
        Replay every archived table of the module, parents first.

        Returns:
            Number of rows written.

        Raises:
            TableRestoreError: If a table fails on every attempt.
        """
        written = 0
        for table in self.module.tables_ordered():
            if table.insert_method is InsertMethod.NONE:
                continue
            snapshot = await self._reader.read_table(self.module.name.value, table.name)
            if snapshot is None:
                continue
            written += await self.restore_table(table, snapshot.rows)
        return written

    async def restore_table(self, table: TableInfo, rows: list[dict[str, Any]]) -> int:
        """Replay one table with retry; mapper changes of failed attempts are dropped."""
        ordered = self.module.order_rows(table, rows)
        retry_config = RetryConfig.for_step(self._config.table_restore_attempts, self._config.retry_delay_seconds)

        with self._tracer.span(
            "tenantmigrate.restore.table",
            {ATTR_MODULE: self.module.name.value, ATTR_TABLE: table.name},
        ) as span:
            try:
                written = await retry_async(
                    lambda: self._restore_rows(table, ordered),
                    retry_config,
                    operation_name=f"restore {table.name}",
                    on_failure=lambda _: self._mapper.rollback(),
                )
            except RetryError as e:
                raise TableRestoreError(table.name, str(e.last_error)) from e

            self._mapper.commit()
            if span:
                span.set_attribute(ATTR_ROW_COUNT, written)

        logger.info("Restored %d of %d rows into %s", written, len(rows), table.name)
        return written

    async def _restore_rows(self, table: TableInfo, rows: list[dict[str, Any]]) -> int:
        written = 0
        async with execute_with_connection(self._engine, transactional=True) as conn:
            columns = set(await table_columns(conn, table.name))
            for row in rows:
                if await self._restore_row(conn, table, row, columns):
                    written += 1
        return written

    async def _restore_row(
        self,
        conn: AsyncConnection,
        table: TableInfo,
        row: dict[str, Any],
        columns: set[str],
    ) -> bool:
        existing_key = self.module.find_existing_key(table, row)
        if existing_key is not None and await self._update_existing(conn, table, row, existing_key, columns):
            return True

        fresh_id = (
            table.has_id_column
            and table.id_column in row
            and not self._mapper.has_mapping(table.name, table.id_column, row[table.id_column])
        )
        allocated = await self._allocate_id(conn, table, row)

        prepared = self.module.prepare_row(self._mapper, table, row)
        if prepared is None:
            # Nothing is inserted, so the id allocated above would be handed out again.
            if fresh_id:
                self._mapper.discard_mapping(table.name, table.id_column, row[table.id_column])
            return False
        values = {column: value for column, value in prepared.items() if column in columns}

        if table.id_type is IdType.AUTOINCREMENT and allocated:
            values.pop(table.id_column, None)
            new_id = await insert_row(conn, table.name, values, returning=table.id_column)
            self._mapper.set_mapping(table.name, table.id_column, row[table.id_column], new_id)
            return True

        key = {column: values.get(column) for column in table.row_key if column in values}
        if table.insert_method is InsertMethod.IGNORE:
            if key and await row_exists(conn, table.name, key):
                logger.debug("Keeping existing %s row %s", table.name, key)
                return False
        elif key:
            await delete_rows(conn, table.name, key)

        await insert_row(conn, table.name, values)
        return True

    async def _allocate_id(self, conn: AsyncConnection, table: TableInfo, row: dict[str, Any]) -> bool:
        """
        Record a new identifier for the row unless one is already mapped.

        Returns:
            True for an AUTOINCREMENT row whose id the insert must generate.
        """
        if not table.has_id_column or table.id_column not in row:
            return False
        old_id = row[table.id_column]
        if self._mapper.has_mapping(table.name, table.id_column, old_id):
            return False

        if table.id_type is IdType.AUTOINCREMENT:
            return True
        if table.id_type is IdType.INTEGER:
            new_id = int(await max_value(conn, table.name, table.id_column) or 0) + 1
        else:
            new_id = str(uuid4())
        self._mapper.set_mapping(table.name, table.id_column, old_id, new_id)
        return False

    async def _update_existing(
        self,
        conn: AsyncConnection,
        table: TableInfo,
        row: dict[str, Any],
        key: dict[str, Any],
        columns: set[str],
    ) -> bool:
        """Update the destination row matched by key in place; False if there is none."""
        id_column = identifier(table.id_column)
        condition = " AND ".join(f"{identifier(column)} = :{column}" for column in key)
        _, matches = await fetch_rows(
            conn, f"SELECT {id_column} FROM {identifier(table.name)} WHERE {condition}", key
        )
        if not matches:
            return False

        self._mapper.set_mapping(table.name, table.id_column, row[table.id_column], matches[0][id_column])
        prepared = self.module.prepare_row(self._mapper, table, row)
        if prepared is None:
            return False

        preserved = self.module.preserved_columns(table)
        values = {
            column: value
            for column, value in prepared.items()
            if column in columns and column not in preserved and column not in key
        }
        if values:
            await update_rows(conn, table.name, values, key)
        logger.info("Updated existing %s row %s", table.name, key)
        return True


__all__ = ["RestoreModuleTask"]
