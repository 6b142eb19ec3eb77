"""
Module catalog building blocks.

A module groups the tables that share migration treatment. Each table is
described by a TableInfo (how rows are scoped, identified and remapped) and
the links between tables by RelationInfo. ModuleSpecifics carries the
behaviour shared by every module: building the per-user select, ordering
tables and rows so parents are written before children, and rewriting a
row's references through the ColumnMapper on restore.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tenantmigrate.column_mapper import ColumnMapper
from tenantmigrate.serialization import TableSnapshot

logger = logging.getLogger(__name__)

USER_TABLE = "core_user"
USER_ID_COLUMN = "id"


class ModuleName(Enum):
    """Catalog modules. The value is the archive key prefix."""

    TENANTS = "tenants"
    CORE = "core"
    WEBSTUDIO = "webstudio"
    FILES = "files"


class IdType(Enum):
    """How a restored row gets its identifier."""

    NONE = "none"
    """The table has no identifier of its own."""

    AUTOINCREMENT = "autoincrement"
    """The destination store generates the id on insert."""

    INTEGER = "integer"
    """The next id is MAX(id) + 1 in the destination."""

    GUID = "guid"
    """A new UUID4 string."""


class InsertMethod(Enum):
    """Whether and how rows of a table are written on restore."""

    NONE = "none"
    """The table never takes part in migration."""

    INSERT = "insert"
    """Rows replace any destination row with the same key."""

    IGNORE = "ignore"
    """Rows whose key already exists in the destination are skipped."""


@dataclass(frozen=True)
class TableInfo:
    """
    Static description of one migrated table.

    Attributes:
        name: Table name.
        tenant_column: Column holding the owning tenant id (None if the
            table is reached through a join).
        id_column: Column holding the row's own identifier.
        id_type: How a new identifier is allocated on restore.
        insert_method: Whether and how rows are written.
        user_id_columns: Columns referencing core_user.id.
        owner_column: Column scoping a row to the migrated user on select.
        date_columns: Columns holding timestamps.
        key_columns: Columns identifying a destination row for replace and
            ignore semantics. Defaults to the id column.
        order_by: Column the paged select is ordered by. Defaults to the
            id column.
    """

    name: str
    tenant_column: str | None = None
    id_column: str | None = None
    id_type: IdType = IdType.NONE
    insert_method: InsertMethod = InsertMethod.INSERT
    user_id_columns: tuple[str, ...] = ()
    owner_column: str | None = None
    date_columns: tuple[str, ...] = ()
    key_columns: tuple[str, ...] = ()
    order_by: str | None = None

    @property
    def has_id_column(self) -> bool:
        return self.id_column is not None and self.id_type is not IdType.NONE

    @property
    def row_key(self) -> tuple[str, ...]:
        if self.key_columns:
            return self.key_columns
        return (self.id_column,) if self.id_column else ()

    @property
    def sort_column(self) -> str | None:
        return self.order_by or self.id_column


RowPredicate = Callable[[dict[str, Any]], bool]


@dataclass(frozen=True)
class RelationInfo:
    """
    A reference from child_table.child_column to parent_table.parent_column.

    Attributes:
        predicate: Restricts the relation to rows it returns True for
            (e.g. only non-system groups).
    """

    parent_table: str
    parent_column: str
    child_table: str
    child_column: str
    predicate: RowPredicate | None = None

    @property
    def is_self_relation(self) -> bool:
        return self.parent_table == self.child_table

    def applies_to(self, row: dict[str, Any]) -> bool:
        return self.predicate is None or self.predicate(row)


def is_empty_reference(value: Any) -> bool:
    """Roots and unset references (None, 0, "0", "") are written unchanged."""
    return value is None or value == 0 or value in ("", "0")


class ModuleSpecifics:
    """
    Base class for catalog modules.

    Subclasses declare `name`, `tables` and `relations` and override the
    hooks where their tables need special treatment.
    """

    name: ModuleName
    tables: tuple[TableInfo, ...] = ()
    relations: tuple[RelationInfo, ...] = ()

    # Storage modules whose blobs belong to this catalog module
    storage_modules: tuple[str, ...] = ()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name.value})"

    def get_table(self, name: str) -> TableInfo:
        for table in self.tables:
            if table.name == name:
                return table
        raise KeyError(f"Table {name} is not part of module {self.name.value}")

    def tables_ordered(self) -> list[TableInfo]:
        """
        Tables in an order where referenced tables come first.

        Declaration order is kept wherever relations do not force otherwise.
        """
        pending = list(self.tables)
        ordered: list[TableInfo] = []
        names_in_module = {table.name for table in self.tables}

        while pending:
            for table in pending:
                parents = {
                    relation.parent_table
                    for relation in self.relations
                    if relation.child_table == table.name
                    and not relation.is_self_relation
                    and relation.parent_table in names_in_module
                }
                if parents <= {done.name for done in ordered}:
                    ordered.append(table)
                    pending.remove(table)
                    break
            else:
                # Cycle between tables; fall back to declaration order.
                ordered.extend(pending)
                break

        return ordered

    def relations_for(self, table: str) -> list[RelationInfo]:
        return [relation for relation in self.relations if relation.child_table == table]

    def self_relation(self, table: str) -> RelationInfo | None:
        for relation in self.relations_for(table):
            if relation.is_self_relation:
                return relation
        return None

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def build_select_query(
        self,
        tenant_id: int,
        table: TableInfo,
        limit: int,
        offset: int,
        user_id: str | None = None,
    ) -> tuple[str, dict[str, Any]]:
        """
        Paged select of the rows of table belonging to tenant_id (and user_id).

        Returns:
            (sql, params) ready for sqlalchemy.text().
        """
        params: dict[str, Any] = {"tenant_id": tenant_id, "limit": limit, "offset": offset}
        condition = self.select_condition(table, params, user_id)
        order = f" ORDER BY t.{table.sort_column}" if table.sort_column else ""
        sql = f"SELECT t.* FROM {table.name} t {condition}{order} LIMIT :limit OFFSET :offset"
        return sql, params

    def select_condition(
        self, table: TableInfo, params: dict[str, Any], user_id: str | None
    ) -> str:
        """Join and WHERE clause of the paged select; may add to params."""
        clauses = []
        if table.tenant_column:
            clauses.append(f"t.{table.tenant_column} = :tenant_id")
        if user_id is not None and table.owner_column:
            clauses.append(f"t.{table.owner_column} = :user_id")
            params["user_id"] = user_id
        return f"WHERE {' AND '.join(clauses)}" if clauses else ""

    def prepare_data(self, snapshot: TableSnapshot) -> TableSnapshot:
        """Table-level scrub applied before a snapshot is archived."""
        return snapshot

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def order_rows(self, table: TableInfo, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Order rows so that a row referenced through a self relation precedes
        the rows referencing it (depth-first, parents first).
        """
        relation = self.self_relation(table.name)
        if relation is None:
            return rows

        def parent_key(row: dict[str, Any]) -> str:
            return str(row.get(relation.child_column))

        ids = {str(row.get(relation.parent_column)) for row in rows}
        children: dict[str, list[dict[str, Any]]] = {}
        roots: list[dict[str, Any]] = []
        for row in rows:
            if parent_key(row) in ids and parent_key(row) != str(row.get(relation.parent_column)):
                children.setdefault(parent_key(row), []).append(row)
            else:
                roots.append(row)

        ordered: list[dict[str, Any]] = []
        stack = list(reversed(roots))
        while stack:
            row = stack.pop()
            ordered.append(row)
            stack.extend(reversed(children.get(str(row.get(relation.parent_column)), [])))

        if len(ordered) != len(rows):
            # Rows caught in a reference cycle are appended last.
            seen = {id(row) for row in ordered}
            ordered.extend(row for row in rows if id(row) not in seen)
        return ordered

    def find_existing_key(self, table: TableInfo, row: dict[str, Any]) -> dict[str, Any] | None:
        """
        Lookup for a destination row the archived row should update in place.

        Returns None when the row is always inserted.
        """
        return None

    def preserved_columns(self, table: TableInfo) -> frozenset[str]:
        """Columns left untouched when a row updates an existing destination row."""
        return frozenset()

    def prepare_row(
        self, mapper: ColumnMapper, table: TableInfo, row: dict[str, Any]
    ) -> dict[str, Any] | None:
        """
        Rewrite a row's references for the destination.

        Tenant columns must map (UnmappedReferenceError otherwise). User
        columns map when the user was migrated and are kept otherwise.
        Relation columns must map; a row with an unmappable relation is
        skipped by returning None.
        """
        prepared = dict(row)

        if table.has_id_column and table.id_column in prepared:
            new_id = mapper.get_mapping(table.name, table.id_column, prepared[table.id_column])
            if new_id is not None:
                prepared[table.id_column] = new_id

        if table.tenant_column and table.tenant_column != table.id_column:
            prepared[table.tenant_column] = mapper.require_tenant_mapping(
                table.name, table.tenant_column, prepared.get(table.tenant_column)
            )

        for column in table.user_id_columns:
            if column in prepared:
                prepared[column] = self.map_user(mapper, prepared[column])

        relations: dict[str, list[RelationInfo]] = {}
        for relation in self.relations_for(table.name):
            if relation.applies_to(row):
                relations.setdefault(relation.child_column, []).append(relation)

        for column, column_relations in relations.items():
            value = row.get(column)
            if is_empty_reference(value):
                continue
            mapped = None
            for relation in column_relations:
                mapped = self.map_relation(mapper, relation, value)
                if mapped is not None:
                    break
            if mapped is None:
                logger.warning(
                    "Skipping %s row: %s = %r has no mapping",
                    table.name,
                    column,
                    value,
                )
                return None
            prepared[column] = mapped

        return prepared

    @staticmethod
    def map_user(mapper: ColumnMapper, value: Any) -> Any:
        mapped = mapper.get_mapping(USER_TABLE, USER_ID_COLUMN, value)
        return value if mapped is None else mapped

    def map_relation(self, mapper: ColumnMapper, relation: RelationInfo, value: Any) -> Any | None:
        """Map one relation value; None when the parent row was not migrated."""
        return mapper.get_mapping(relation.parent_table, relation.parent_column, value)

    def try_adjust_file_path(self, mapper: ColumnMapper, path: str) -> str | None:
        """
        Rewrite a blob path for the destination.

        Returns:
            The destination path, or None if the blob must be skipped.
        """
        return path


__all__ = [
    "ModuleName",
    "IdType",
    "InsertMethod",
    "TableInfo",
    "RelationInfo",
    "ModuleSpecifics",
    "USER_TABLE",
    "USER_ID_COLUMN",
    "is_empty_reference",
]
