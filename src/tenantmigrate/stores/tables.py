"""
Generic row access for catalog tables.

Extraction and restore treat every table the same way: select pages of
rows as dictionaries, insert a row built from an archived snapshot, update
or delete by a key. Statements are plain SQL through sqlalchemy.text(),
so the same code runs against any region's dialect.

Identifiers are validated before they are interpolated into SQL; values are
always bound parameters.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, LargeBinary, bindparam, inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import TextClause

from tenantmigrate.serialization import normalize_value

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def identifier(name: str) -> str:
    """
    Validate a table or column name for interpolation into SQL.

    Raises:
        ValueError: If name is not a plain identifier.
    """
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def statement(sql: str, params: Mapping[str, Any] | None = None) -> TextClause:
    """Build a text() clause, typing datetime and binary parameters."""
    clause = text(sql)
    typed = []
    for name, value in (params or {}).items():
        if isinstance(value, datetime):
            typed.append(bindparam(name, type_=DateTime()))
        elif isinstance(value, (bytes, bytearray)):
            typed.append(bindparam(name, type_=LargeBinary()))
    if typed:
        clause = clause.bindparams(*typed)
    return clause


async def fetch_rows(
    conn: AsyncConnection,
    sql: str,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> tuple[list[str], list[dict[str, Any]]]:
    """
    Run a select and return (column names, rows as dicts).

    Values are normalized: datetimes become naive, UUIDs become strings.
    """
    execution = conn.execute(statement(sql, params), dict(params or {}))
    result = await (asyncio.wait_for(execution, timeout) if timeout else execution)
    columns = list(result.keys())
    rows = [
        {column: normalize_value(value) for column, value in zip(columns, row, strict=True)}
        for row in result.fetchall()
    ]
    return columns, rows


async def table_columns(conn: AsyncConnection, table: str) -> list[str]:
    """Column names of a table in the connected store."""

    def _columns(sync_conn: Any) -> list[str]:
        return [column["name"] for column in inspect(sync_conn).get_columns(table)]

    return await conn.run_sync(_columns)


def _where(where: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    clauses = []
    params: dict[str, Any] = {}
    for column, value in where.items():
        name = f"w_{identifier(column)}"
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = :{name}")
            params[name] = value
    return " AND ".join(clauses) or "1 = 1", params


async def insert_row(
    conn: AsyncConnection,
    table: str,
    values: Mapping[str, Any],
    returning: str | None = None,
) -> Any:
    """
    Insert one row.

    Args:
        returning: Column whose generated value is returned (autoincrement
            ids). Uses RETURNING where the dialect supports it and the
            cursor's lastrowid otherwise.

    Returns:
        The generated value when returning is given, else None.
    """
    identifier(table)
    columns = [identifier(column) for column in values]
    params = {f"v_{column}": values[column] for column in columns}
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + name for name in params)})"
    )
    if returning is None:
        await conn.execute(statement(sql, params), params)
        return None

    identifier(returning)
    if conn.dialect.insert_returning:
        result = await conn.execute(statement(f"{sql} RETURNING {returning}", params), params)
        return result.scalar_one()
    result = await conn.execute(statement(sql, params), params)
    return result.lastrowid


async def update_rows(
    conn: AsyncConnection,
    table: str,
    values: Mapping[str, Any],
    where: Mapping[str, Any],
) -> int:
    """Update rows matching where; returns the affected row count."""
    identifier(table)
    assignments = []
    params: dict[str, Any] = {}
    for column, value in values.items():
        name = f"v_{identifier(column)}"
        assignments.append(f"{column} = :{name}")
        params[name] = value
    condition, where_params = _where(where)
    params.update(where_params)
    result = await conn.execute(
        statement(f"UPDATE {table} SET {', '.join(assignments)} WHERE {condition}", params),
        params,
    )
    return result.rowcount


async def delete_rows(conn: AsyncConnection, table: str, where: Mapping[str, Any]) -> int:
    identifier(table)
    condition, params = _where(where)
    result = await conn.execute(statement(f"DELETE FROM {table} WHERE {condition}", params), params)
    return result.rowcount


async def row_exists(conn: AsyncConnection, table: str, where: Mapping[str, Any]) -> bool:
    identifier(table)
    condition, params = _where(where)
    result = await conn.execute(
        statement(f"SELECT 1 FROM {table} WHERE {condition} LIMIT 1", params), params
    )
    return result.first() is not None


async def max_value(conn: AsyncConnection, table: str, column: str) -> Any:
    """MAX(column) over the whole table, or None for an empty table."""
    result = await conn.execute(text(f"SELECT MAX({identifier(column)}) FROM {identifier(table)}"))
    return result.scalar()


__all__ = [
    "identifier",
    "statement",
    "fetch_rows",
    "table_columns",
    "insert_row",
    "update_rows",
    "delete_rows",
    "row_exists",
    "max_value",
]
