"""
SQL schema templates for the tables tenantmigrate reads and writes.

The relational stores are owned by the portal platform; these templates
describe the subset of columns the migration engine relies on and are used
to provision development and test regions.

Schemas:
    - tenants: tenants_tenants, tenants_forbiden, quotas, tariffs, core_user
    - core: core_usergroup, core_settings, core_acl, core_subscription
    - webstudio: webstudio_settings
    - files: files_* tables
    - requests: migration_requests queue

Supported backends:
    - sqlite

Usage:
    from tenantmigrate.schema import create_schema, get_schema

    sql = get_schema("files", backend="sqlite")
    await create_schema(engine)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

SchemaName = Literal["tenants", "core", "webstudio", "files", "requests", "all"]

BackendName = Literal["sqlite"]

# Creation order of the individual schemas in "all"
SCHEMA_ORDER: tuple[str, ...] = ("tenants", "core", "webstudio", "files", "requests")

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def list_schemas(backend: BackendName = "sqlite") -> list[str]:
    """List schema names available for a backend."""
    templates_dir = _TEMPLATES_DIR / backend
    if not templates_dir.exists():
        return []
    return sorted(path.stem for path in templates_dir.glob("*.sql"))


def get_schema(name: SchemaName, backend: BackendName = "sqlite") -> str:
    """
    Load a SQL schema template by name and backend.

    Args:
        name: The schema name, or "all" for every schema in creation order.
        backend: The database backend.

    Returns:
        SQL schema definition as a string

    Raises:
        ValueError: If the schema is not available for the backend
    """
    if name == "all":
        return "\n".join(get_schema(part, backend) for part in SCHEMA_ORDER)  # type: ignore[arg-type]

    path = _TEMPLATES_DIR / backend / f"{name}.sql"
    if not path.exists():
        raise ValueError(
            f"Schema '{name}' is not available for backend '{backend}'. "
            f"Available schemas: {list_schemas(backend)}"
        )
    return path.read_text()


def split_statements(sql: str) -> list[str]:
    """Split a schema script into single statements, dropping comment lines."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [part.strip() for part in "\n".join(lines).split(";") if part.strip()]


async def create_schema(
    engine: AsyncEngine,
    name: SchemaName = "all",
    backend: BackendName = "sqlite",
) -> None:
    """
    Create the tables of a schema in the given store.

    Statements use IF NOT EXISTS, so running this against a provisioned
    store is a no-op.
    """
    statements = split_statements(get_schema(name, backend))
    async with engine.begin() as conn:
        for sql in statements:
            await conn.execute(text(sql))
    logger.info("Created schema %s (%d statements) on %s", name, len(statements), engine.url)


__all__ = [
    "SchemaName",
    "BackendName",
    "SCHEMA_ORDER",
    "list_schemas",
    "get_schema",
    "split_statements",
    "create_schema",
]
