"""
Shared pytest fixtures for the tenantmigrate tests.

This module provides:
- Region store fixtures (region_engines, home_engine, eu_engine, stores)
- Blob store fixtures (blobs)
- Row helpers (insert, query)
- Seeded scenarios (source_tenant, destination_region): a home-region portal
  "acme" with two users and their files, and an "eu" region holding one
  existing portal and the trial quota
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from tenantmigrate.models import ADMIN_GROUP_ID, TRIAL_QUOTA_ID, MigrationConfig
from tenantmigrate.schema import create_schema
from tenantmigrate.storage import InMemoryBlobStoreFactory
from tenantmigrate.stores import StoreFactory
from tenantmigrate.stores.tables import fetch_rows, insert_row

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# ============================================================================
# Region Store Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def region_engines(tmp_path: Path) -> AsyncGenerator[dict[str, AsyncEngine], None]:
    """
    Provide one file-backed SQLite store per region with the full schema.

    The empty region name is the home region; "eu" is the destination.

    Yields:
        dict mapping region name to AsyncEngine
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    engines = {
        "": create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'home.db'}"),
        "eu": create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'eu.db'}"),
    }
    for engine in engines.values():
        await create_schema(engine)

    yield engines

    for engine in engines.values():
        await engine.dispose()


@pytest.fixture
def home_engine(region_engines: dict[str, AsyncEngine]) -> AsyncEngine:
    return region_engines[""]


@pytest.fixture
def eu_engine(region_engines: dict[str, AsyncEngine]) -> AsyncEngine:
    return region_engines["eu"]


@pytest.fixture
def stores(region_engines: dict[str, AsyncEngine]) -> StoreFactory:
    """StoreFactory wrapping the test region engines."""
    return StoreFactory.from_engines(region_engines)


@pytest.fixture
def blobs() -> InMemoryBlobStoreFactory:
    return InMemoryBlobStoreFactory()


@pytest.fixture
def config() -> MigrationConfig:
    """Small pages and no retry delay so tests exercise paging quickly."""
    return MigrationConfig(page_size=2, file_copy_attempts=2, table_restore_attempts=2, retry_delay_seconds=0.0)


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


# ============================================================================
# Row Helpers
# ============================================================================

InsertRows = Callable[..., Awaitable[None]]
QueryRows = Callable[..., Awaitable[list[dict[str, Any]]]]


@pytest.fixture
def insert() -> InsertRows:
    """
    Insert rows into a table of a region store.

    Usage:
        await insert(engine, "core_user", {"id": "...", ...}, {...})
    """

    async def _insert(engine: AsyncEngine, table: str, *rows: dict[str, Any]) -> None:
        async with engine.begin() as conn:
            for row in rows:
                await insert_row(conn, table, row)

    return _insert


@pytest.fixture
def query() -> QueryRows:
    """Run a select against a region store and return rows as dicts."""

    async def _query(engine: AsyncEngine, sql: str, **params: Any) -> list[dict[str, Any]]:
        async with engine.connect() as conn:
            _, rows = await fetch_rows(conn, sql, params)
        return rows

    return _query


# ============================================================================
# Seeded Scenarios
# ============================================================================

CREATED = datetime(2024, 1, 15, 9, 30, 0)


@dataclass(frozen=True)
class SourceTenant:
    """Identifiers of the seeded home-region portal."""

    tenant_id: int = 1
    alias: str = "acme"
    alice_id: str = "a11ce000-0000-4000-8000-000000000001"
    alice_email: str = "alice@example.com"
    bob_id: str = "b0b00000-0000-4000-8000-000000000002"
    custom_group_id: str = "9c9c9c9c-0000-4000-8000-000000000009"
    alice_file_ids: tuple[int, ...] = (5, 6)
    alice_folder_ids: tuple[int, ...] = (10, 11)
    alice_total_size: int = 500


@dataclass(frozen=True)
class DestinationRegion:
    """Identifiers of the seeded "eu" region."""

    region: str = "eu"
    existing_alias: str = "existing"
    existing_tenant_id: int = 1
    carol_id: str = "ca401000-0000-4000-8000-000000000003"
    trial_max_total_size: int = 1000


def user_row(user_id: str, tenant: int, username: str, email: str, **extra: Any) -> dict[str, Any]:
    return {
        "id": user_id,
        "tenant": tenant,
        "username": username,
        "firstname": username.title(),
        "email": email,
        "status": 1,
        "removed": 0,
        "create_on": CREATED,
        "last_modified": CREATED,
        **extra,
    }


@pytest_asyncio.fixture
async def source_tenant(
    home_engine: AsyncEngine,
    blobs: InMemoryBlobStoreFactory,
    insert: InsertRows,
) -> SourceTenant:
    """
    Seed the home region with portal "acme".

    Alice owns two folders and two files (500 bytes); Bob owns one folder
    and a 999 byte file that must never leave the portal with Alice.
    """
    source = SourceTenant()
    alice, bob, tenant = source.alice_id, source.bob_id, source.tenant_id

    await insert(
        home_engine,
        "tenants_tenants",
        {
            "id": tenant,
            "alias": source.alias,
            "name": "Acme Corporation",
            "industry": 7,
            "status": 0,
            "owner_id": alice,
            "payment_id": "pay-123",
            "creationdatetime": CREATED,
            "last_modified": CREATED,
        },
    )
    await insert(
        home_engine,
        "core_user",
        user_row(alice, tenant, "alice", source.alice_email),
        user_row(bob, tenant, "bob", "bob@example.com"),
    )
    await insert(
        home_engine,
        "core_usergroup",
        {"tenant": tenant, "userid": alice, "groupid": ADMIN_GROUP_ID, "ref_type": 0, "removed": 0},
        {"tenant": tenant, "userid": alice, "groupid": source.custom_group_id, "ref_type": 0, "removed": 0},
    )
    await insert(
        home_engine,
        "core_acl",
        {"tenant": tenant, "subject": alice, "action": "read-files", "object": "", "acetype": 0},
        {"tenant": tenant, "subject": bob, "action": "read-files", "object": "", "acetype": 0},
    )
    await insert(
        home_engine,
        "core_settings",
        {"tenant": tenant, "id": "theme", "value": b"dark"},
        {"tenant": tenant, "id": "CustomerId", "value": b"licence-secret"},
    )
    await insert(
        home_engine,
        "webstudio_settings",
        {"tenantid": tenant, "id": "layout", "userid": alice, "data": '{"compact": true}'},
    )

    def folder(folder_id: int, parent_id: int, title: str, owner: str) -> dict[str, Any]:
        return {
            "id": folder_id,
            "parent_id": parent_id,
            "title": title,
            "create_by": owner,
            "modified_by": owner,
            "create_on": CREATED,
            "modified_on": CREATED,
            "tenant_id": tenant,
        }

    def file(file_id: int, folder_id: int, size: int, owner: str) -> dict[str, Any]:
        return {
            "id": file_id,
            "version": 1,
            "version_group": 1,
            "current_version": 1,
            "folder_id": folder_id,
            "title": f"file{file_id}.txt",
            "content_length": size,
            "create_by": owner,
            "modified_by": owner,
            "create_on": CREATED,
            "modified_on": CREATED,
            "tenant_id": tenant,
            "thumb": 1,
        }

    await insert(
        home_engine,
        "files_folder",
        folder(10, 0, "My documents", alice),
        folder(11, 10, "Reports", alice),
        folder(12, 0, "My documents", bob),
    )
    await insert(
        home_engine,
        "files_folder_tree",
        {"folder_id": 10, "parent_id": 10, "level": 0},
        {"folder_id": 11, "parent_id": 10, "level": 1},
        {"folder_id": 11, "parent_id": 11, "level": 0},
        {"folder_id": 12, "parent_id": 12, "level": 0},
    )
    await insert(
        home_engine,
        "files_file",
        file(5, 10, 300, alice),
        file(6, 11, 200, alice),
        file(7, 12, 999, bob),
    )
    await insert(
        home_engine,
        "files_bunch_objects",
        {"tenant_id": tenant, "right_node": f"files/my/{alice}", "left_node": "10"},
        {"tenant_id": tenant, "right_node": f"files/my/{bob}", "left_node": "12"},
        {"tenant_id": tenant, "right_node": "files/common/", "left_node": "20"},
    )

    store = blobs.get_storage(tenant, "files", "")
    await store.save("", "folder_1000/file_5/v1/content.txt", b"a" * 300)
    await store.save("", "folder_1000/file_6/v1/content.txt", b"b" * 200)
    await store.save("", "folder_1000/file_6/v1/thumb.png", b"thumbnail")
    await store.save("", "folder_1000/file_7/v1/content.txt", b"c" * 999)
    return source


@pytest_asyncio.fixture
async def destination_region(eu_engine: AsyncEngine, insert: InsertRows) -> DestinationRegion:
    """
    Seed the "eu" region with the trial quota and portal "existing".

    The existing portal already holds a folder and a file so identifiers
    allocated for migrated rows differ from their source values.
    """
    destination = DestinationRegion()
    tenant, carol = destination.existing_tenant_id, destination.carol_id

    await insert(
        eu_engine,
        "tenants_quota",
        {
            "tenant": TRIAL_QUOTA_ID,
            "name": "trial",
            "max_total_size": destination.trial_max_total_size,
            "count_room_admin": 5,
        },
    )
    await insert(eu_engine, "tenants_forbiden", {"address": "admin"})
    await insert(
        eu_engine,
        "tenants_tenants",
        {
            "id": tenant,
            "alias": destination.existing_alias,
            "name": "Existing Ltd",
            "status": 0,
            "owner_id": carol,
            "creationdatetime": CREATED,
            "last_modified": CREATED,
        },
    )
    await insert(eu_engine, "core_user", user_row(carol, tenant, "carol", "carol@example.com"))
    await insert(
        eu_engine,
        "files_folder",
        {
            "id": 1,
            "parent_id": 0,
            "title": "My documents",
            "create_by": carol,
            "modified_by": carol,
            "tenant_id": tenant,
        },
    )
    await insert(
        eu_engine,
        "files_file",
        {
            "id": 1,
            "version": 1,
            "folder_id": 1,
            "title": "carol.txt",
            "content_length": 10,
            "create_by": carol,
            "modified_by": carol,
            "tenant_id": tenant,
        },
    )
    return destination
