"""
Unit tests for RegionDirectory.

Tests cover:
- Tenant lookup, alias reservation and activation
- User lookup and identity conflicts
- Admin group membership
- Quota rows, quota fallback and the trial tariff
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from tenantmigrate.exceptions import AliasUnavailableError
from tenantmigrate.models import (
    ADMIN_GROUP_ID,
    FILES_QUOTA_TAG,
    TRIAL_QUOTA_ID,
    TenantStatus,
)
from tenantmigrate.observability import MockTracer
from tenantmigrate.stores import RegionDirectory


@pytest.fixture
def home(home_engine: AsyncEngine) -> RegionDirectory:
    return RegionDirectory(home_engine, "", enable_tracing=False)


@pytest.fixture
def eu(eu_engine: AsyncEngine) -> RegionDirectory:
    return RegionDirectory(eu_engine, "eu", enable_tracing=False)


class TestTenants:
    @pytest.mark.asyncio
    async def test_lookup_by_alias_ignores_case(self, home: RegionDirectory, source_tenant) -> None:
        tenant = await home.get_tenant_by_alias("ACME")
        assert tenant is not None
        assert tenant["id"] == source_tenant.tenant_id
        assert await home.get_tenant_by_alias("nobody") is None

    @pytest.mark.asyncio
    async def test_taken_aliases_include_forbidden(self, eu: RegionDirectory, destination_region) -> None:
        assert await eu.taken_aliases() == {"existing", "admin"}

    @pytest.mark.asyncio
    async def test_placeholder_is_suspended(self, eu: RegionDirectory, destination_region) -> None:
        tenant_id = await eu.insert_placeholder_tenant("alice")

        tenant = await eu.get_tenant(tenant_id)
        assert tenant is not None
        assert tenant["alias"] == "alice"
        assert tenant["status"] == int(TenantStatus.SUSPENDED)
        assert tenant["name"] == ""
        assert tenant_id != destination_region.existing_tenant_id

    @pytest.mark.asyncio
    async def test_placeholder_for_taken_alias_raises(self, eu: RegionDirectory, destination_region) -> None:
        with pytest.raises(AliasUnavailableError):
            await eu.insert_placeholder_tenant("existing")

    @pytest.mark.asyncio
    async def test_activate_sets_owner(self, eu: RegionDirectory, destination_region) -> None:
        tenant_id = await eu.insert_placeholder_tenant("alice")

        await eu.activate_tenant(tenant_id, owner_id="owner-1")

        tenant = await eu.get_tenant(tenant_id)
        assert tenant is not None
        assert tenant["status"] == int(TenantStatus.ACTIVE)
        assert tenant["owner_id"] == "owner-1"
        assert tenant["payment_id"] == ""

    @pytest.mark.asyncio
    async def test_activate_keeps_owner_when_not_given(self, eu: RegionDirectory, destination_region) -> None:
        await eu.activate_tenant(destination_region.existing_tenant_id)
        tenant = await eu.get_tenant(destination_region.existing_tenant_id)
        assert tenant is not None
        assert tenant["owner_id"] == destination_region.carol_id

    @pytest.mark.asyncio
    async def test_traced_lookup(self, home_engine: AsyncEngine, source_tenant) -> None:
        tracer = MockTracer()
        directory = RegionDirectory(home_engine, "", tracer)
        await directory.get_tenant_by_alias("acme")
        assert tracer.span_names == ["tenantmigrate.directory.get_tenant_by_alias"]


class TestUsers:
    @pytest.mark.asyncio
    async def test_find_by_email_or_username(self, home: RegionDirectory, source_tenant) -> None:
        by_email = await home.find_active_user(1, None, "ALICE@example.com")
        by_name = await home.find_active_user(1, "alice", None)
        assert by_email is not None and by_name is not None
        assert by_email["id"] == by_name["id"] == source_tenant.alice_id

    @pytest.mark.asyncio
    async def test_both_criteria_must_match(self, home: RegionDirectory, source_tenant) -> None:
        assert await home.find_active_user(1, "bob", source_tenant.alice_email) is None

    @pytest.mark.asyncio
    async def test_no_criteria(self, home: RegionDirectory, source_tenant) -> None:
        assert await home.find_active_user(1, None, None) is None

    @pytest.mark.asyncio
    async def test_terminated_user_is_not_found(self, home: RegionDirectory, home_engine, insert) -> None:
        await insert(
            home_engine,
            "core_user",
            {"id": "u-gone", "tenant": 1, "username": "gone", "email": "gone@example.com", "status": 2},
        )
        assert await home.find_active_user(1, "gone", None) is None

    @pytest.mark.asyncio
    async def test_identity_exists(self, eu: RegionDirectory, destination_region) -> None:
        tenant = destination_region.existing_tenant_id
        assert await eu.identity_exists(tenant, "carol", "other@example.com")
        assert await eu.identity_exists(999, "someone", "CAROL@example.com")
        assert not await eu.identity_exists(tenant, "alice", "alice@example.com")

    @pytest.mark.asyncio
    async def test_user_exists(self, eu: RegionDirectory, destination_region) -> None:
        tenant = destination_region.existing_tenant_id
        assert await eu.user_exists(tenant, destination_region.carol_id)
        assert not await eu.user_exists(tenant, "missing")
        assert not await eu.user_exists(tenant, None)

    @pytest.mark.asyncio
    async def test_tenant_users(self, home: RegionDirectory, source_tenant) -> None:
        users = await home.tenant_users(1)
        assert {user["username"] for user in users} == {"alice", "bob"}


class TestAdmins:
    @pytest.mark.asyncio
    async def test_count_admins(self, home: RegionDirectory, source_tenant) -> None:
        assert await home.count_admins(1) == 1

    @pytest.mark.asyncio
    async def test_ensure_admin_inserts_once(self, eu: RegionDirectory, destination_region) -> None:
        tenant, carol = destination_region.existing_tenant_id, destination_region.carol_id

        assert await eu.ensure_admin(tenant, carol)
        assert not await eu.ensure_admin(tenant, carol)
        assert await eu.count_admins(tenant) == 1

    @pytest.mark.asyncio
    async def test_ensure_admin_reactivates_removed_membership(
        self, eu: RegionDirectory, eu_engine, destination_region, insert
    ) -> None:
        tenant, carol = destination_region.existing_tenant_id, destination_region.carol_id
        await insert(
            eu_engine,
            "core_usergroup",
            {"tenant": tenant, "userid": carol, "groupid": ADMIN_GROUP_ID, "ref_type": 0, "removed": 1},
        )
        assert await eu.count_admins(tenant) == 0

        assert await eu.ensure_admin(tenant, carol)
        assert await eu.count_admins(tenant) == 1


class TestFilesAndQuotas:
    @pytest.mark.asyncio
    async def test_content_length_and_file_ids(self, home: RegionDirectory, source_tenant) -> None:
        assert await home.sum_content_length(1, source_tenant.alice_id) == 500
        assert await home.user_file_ids(1, source_tenant.alice_id) == [5, 6]
        assert await home.sum_content_length(1, "nobody") == 0

    @pytest.mark.asyncio
    async def test_quota_fallback_to_trial(self, eu: RegionDirectory, eu_engine, destination_region, insert) -> None:
        tenant = destination_region.existing_tenant_id
        trial = await eu.get_tenant_quota(tenant)
        assert trial is not None and trial["tenant"] == TRIAL_QUOTA_ID

        await insert(eu_engine, "tenants_quota", {"tenant": tenant, "max_total_size": 5, "count_room_admin": 1})
        own = await eu.get_tenant_quota(tenant)
        assert own is not None and own["tenant"] == tenant

    @pytest.mark.asyncio
    async def test_write_quota_row_overwrites(self, eu: RegionDirectory, eu_engine, destination_region, query) -> None:
        await eu.write_quota_row(1, 100)
        await eu.write_quota_row(1, 500)

        rows = await query(eu_engine, "SELECT * FROM tenants_quotarow WHERE tenant = :tenant", tenant=1)
        assert len(rows) == 1
        assert rows[0]["counter"] == 500
        assert rows[0]["path"] == "/files/"
        assert rows[0]["tag"] == FILES_QUOTA_TAG

    @pytest.mark.asyncio
    async def test_trial_tariff_replaces_previous(self, eu: RegionDirectory, eu_engine, destination_region, query) -> None:
        await eu.set_trial_tariff(1)
        await eu.set_trial_tariff(1)

        tariffs = await query(eu_engine, "SELECT * FROM tenants_tariff WHERE tenant = :tenant", tenant=1)
        rows = await query(eu_engine, "SELECT * FROM tenants_tariffrow WHERE tenant = :tenant", tenant=1)
        assert [tariff["id"] for tariff in tariffs] == [-1]
        assert len(rows) == 1
        assert rows[0]["quota"] == TRIAL_QUOTA_ID
        assert await eu.current_tariff_quota(1) == TRIAL_QUOTA_ID
        assert await eu.current_tariff_quota(2) is None
