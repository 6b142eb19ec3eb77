"""
Unit tests for the module catalog.

Tests cover:
- Module subsets for new and merged portals
- Parent-first table and row ordering
- Per-user select queries
- prepare_row() remapping of tenant, user and relation columns
- Files module scrubbing and blob path adjustment
"""

import pytest

from tenantmigrate.catalog import (
    CoreModuleSpecifics,
    FilesModuleSpecifics,
    IdType,
    InsertMethod,
    ModuleCatalog,
    ModuleName,
    TableInfo,
    TenantsModuleSpecifics,
    WebStudioModuleSpecifics,
)
from tenantmigrate.catalog.base import is_empty_reference
from tenantmigrate.column_mapper import ColumnMapper
from tenantmigrate.exceptions import UnmappedReferenceError
from tenantmigrate.models import ADMIN_GROUP_ID
from tenantmigrate.serialization import TableSnapshot

ALICE = "a11ce000-0000-4000-8000-000000000001"
NEW_ALICE = "0e0e0e0e-0000-4000-8000-0000000000aa"


@pytest.fixture
def mapper() -> ColumnMapper:
    mapper = ColumnMapper()
    mapper.set_tenant_mapping(1, 2)
    mapper.set_mapping("core_user", "id", ALICE, NEW_ALICE)
    mapper.commit()
    return mapper


class TestModuleCatalog:
    def test_full_and_narrow_subsets(self) -> None:
        catalog = ModuleCatalog()
        assert [m.name for m in catalog.full()] == [
            ModuleName.TENANTS,
            ModuleName.CORE,
            ModuleName.WEBSTUDIO,
            ModuleName.FILES,
        ]
        assert [m.name for m in catalog.narrow()] == [ModuleName.CORE, ModuleName.FILES]
        assert catalog.all_modules() == catalog.full()

    def test_for_destination(self) -> None:
        catalog = ModuleCatalog()
        assert catalog.for_destination(None) == catalog.full()
        assert catalog.for_destination("existing") == catalog.narrow()

    def test_get_by_storage_module(self) -> None:
        catalog = ModuleCatalog()
        assert isinstance(catalog.get_by_storage_module("files"), FilesModuleSpecifics)
        assert catalog.get_by_storage_module("mail") is None

    def test_get_unknown_module(self) -> None:
        catalog = ModuleCatalog([CoreModuleSpecifics()])
        with pytest.raises(KeyError):
            catalog.get(ModuleName.FILES)


class TestTableOrdering:
    def test_files_parents_first(self) -> None:
        names = [table.name for table in FilesModuleSpecifics().tables_ordered()]
        assert names.index("files_folder") < names.index("files_file")
        assert names.index("files_folder") < names.index("files_folder_tree")
        assert names.index("files_thirdparty_account") < names.index("files_thirdparty_id_mapping")
        assert len(names) == len(set(names)) == len(FilesModuleSpecifics.tables)

    def test_declaration_order_kept_without_relations(self) -> None:
        module = TenantsModuleSpecifics()
        assert module.tables_ordered() == list(module.tables)

    def test_rows_ordered_parents_first(self) -> None:
        module = FilesModuleSpecifics()
        table = module.get_table("files_folder")
        rows = [
            {"id": 12, "parent_id": 11},
            {"id": 11, "parent_id": 10},
            {"id": 13, "parent_id": 0},
            {"id": 10, "parent_id": 0},
        ]
        ordered = [row["id"] for row in module.order_rows(table, rows)]
        assert ordered.index(10) < ordered.index(11) < ordered.index(12)
        assert sorted(ordered) == [10, 11, 12, 13]

    def test_rows_in_a_cycle_are_kept(self) -> None:
        module = FilesModuleSpecifics()
        table = module.get_table("files_folder")
        rows = [{"id": 1, "parent_id": 2}, {"id": 2, "parent_id": 1}]
        assert len(module.order_rows(table, rows)) == 2


class TestSelectQueries:
    def test_user_scoped_select(self) -> None:
        module = CoreModuleSpecifics()
        sql, params = module.build_select_query(1, module.get_table("core_acl"), 100, 200, ALICE)
        assert "t.tenant = :tenant_id" in sql
        assert "t.subject = :user_id" in sql
        assert "LIMIT :limit OFFSET :offset" in sql
        assert params == {"tenant_id": 1, "limit": 100, "offset": 200, "user_id": ALICE}

    def test_tenant_table_selected_by_id(self) -> None:
        module = TenantsModuleSpecifics()
        sql, params = module.build_select_query(1, module.get_table("tenants_tenants"), 10, 0, ALICE)
        assert "t.id = :tenant_id" in sql
        assert "user_id" not in params

    def test_settings_exclude_licence_key(self) -> None:
        module = CoreModuleSpecifics()
        sql, params = module.build_select_query(1, module.get_table("core_settings"), 10, 0, ALICE)
        assert "t.id <> :license_key" in sql
        assert params["license_key"] == "CustomerId"

    def test_folder_tree_joins_folders(self) -> None:
        module = FilesModuleSpecifics()
        sql, params = module.build_select_query(1, module.get_table("files_folder_tree"), 10, 0, ALICE)
        assert "INNER JOIN files_folder t1" in sql
        assert "t1.create_by = :user_id" in sql
        assert params["user_id"] == ALICE

    def test_bunch_objects_match_user_and_roots(self) -> None:
        module = FilesModuleSpecifics()
        _, params = module.build_select_query(1, module.get_table("files_bunch_objects"), 10, 0, ALICE)
        assert params["user_suffix"] == f"%{ALICE}"
        assert params["root_suffix"] == "%/"


class TestPrepareRow:
    def test_tenant_and_user_columns_are_mapped(self, mapper: ColumnMapper) -> None:
        module = WebStudioModuleSpecifics()
        table = module.get_table("webstudio_settings")
        row = {"tenantid": 1, "id": "layout", "userid": ALICE, "data": "{}"}

        prepared = module.prepare_row(mapper, table, row)

        assert prepared == {"tenantid": 2, "id": "layout", "userid": NEW_ALICE, "data": "{}"}
        assert row["tenantid"] == 1

    def test_unmapped_tenant_raises(self) -> None:
        module = WebStudioModuleSpecifics()
        table = module.get_table("webstudio_settings")
        with pytest.raises(UnmappedReferenceError):
            module.prepare_row(ColumnMapper(), table, {"tenantid": 1, "id": "x", "userid": ALICE})

    def test_unknown_user_is_kept(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        table = module.get_table("files_folder")
        row = {"id": 10, "parent_id": 0, "tenant_id": 1, "create_by": "someone", "modified_by": ALICE}

        prepared = module.prepare_row(mapper, table, row)

        assert prepared is not None
        assert prepared["create_by"] == "someone"
        assert prepared["modified_by"] == NEW_ALICE

    def test_row_with_unmapped_relation_is_skipped(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        table = module.get_table("files_file")
        row = {"id": 5, "version": 1, "folder_id": 99, "tenant_id": 1, "create_by": ALICE, "modified_by": ALICE}
        assert module.prepare_row(mapper, table, row) is None

    def test_relation_and_id_are_mapped(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        mapper.set_mapping("files_folder", "id", 10, 3)
        mapper.set_mapping("files_file", "id", 5, 8)
        table = module.get_table("files_file")
        row = {"id": 5, "version": 1, "folder_id": 10, "tenant_id": 1, "create_by": ALICE, "modified_by": ALICE}

        prepared = module.prepare_row(mapper, table, row)

        assert prepared is not None
        assert prepared["id"] == 8
        assert prepared["folder_id"] == 3
        assert prepared["tenant_id"] == 2

    def test_root_references_are_unchanged(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        table = module.get_table("files_folder")
        row = {"id": 10, "parent_id": 0, "tenant_id": 1, "create_by": ALICE, "modified_by": ALICE}
        prepared = module.prepare_row(mapper, table, row)
        assert prepared is not None
        assert prepared["parent_id"] == 0

    def test_system_group_membership_is_kept(self, mapper: ColumnMapper) -> None:
        module = CoreModuleSpecifics()
        table = module.get_table("core_usergroup")
        row = {"tenant": 1, "userid": ALICE, "groupid": ADMIN_GROUP_ID, "ref_type": 0}

        prepared = module.prepare_row(mapper, table, row)

        assert prepared is not None
        assert prepared["groupid"] == ADMIN_GROUP_ID
        assert prepared["userid"] == NEW_ALICE

    def test_custom_group_membership_is_skipped(self, mapper: ColumnMapper) -> None:
        module = CoreModuleSpecifics()
        table = module.get_table("core_usergroup")
        row = {"tenant": 1, "userid": ALICE, "groupid": "9c9c9c9c-0000-4000-8000-000000000009", "ref_type": 0}
        assert module.prepare_row(mapper, table, row) is None

    def test_user_bunch_node_is_rewritten(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        mapper.set_mapping("files_folder", "id", 10, 3)
        table = module.get_table("files_bunch_objects")
        row = {"tenant_id": 1, "right_node": f"files/my/{ALICE}", "left_node": "10"}

        prepared = module.prepare_row(mapper, table, row)

        assert prepared == {"tenant_id": 2, "right_node": f"files/my/{NEW_ALICE}", "left_node": 3}

    @pytest.mark.parametrize("value", [None, 0, "0", ""])
    def test_empty_references(self, value: object) -> None:
        assert is_empty_reference(value)

    def test_non_empty_reference(self) -> None:
        assert not is_empty_reference(10)


class TestTenantsModule:
    def test_tenant_row_updates_placeholder_by_alias(self) -> None:
        module = TenantsModuleSpecifics()
        table = module.get_table("tenants_tenants")
        assert module.find_existing_key(table, {"id": 1, "alias": "alice"}) == {"alias": "alice"}
        assert module.find_existing_key(module.get_table("core_user"), {"id": ALICE}) is None
        assert module.preserved_columns(table) == {"id", "alias", "status"}

    def test_id_types(self) -> None:
        module = TenantsModuleSpecifics()
        assert module.get_table("tenants_tenants").id_type is IdType.AUTOINCREMENT
        assert module.get_table("core_user").id_type is IdType.GUID
        assert CoreModuleSpecifics().get_table("core_acl").insert_method is InsertMethod.IGNORE


class TestFilesModule:
    def test_prepare_data_resets_thumbnails_and_drops_roots(self) -> None:
        module = FilesModuleSpecifics()
        files = module.prepare_data(
            TableSnapshot("files_file", ["id", "thumb"], [{"id": 5, "thumb": 1}])
        )
        assert files.rows == [{"id": 5, "thumb": 0}]

        bunches = module.prepare_data(
            TableSnapshot(
                "files_bunch_objects",
                ["right_node", "left_node"],
                [
                    {"right_node": f"files/my/{ALICE}", "left_node": "10"},
                    {"right_node": "files/common/", "left_node": "20"},
                ],
            )
        )
        assert [row["right_node"] for row in bunches.rows] == [f"files/my/{ALICE}"]

    def test_file_path_is_rebucketed(self, mapper: ColumnMapper) -> None:
        mapper.set_mapping("files_file", "id", 5, 1234)
        module = FilesModuleSpecifics()
        assert (
            module.try_adjust_file_path(mapper, "folder_1000/file_5/v1/content.txt")
            == "folder_2000/file_1234/v1/content.txt"
        )

    def test_unrestored_file_is_skipped(self, mapper: ColumnMapper) -> None:
        module = FilesModuleSpecifics()
        assert module.try_adjust_file_path(mapper, "folder_1000/file_5/v1/content.txt") is None

    def test_non_version_path_is_skipped(self, mapper: ColumnMapper) -> None:
        mapper.set_mapping("files_file", "id", 5, 6)
        module = FilesModuleSpecifics()
        assert module.try_adjust_file_path(mapper, "folder_1000/file_5/extra/v1/content.txt") is None

    def test_custom_table_info_defaults(self) -> None:
        table = TableInfo("files_room_settings", key_columns=("tenant_id", "room_id"))
        assert table.row_key == ("tenant_id", "room_id")
        assert not table.has_id_column
        assert table.sort_column is None
