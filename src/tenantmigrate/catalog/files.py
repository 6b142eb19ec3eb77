"""
Files module: folders, files and the links between them.

Blobs of the "files" storage module live under the bucketed directory of
their file id (folder_{bucket}/file_{id}/v{version}/{name}); restoring them
rewrites the file id through the files_file mapping.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from tenantmigrate.catalog.base import (
    USER_ID_COLUMN,
    USER_TABLE,
    IdType,
    ModuleName,
    ModuleSpecifics,
    RelationInfo,
    TableInfo,
)
from tenantmigrate.column_mapper import ColumnMapper
from tenantmigrate.models import bucket_directory
from tenantmigrate.serialization import TableSnapshot

logger = logging.getLogger(__name__)

FILES_STORAGE_MODULE = "files"

# Bunch right nodes addressing a per-user root folder
USER_BUNCH_PREFIXES = ("files/my/", "files/trash/", "files/privacy/")

_FILE_PATH = re.compile(r"^folder_\d+/file_(?P<file_id>\d+)/(?P<version_path>v\d+/[.\w]+)$")


def _is_user_bunch(row: dict[str, Any]) -> bool:
    return str(row.get("right_node", "")).startswith(USER_BUNCH_PREFIXES)


class FilesModuleSpecifics(ModuleSpecifics):
    name = ModuleName.FILES
    storage_modules = (FILES_STORAGE_MODULE,)

    tables = (
        TableInfo(
            "files_folder",
            tenant_column="tenant_id",
            id_column="id",
            id_type=IdType.AUTOINCREMENT,
            user_id_columns=("create_by", "modified_by"),
            owner_column="create_by",
            date_columns=("create_on", "modified_on"),
        ),
        TableInfo(
            "files_file",
            tenant_column="tenant_id",
            id_column="id",
            id_type=IdType.INTEGER,
            user_id_columns=("create_by", "modified_by"),
            owner_column="create_by",
            date_columns=("create_on", "modified_on"),
            key_columns=("tenant_id", "id", "version"),
        ),
        TableInfo("files_bunch_objects", tenant_column="tenant_id", key_columns=("tenant_id", "right_node"), order_by="right_node"),
        TableInfo("files_folder_tree", key_columns=("parent_id", "folder_id"), order_by="folder_id"),
        TableInfo(
            "files_security",
            tenant_column="tenant_id",
            user_id_columns=("owner",),
            owner_column="owner",
            key_columns=("tenant_id", "entry_id", "entry_type", "subject"),
            order_by="entry_id",
        ),
        TableInfo(
            "files_thirdparty_account",
            tenant_column="tenant_id",
            id_column="id",
            id_type=IdType.AUTOINCREMENT,
            user_id_columns=("user_id",),
            owner_column="user_id",
            date_columns=("create_on",),
        ),
        TableInfo("files_thirdparty_id_mapping", tenant_column="tenant_id", key_columns=("hash_id",), order_by="hash_id"),
        TableInfo("files_room_settings", tenant_column="tenant_id", key_columns=("tenant_id", "room_id"), order_by="room_id"),
    )

    relations = (
        RelationInfo("files_folder", "id", "files_folder", "parent_id"),
        RelationInfo("files_folder", "id", "files_file", "folder_id"),
        RelationInfo("files_folder", "id", "files_folder_tree", "folder_id"),
        RelationInfo("files_folder", "id", "files_folder_tree", "parent_id"),
        RelationInfo("files_folder", "id", "files_bunch_objects", "left_node"),
        RelationInfo(USER_TABLE, USER_ID_COLUMN, "files_bunch_objects", "right_node", _is_user_bunch),
        RelationInfo("files_folder", "id", "files_room_settings", "room_id"),
        RelationInfo(USER_TABLE, USER_ID_COLUMN, "files_security", "subject"),
        RelationInfo("files_thirdparty_account", "id", "files_thirdparty_id_mapping", "id"),
    )

    def select_condition(
        self, table: TableInfo, params: dict[str, Any], user_id: str | None
    ) -> str:
        if table.name == "files_folder_tree":
            condition = "INNER JOIN files_folder t1 ON t1.id = t.folder_id WHERE t1.tenant_id = :tenant_id"
            if user_id is not None:
                condition += " AND t1.create_by = :user_id"
                params["user_id"] = user_id
            return condition

        if table.name == "files_bunch_objects" and user_id is not None:
            params["user_suffix"] = f"%{user_id}"
            params["root_suffix"] = "%/"
            return (
                "WHERE t.tenant_id = :tenant_id "
                "AND (t.right_node LIKE :user_suffix OR t.right_node LIKE :root_suffix)"
            )

        return super().select_condition(table, params, user_id)

    def prepare_data(self, snapshot: TableSnapshot) -> TableSnapshot:
        if snapshot.table == "files_file":
            for row in snapshot.rows:
                row["thumb"] = 0
        elif snapshot.table == "files_bunch_objects":
            # Bare directory roots are recreated by the destination.
            snapshot.rows = [
                row for row in snapshot.rows if not str(row.get("right_node", "")).endswith("/")
            ]
        return snapshot

    def map_relation(self, mapper: ColumnMapper, relation: RelationInfo, value: Any) -> Any | None:
        if relation.child_table == "files_bunch_objects" and relation.child_column == "right_node":
            node = str(value)
            prefix = next(p for p in USER_BUNCH_PREFIXES if node.startswith(p))
            user_id = mapper.get_mapping(relation.parent_table, relation.parent_column, node[len(prefix) :])
            return None if user_id is None else f"{prefix}{user_id}"
        return super().map_relation(mapper, relation, value)

    def try_adjust_file_path(self, mapper: ColumnMapper, path: str) -> str | None:
        match = _FILE_PATH.match(path.replace("\\", "/"))
        if match is None:
            logger.debug("Blob path %s does not address a file version", path)
            return None

        file_id = mapper.get_mapping("files_file", "id", match.group("file_id"))
        if file_id is None:
            logger.warning("Blob %s belongs to a file that was not restored", path)
            return None

        return f"{bucket_directory(int(file_id))}/{match.group('version_path')}"


__all__ = ["FilesModuleSpecifics", "FILES_STORAGE_MODULE"]
