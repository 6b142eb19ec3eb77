"""WebStudio module: per-user portal settings."""

from tenantmigrate.catalog.base import ModuleName, ModuleSpecifics, TableInfo


class WebStudioModuleSpecifics(ModuleSpecifics):
    name = ModuleName.WEBSTUDIO

    tables = (
        TableInfo(
            "webstudio_settings",
            tenant_column="tenantid",
            user_id_columns=("userid",),
            owner_column="userid",
            key_columns=("tenantid", "id", "userid"),
            order_by="id",
        ),
    )


__all__ = ["WebStudioModuleSpecifics"]
