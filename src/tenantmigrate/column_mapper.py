"""
ColumnMapper - Maps identifiers from the source tenant onto the destination.

Every row replayed into the destination may receive a fresh identifier. The
mapper records `(table, column, old value) -> new value` so later rows (and
blob paths) referring to the old identifier can be rewritten.

Mappings are recorded into a pending layer first. `commit()` makes them
permanent once the row they belong to has been written, `rollback()` throws
away whatever a failed attempt recorded. Committed mappings never change.

Usage:
    >>> mapper = ColumnMapper()
    >>> mapper.set_tenant_mapping(from_tenant=7, to_tenant=12)
    >>> mapper.set_mapping("core_user", "id", "u-old", "u-new")
    >>> mapper.commit()
    >>> mapper.get_mapping("core_user", "id", "u-old")
    'u-new'
"""

from __future__ import annotations

import logging
from typing import Any

from tenantmigrate.exceptions import ColumnMappingError, UnmappedReferenceError

logger = logging.getLogger(__name__)

TENANT_TABLE = "tenants_tenants"
TENANT_COLUMN = "id"

_Key = tuple[str, str, str]


def _key(table: str, column: str, old_value: Any) -> _Key:
    # Values arrive both as ints and as their string form (e.g. ids parsed
    # out of blob paths), so lookups are keyed on the string form.
    return (table.lower(), column.lower(), str(old_value))


class ColumnMapper:
    """
    Two-layer identifier map used during a single restore.

    Attributes:
        _committed: Mappings for rows that are durably written.
        _pending: Mappings recorded since the last commit or rollback.
    """

    def __init__(self) -> None:
        self._committed: dict[_Key, Any] = {}
        self._pending: dict[_Key, Any] = {}

    def set_mapping(self, table: str, column: str, old_value: Any, new_value: Any) -> None:
        """
        Record a pending mapping.

        Raises:
            ColumnMappingError: If the key is committed to a different value.
        """
        key = _key(table, column, old_value)
        if key in self._committed:
            existing = self._committed[key]
            if existing != new_value:
                raise ColumnMappingError(table, column, old_value, existing, new_value)
            return
        self._pending[key] = new_value

    def get_mapping(self, table: str, column: str, old_value: Any) -> Any | None:
        """Return the mapped value, pending entries first, or None."""
        key = _key(table, column, old_value)
        if key in self._pending:
            return self._pending[key]
        return self._committed.get(key)

    def has_mapping(self, table: str, column: str, old_value: Any) -> bool:
        key = _key(table, column, old_value)
        return key in self._pending or key in self._committed

    def discard_mapping(self, table: str, column: str, old_value: Any) -> None:
        """Forget a pending mapping; committed ones stay."""
        self._pending.pop(_key(table, column, old_value), None)

    def set_tenant_mapping(self, from_tenant: int, to_tenant: int) -> None:
        self.set_mapping(TENANT_TABLE, TENANT_COLUMN, from_tenant, to_tenant)

    def get_tenant_mapping(self, from_tenant: int) -> int | None:
        value = self.get_mapping(TENANT_TABLE, TENANT_COLUMN, from_tenant)
        return None if value is None else int(value)

    def require_tenant_mapping(self, table: str, column: str, from_tenant: int) -> int:
        """
        Map a tenant id or fail.

        Raises:
            UnmappedReferenceError: If no tenant mapping exists for from_tenant.
        """
        value = self.get_tenant_mapping(from_tenant)
        if value is None:
            raise UnmappedReferenceError(table, column, from_tenant)
        return value

    def commit(self) -> None:
        """Promote pending mappings to committed."""
        for key, value in self._pending.items():
            existing = self._committed.get(key)
            if existing is not None and existing != value:
                raise ColumnMappingError(key[0], key[1], key[2], existing, value)
            self._committed[key] = value
        self._pending.clear()

    def rollback(self) -> None:
        """Discard pending mappings."""
        if self._pending:
            logger.debug("Discarding %d pending column mappings", len(self._pending))
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def committed_count(self) -> int:
        return len(self._committed)


__all__ = ["ColumnMapper", "TENANT_TABLE", "TENANT_COLUMN"]
