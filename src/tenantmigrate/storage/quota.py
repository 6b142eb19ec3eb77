"""Per-tenant storage quota accounting."""

from __future__ import annotations

import logging

from tenantmigrate.exceptions import QuotaExceededError

logger = logging.getLogger(__name__)


class TenantQuotaController:
    """
    Counts bytes written to a tenant's storage against a limit.

    Args:
        tenant_id: Tenant being charged.
        max_total_size: Limit in bytes; None means unlimited.
        used: Bytes already in use.
    """

    def __init__(self, tenant_id: int, max_total_size: int | None = None, used: int = 0) -> None:
        self.tenant_id = tenant_id
        self.max_total_size = max_total_size
        self._used = used

    @property
    def used(self) -> int:
        return self._used

    def quota_used_add(self, module: str, domain: str, size: int) -> None:
        if self.max_total_size is not None and self._used + size > self.max_total_size:
            raise QuotaExceededError(
                f"storage of tenant {self.tenant_id}",
                self._used + size,
                self.max_total_size,
            )
        self._used += size
        logger.debug("Tenant %d %s/%s usage now %d bytes", self.tenant_id, module, domain, self._used)


__all__ = ["TenantQuotaController"]
