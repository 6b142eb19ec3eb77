"""
In-memory blob store.

Useful for tests and development. Stores of the same
(region, tenant, module) returned by the factory share their contents.
"""

from __future__ import annotations

import fnmatch

from tenantmigrate.storage.interface import QuotaController, normalize_path


class InMemoryBlobStore:
    """
    Blob store keeping files in a dict keyed by (domain, path).

    Attributes:
        failing_paths: Paths whose reads raise OSError, for exercising
            retry and failure handling.
    """

    def __init__(
        self,
        tenant_id: int,
        module: str,
        quota_controller: QuotaController | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.module = module
        self._files: dict[tuple[str, str], bytes] = {}
        self._quota_controller = quota_controller
        self.failing_paths: set[str] = set()
        self.read_attempts: dict[str, int] = {}

    @property
    def quota_controller(self) -> QuotaController | None:
        return self._quota_controller

    def set_quota_controller(self, controller: QuotaController | None) -> None:
        self._quota_controller = controller

    async def list_files_relative(
        self,
        domain: str,
        path: str,
        pattern: str = "*",
        recursive: bool = True,
    ) -> list[str]:
        prefix = normalize_path(path)
        found = []
        for file_domain, file_path in sorted(self._files):
            if file_domain != domain:
                continue
            if prefix and not file_path.startswith(prefix + "/"):
                continue
            relative = file_path[len(prefix) + 1 :] if prefix else file_path
            if not recursive and "/" in relative:
                continue
            if fnmatch.fnmatch(relative.rsplit("/", 1)[-1], pattern):
                found.append(relative)
        return found

    async def read(self, domain: str, path: str) -> bytes:
        key = normalize_path(path)
        self.read_attempts[key] = self.read_attempts.get(key, 0) + 1
        if key in self.failing_paths:
            raise OSError(f"Simulated read failure for {key}")
        try:
            return self._files[(domain, key)]
        except KeyError:
            raise FileNotFoundError(f"{self.module}/{domain}/{key}") from None

    async def save(self, domain: str, path: str, data: bytes) -> None:
        if self._quota_controller is not None:
            self._quota_controller.quota_used_add(self.module, domain, len(data))
        self._files[(domain, normalize_path(path))] = bytes(data)

    async def exists(self, domain: str, path: str) -> bool:
        return (domain, normalize_path(path)) in self._files

    def files(self) -> dict[str, bytes]:
        """Snapshot of stored files keyed by "domain/path" (domain omitted when empty)."""
        return {normalize_path(domain, path): data for (domain, path), data in self._files.items()}


class InMemoryBlobStoreFactory:
    """Factory handing out one InMemoryBlobStore per (region, tenant, module)."""

    def __init__(self) -> None:
        self._stores: dict[tuple[str, int, str], InMemoryBlobStore] = {}

    def get_storage(self, tenant_id: int, module: str, region: str = "") -> InMemoryBlobStore:
        key = (region, tenant_id, module)
        store = self._stores.get(key)
        if store is None:
            store = InMemoryBlobStore(tenant_id, module)
            self._stores[key] = store
        return store


__all__ = ["InMemoryBlobStore", "InMemoryBlobStoreFactory"]
