"""
Filesystem blob store.

Layout: {root}/{region or "default"}/{tenant_id}/{module}/{domain}/{path}.
File I/O runs in worker threads through asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
from pathlib import Path

from tenantmigrate.storage.interface import QuotaController, normalize_path

logger = logging.getLogger(__name__)

DEFAULT_REGION_DIR = "default"


class LocalBlobStore:
    """Blob store rooted at a directory on the local filesystem."""

    def __init__(
        self,
        root: Path,
        tenant_id: int,
        module: str,
        quota_controller: QuotaController | None = None,
    ) -> None:
        self.root = root
        self.tenant_id = tenant_id
        self.module = module
        self._quota_controller = quota_controller

    @property
    def quota_controller(self) -> QuotaController | None:
        return self._quota_controller

    def set_quota_controller(self, controller: QuotaController | None) -> None:
        self._quota_controller = controller

    def _resolve(self, domain: str, path: str = "") -> Path:
        relative = normalize_path(domain, path)
        return self.root / relative if relative else self.root

    def _list(self, base: Path, pattern: str, recursive: bool) -> list[str]:
        if not base.is_dir():
            return []
        found = []
        if recursive:
            for directory, _, filenames in os.walk(base):
                for filename in filenames:
                    if fnmatch.fnmatch(filename, pattern):
                        found.append((Path(directory) / filename).relative_to(base).as_posix())
        else:
            found = [entry.name for entry in base.iterdir() if entry.is_file() and fnmatch.fnmatch(entry.name, pattern)]
        return sorted(found)

    async def list_files_relative(
        self,
        domain: str,
        path: str,
        pattern: str = "*",
        recursive: bool = True,
    ) -> list[str]:
        return await asyncio.to_thread(self._list, self._resolve(domain, path), pattern, recursive)

    async def read(self, domain: str, path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(domain, path).read_bytes)

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)

    async def save(self, domain: str, path: str, data: bytes) -> None:
        if self._quota_controller is not None:
            self._quota_controller.quota_used_add(self.module, domain, len(data))
        await asyncio.to_thread(self._write, self._resolve(domain, path), data)

    async def exists(self, domain: str, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(domain, path).is_file)


class LocalBlobStoreFactory:
    """
    Creates LocalBlobStore instances under a shared root directory.

    Stores are cached so a detached quota controller stays detached for
    every caller until it is reattached.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._stores: dict[tuple[str, int, str], LocalBlobStore] = {}

    def get_storage(self, tenant_id: int, module: str, region: str = "") -> LocalBlobStore:
        key = (region, tenant_id, module)
        store = self._stores.get(key)
        if store is None:
            base = self.root / (region or DEFAULT_REGION_DIR) / str(tenant_id) / module
            store = LocalBlobStore(base, tenant_id, module)
            self._stores[key] = store
            logger.debug("Opened blob store %s", base)
        return store


__all__ = ["LocalBlobStore", "LocalBlobStoreFactory"]
