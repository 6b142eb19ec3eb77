"""
Blob store interfaces.

A blob store is addressed per (tenant, storage module, region) and holds
files under a domain and a "/"-separated relative path. Writes are charged
to an optional quota controller that can be detached while usage that was
already accounted for elsewhere is replayed.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class QuotaController(Protocol):
    """Tracks and limits the bytes written to one tenant's storage."""

    def quota_used_add(self, module: str, domain: str, size: int) -> None:
        """
        Charge size bytes to the tenant.

        Raises:
            QuotaExceededError: If the write would exceed the limit.
        """
        ...

    @property
    def used(self) -> int: ...


@runtime_checkable
class BlobStore(Protocol):
    """Blob storage of one tenant and storage module."""

    tenant_id: int
    module: str

    async def list_files_relative(
        self,
        domain: str,
        path: str,
        pattern: str = "*",
        recursive: bool = True,
    ) -> list[str]:
        """Paths of files under path, relative to path."""
        ...

    async def read(self, domain: str, path: str) -> bytes:
        """
        Read a blob.

        Raises:
            FileNotFoundError: If the blob does not exist.
        """
        ...

    async def save(self, domain: str, path: str, data: bytes) -> None:
        """Write a blob, replacing an existing one."""
        ...

    async def exists(self, domain: str, path: str) -> bool: ...

    @property
    def quota_controller(self) -> QuotaController | None: ...

    def set_quota_controller(self, controller: QuotaController | None) -> None: ...


class BlobStoreFactory(Protocol):
    """Resolves the blob store of a tenant's storage module in a region."""

    def get_storage(self, tenant_id: int, module: str, region: str = "") -> BlobStore: ...


def normalize_path(*parts: str) -> str:
    """Join path parts with "/", dropping empty parts and stray separators."""
    pieces: list[str] = []
    for part in parts:
        pieces.extend(piece for piece in part.replace("\\", "/").split("/") if piece and piece != ".")
    if ".." in pieces:
        raise ValueError(f"Path escapes its root: {'/'.join(parts)}")
    return "/".join(pieces)


__all__ = ["QuotaController", "BlobStore", "BlobStoreFactory", "normalize_path"]
