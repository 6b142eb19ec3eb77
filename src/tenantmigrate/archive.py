"""
Archive container for extracted tenants.

An archive is a gzip-compressed tar file with three kinds of entries:

    {module}/{table}                   JSON table snapshot
    storage/{module}/{domain}/{path}   raw blob bytes (empty parts dropped)
    storage/restore_info.json          manifest of BackupFileInfo records

Writes and reads go through asyncio.to_thread so the event loop is never
blocked on disk I/O.

Example:
    >>> async with ArchiveWriter(path) as writer:
    ...     await writer.write_table("core", snapshot)
    ...     await writer.write_blob(info, data)
    ...     await writer.write_manifest([info])
    >>>
    >>> async with ArchiveReader(path) as reader:
    ...     snapshot = await reader.read_table("core", "core_user")
"""

from __future__ import annotations

import asyncio
import io
import logging
import tarfile
import time
from pathlib import Path
from types import TracebackType
from typing import Any

from tenantmigrate.exceptions import ArchiveEntryNotFoundError, ArchiveError
from tenantmigrate.models import BackupFileInfo
from tenantmigrate.serialization import TableSnapshot, json_dumps, json_loads

logger = logging.getLogger(__name__)

MANIFEST_KEY = "storage/restore_info.json"


def table_key(module: str, table: str) -> str:
    return f"{module}/{table}"


class ArchiveWriter:
    """
    Writes entries into a new tar.gz archive.

    Used as an async context manager. If the block raises, the partially
    written archive is deleted so no unusable file is left behind.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tar: tarfile.TarFile | None = None
        self._keys: set[str] = set()

    async def __aenter__(self) -> ArchiveWriter:
        await asyncio.to_thread(self._open)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await asyncio.to_thread(self._close)
        if exc_type is not None:
            logger.warning("Discarding incomplete archive %s", self.path)
            await asyncio.to_thread(self.path.unlink, True)

    def _open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._tar = tarfile.open(self.path, "w:gz")

    def _close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None

    def _add(self, key: str, data: bytes) -> None:
        if self._tar is None:
            raise ArchiveError(f"Archive {self.path} is not open for writing")
        if key in self._keys:
            raise ArchiveError(f"Duplicate archive entry: {key}", key=key)
        info = tarfile.TarInfo(name=key)
        info.size = len(data)
        info.mtime = int(time.time())
        self._tar.addfile(info, io.BytesIO(data))
        self._keys.add(key)

    async def write_entry(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._add, key, data)

    async def write_table(self, module: str, snapshot: TableSnapshot) -> None:
        """Write one table snapshot under {module}/{table}."""
        await self.write_entry(table_key(module, snapshot.table), snapshot.to_json().encode("utf-8"))

    async def write_blob(self, info: BackupFileInfo, data: bytes) -> None:
        await self.write_entry(info.archive_key, data)

    async def write_manifest(self, files: list[BackupFileInfo]) -> None:
        payload = json_dumps([info.to_dict() for info in files])
        await self.write_entry(MANIFEST_KEY, payload.encode("utf-8"))

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self._keys)


class ArchiveReader:
    """Reads entries from an archive produced by ArchiveWriter."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tar: tarfile.TarFile | None = None
        self._members: dict[str, tarfile.TarInfo] = {}

    async def __aenter__(self) -> ArchiveReader:
        await asyncio.to_thread(self._open)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await asyncio.to_thread(self._close)

    def _open(self) -> None:
        try:
            self._tar = tarfile.open(self.path, "r:gz")
        except (OSError, tarfile.TarError) as e:
            raise ArchiveError(f"Cannot open archive {self.path}: {e}", path=str(self.path)) from e
        self._members = {member.name: member for member in self._tar.getmembers() if member.isfile()}

    def _close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None

    def _extract(self, key: str) -> bytes:
        if self._tar is None:
            raise ArchiveError(f"Archive {self.path} is not open for reading")
        member = self._members.get(key)
        if member is None:
            raise ArchiveEntryNotFoundError(key)
        stream = self._tar.extractfile(member)
        if stream is None:
            raise ArchiveEntryNotFoundError(key)
        with stream:
            return stream.read()

    def has_entry(self, key: str) -> bool:
        return key in self._members

    @property
    def keys(self) -> list[str]:
        return list(self._members)

    async def read_entry(self, key: str) -> bytes:
        """
        Read one entry.

        Raises:
            ArchiveEntryNotFoundError: If the key is not in the archive.
        """
        return await asyncio.to_thread(self._extract, key)

    async def read_table(self, module: str, table: str) -> TableSnapshot | None:
        """Read a table snapshot, or None if the table was not archived."""
        key = table_key(module, table)
        if not self.has_entry(key):
            return None
        return TableSnapshot.from_json(await self.read_entry(key))

    async def read_blob(self, info: BackupFileInfo) -> bytes:
        return await self.read_entry(info.archive_key)

    async def read_manifest(self) -> list[BackupFileInfo]:
        """Read the blob manifest; an archive without one has no blobs."""
        if not self.has_entry(MANIFEST_KEY):
            return []
        records = json_loads(await self.read_entry(MANIFEST_KEY))
        return [BackupFileInfo.from_dict(record) for record in records]


__all__ = ["ArchiveWriter", "ArchiveReader", "MANIFEST_KEY", "table_key"]
