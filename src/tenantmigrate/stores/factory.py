"""
StoreFactory - maps a region name to that region's relational store.

The factory holds no notion of a "current" region; every caller names the
region it wants. Engines are created lazily and cached per region.

Example:
    >>> factory = StoreFactory({"": "sqlite+aiosqlite:///home.db", "eu": "sqlite+aiosqlite:///eu.db"})
    >>> async with factory.open("eu") as conn:
    ...     await conn.execute(text("SELECT 1"))
    >>> await factory.dispose()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from tenantmigrate.exceptions import UnknownRegionError
from tenantmigrate.stores._connection import execute_with_connection

logger = logging.getLogger(__name__)

DEFAULT_REGION = ""


class StoreFactory:
    """
    Resolves region names to async SQLAlchemy engines.

    Args:
        region_urls: Database URL per region. The empty string names the
            default (home) region.
        echo: Echo SQL statements (debugging).
    """

    def __init__(self, region_urls: Mapping[str, str], *, echo: bool = False) -> None:
        self._urls = dict(region_urls)
        self._echo = echo
        self._engines: dict[str, AsyncEngine] = {}

    @classmethod
    def from_engines(cls, engines: Mapping[str, AsyncEngine]) -> StoreFactory:
        """Build a factory around engines created elsewhere (tests, embedding)."""
        factory = cls(
            {
                region: engine.url.render_as_string(hide_password=False)
                for region, engine in engines.items()
            }
        )
        factory._engines.update(engines)
        return factory

    @property
    def regions(self) -> list[str]:
        return sorted(self._urls)

    def engine(self, region: str = DEFAULT_REGION) -> AsyncEngine:
        """
        Get the engine for a region.

        Raises:
            UnknownRegionError: If the region has no configured URL.
        """
        engine = self._engines.get(region)
        if engine is not None:
            return engine
        url = self._urls.get(region)
        if url is None:
            raise UnknownRegionError(region)
        logger.debug("Creating engine for region %r", region or "default")
        engine = create_async_engine(url, echo=self._echo)
        self._engines[region] = engine
        return engine

    @asynccontextmanager
    async def open(
        self, region: str = DEFAULT_REGION, transactional: bool = True
    ) -> AsyncIterator[AsyncConnection]:
        """Open a connection (or transaction) on a region's store."""
        async with execute_with_connection(self.engine(region), transactional) as conn:
            yield conn

    async def dispose(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()


__all__ = ["StoreFactory", "DEFAULT_REGION"]
