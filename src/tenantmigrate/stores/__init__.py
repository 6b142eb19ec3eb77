"""Relational store access per region."""

from tenantmigrate.stores._connection import execute_with_connection
from tenantmigrate.stores.directory import RegionDirectory
from tenantmigrate.stores.factory import DEFAULT_REGION, StoreFactory

__all__ = ["StoreFactory", "DEFAULT_REGION", "RegionDirectory", "execute_with_connection"]
