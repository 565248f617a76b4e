"""
SQL Lookup Cache
================

Keeps named key/value lookups fresh in memory from relational tables.

Supports:
- Full Load: Read every (key, value) row of the lookup table
- Incremental Load: Read only rows whose timestamp column moved past the
  last known version and overlay them onto the previous generation

The refresh decision is driven by the table's watermark (MAX of the
timestamp column), so an unchanged table is never rescanned.
"""

from .cache import CacheScheduler, LookupEntry, VersionedCache
from .generator import SQLCacheGenerator
from .namespace import ConnectorConfig, SQLLookupNamespace

__version__ = "1.0.0"
__all__ = [
    "CacheScheduler",
    "LookupEntry",
    "VersionedCache",
    "SQLCacheGenerator",
    "ConnectorConfig",
    "SQLLookupNamespace",
]
