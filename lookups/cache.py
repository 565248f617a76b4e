"""
Versioned Caches
================

In-memory cache generations and the scheduler that owns them.

A generation is a ``str -> str`` dict tagged with a version. The scheduler
keeps the current generation of every entry, builds new empty or derived
generations for the generator to fill, and swaps finished ones in.
"""

import logging
import threading
from typing import Callable, Dict, Mapping, Optional

from .errors import CacheClosedError
from .namespace import SQLLookupNamespace

logger = logging.getLogger(__name__)


class LookupEntry:
    """
    Identity of one configured lookup.

    Equality is identity: two entries with the same name are still two
    entries.
    """

    def __init__(self, name: str, namespace: SQLLookupNamespace):
        self.name = name
        self.namespace = namespace

    def __repr__(self) -> str:
        return f"LookupEntry({self.name})"


class VersionedCache:
    """A cache generation: key/value contents plus the version they reflect."""

    def __init__(self, entry: LookupEntry, version: str, contents: Optional[Mapping[str, str]] = None):
        self.entry = entry
        self.version = version
        self._cache: Dict[str, str] = dict(contents or {})
        self._closed = False

    def __repr__(self) -> str:
        return f"VersionedCache({self.entry.name}, version={self.version}, size={len(self._cache)})"

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, key: str, value: str):
        if self._closed:
            raise CacheClosedError(f"Cannot write to closed cache {self!r}")
        self._cache[key] = value

    def get_cache(self) -> Dict[str, str]:
        """Live mapping of this generation."""
        return self._cache

    def close(self):
        """Release the generation's contents. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._cache.clear()
        logger.debug(f"Closed cache for {self.entry.name} at version {self.version}")


class CacheScheduler:
    """
    Holds the current generation of each entry.

    The generator asks for new generations through ``create_versioned_cache``
    and ``create_derived_versioned_cache``; callers publish results with
    ``swap`` or let ``refresh`` do both steps.
    """

    def __init__(self):
        self._current: Dict[LookupEntry, VersionedCache] = {}
        self._lock = threading.Lock()

    def create_versioned_cache(self, entry: LookupEntry, version: str) -> VersionedCache:
        """Create an empty generation for ``entry``."""
        return VersionedCache(entry, version)

    def create_derived_versioned_cache(
        self,
        entry: LookupEntry,
        version: str,
        delta: Mapping[str, str]
    ) -> VersionedCache:
        """
        Create a generation that copies the entry's current contents and
        overlays ``delta`` on them.

        Keys absent from ``delta`` keep their previous value. When the entry
        has no current generation the result holds only ``delta``.
        """
        with self._lock:
            previous = self._current.get(entry)
            contents = dict(previous.get_cache()) if previous is not None else {}
        contents.update(delta)
        return VersionedCache(entry, version, contents)

    def current(self, entry: LookupEntry) -> Optional[VersionedCache]:
        return self._current.get(entry)

    def current_version(self, entry: LookupEntry) -> Optional[str]:
        cache = self._current.get(entry)
        return cache.version if cache is not None else None

    def swap(self, entry: LookupEntry, cache: VersionedCache):
        """Publish ``cache`` as the entry's current generation and close the old one."""
        with self._lock:
            previous = self._current.get(entry)
            self._current[entry] = cache
        if previous is not None and previous is not cache:
            previous.close()
        logger.info(f"Swapped in version {cache.version} for {entry.name} ({len(cache.get_cache())} entries)")

    def refresh(
        self,
        entry: LookupEntry,
        generate: Callable[..., Optional[VersionedCache]],
        last_version: Optional[str] = None
    ) -> Optional[VersionedCache]:
        """
        Run one refresh of ``entry`` and publish the result.

        Args:
            entry: Lookup entry to refresh
            generate: Callable with the signature of
                ``SQLCacheGenerator.generate_cache``
            last_version: Version to refresh from; defaults to the version of
                the current generation

        Returns:
            The new generation, or None when no update was needed
        """
        if last_version is None:
            last_version = self.current_version(entry)
        cache = generate(entry.namespace, entry, last_version, self)
        if cache is not None:
            self.swap(entry, cache)
        return cache

    def remove(self, entry: LookupEntry) -> bool:
        """Forget the entry and close its current generation."""
        with self._lock:
            previous = self._current.pop(entry, None)
        if previous is None:
            return False
        previous.close()
        return True
