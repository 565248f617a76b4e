"""
Lookup Cache Generator
======================

Builds new cache generations for SQL lookups.

A refresh compares the table's watermark with the last version handed out:
- unchanged table: nothing is read and None is returned
- first load, or no timestamp column: Full Load into an empty generation
- otherwise: Incremental Load of the rows changed since the last version,
  overlaid onto the previous generation
"""

import logging
import threading
import time
from contextlib import closing, nullcontext
from typing import Callable, Hashable, Iterable, Optional, Tuple

from observability.logging.structured_logger import log_context
from observability.metrics.collector import LookupMetrics

from .cache import CacheScheduler, VersionedCache
from .connectors.provider import ConnectorCache
from .namespace import SQLLookupNamespace
from .queries import build_incremental_lookup_query, build_lookup_query
from .watermark import latest_update

logger = logging.getLogger(__name__)

# Lower bound used when no version is known yet
MIN_INSTANT = -(2 ** 63) // 2

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"
MODE_SKIPPED = "skipped"


class SQLCacheGenerator:
    """
    Generates versioned caches from a lookup table.

    Versions are epoch milliseconds rendered as decimal strings: the table
    watermark when one is available, otherwise the time the query started.
    """

    def __init__(
        self,
        connectors: Optional[ConnectorCache] = None,
        metrics: Optional[LookupMetrics] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the generator.

        Args:
            connectors: Connector cache (a private one by default)
            metrics: Optional metrics collector
            clock: Returns the current time in seconds, used for query-start
                versions
        """
        self.connectors = connectors if connectors is not None else ConnectorCache()
        self.metrics = metrics
        self._clock = clock
        self._last_query_start = MIN_INSTANT
        self._lock = threading.Lock()

    def _query_start(self) -> int:
        # Strictly increasing even if the clock stalls or steps back
        now = int(self._clock() * 1000)
        with self._lock:
            now = max(now, self._last_query_start + 1)
            self._last_query_start = now
        return now

    def generate_cache(
        self,
        namespace: SQLLookupNamespace,
        entry: Hashable,
        last_version: Optional[str],
        scheduler: CacheScheduler
    ) -> Optional[VersionedCache]:
        """
        Refresh one lookup entry.

        Args:
            namespace: Lookup definition
            entry: Entry identity
            last_version: Version of the entry's current generation, None on
                first load
            scheduler: Framework side creating cache generations

        Returns:
            New fully populated generation, or None when the table has not
            changed since ``last_version``
        """
        name = getattr(entry, "name", str(entry))
        with log_context(lookup=name):
            try:
                return self._generate(namespace, entry, last_version, scheduler, name)
            except Exception as e:
                logger.error(f"✗ Refresh of {name} failed: {e}")
                if self.metrics:
                    self.metrics.record_failure(name)
                raise

    def _generate(
        self,
        namespace: SQLLookupNamespace,
        entry: Hashable,
        last_version: Optional[str],
        scheduler: CacheScheduler,
        name: str
    ) -> Optional[VersionedCache]:
        last_check = MIN_INSTANT if last_version is None else int(last_version)
        last_db_update = latest_update(entry, namespace, self.connectors)
        if last_db_update is not None and last_db_update <= last_check:
            logger.debug(f"No update for {name}: last db update {last_db_update} <= last check {last_check}")
            if self.metrics:
                self.metrics.record_refresh(name, MODE_SKIPPED)
            return None

        query_start = self._query_start()
        connector = self.connectors.ensure_connector(entry, namespace)
        logger.debug(f"Updating {entry}")

        incremental = (
            last_db_update is not None
            and namespace.supports_incremental
            and last_version is not None
        )
        if incremental:
            mode = MODE_INCREMENTAL
            new_version = str(last_db_update)
            query = build_incremental_lookup_query(
                namespace.table,
                namespace.filter,
                namespace.key_column,
                namespace.value_column,
                namespace.ts_column,
                last_check
            )
        else:
            logger.info(
                f"Not doing incremental load since last db update: {last_db_update}, "
                f"ts column: {namespace.ts_column}, last version: {last_version}, last check: {last_check}"
            )
            mode = MODE_FULL
            # With a watermark the version is the last db update, so the next
            # incremental load reads every row changed after it.
            new_version = str(last_db_update) if last_db_update is not None else str(query_start)
            query = build_lookup_query(
                namespace.table,
                namespace.filter,
                namespace.key_column,
                namespace.value_column
            )

        timer = self.metrics.timed(name, mode) if self.metrics else nullcontext()
        with timer, closing(connector.stream_pairs(query)) as pairs:
            versioned_cache, rows = self._populate(entry, new_version, pairs, scheduler, incremental)

        if self.metrics:
            self.metrics.record_refresh(name, mode, rows, len(versioned_cache.get_cache()))
        return versioned_cache

    def _populate(
        self,
        entry: Hashable,
        new_version: str,
        pairs: Iterable[Tuple[Optional[str], Optional[str]]],
        scheduler: CacheScheduler,
        incremental: bool
    ) -> Tuple[VersionedCache, int]:
        versioned_cache = None
        try:
            if incremental:
                new_entries = {}
                rows = _load_pairs(pairs, new_entries.__setitem__)
                logger.info(f"Found {rows} new incremental entries")
                versioned_cache = scheduler.create_derived_versioned_cache(entry, new_version, new_entries)
            else:
                versioned_cache = scheduler.create_versioned_cache(entry, new_version)
                rows = _load_pairs(pairs, versioned_cache.put)
                logger.info(f"✓ Finished loading {len(versioned_cache.get_cache())} values for {entry}")
            return versioned_cache, rows
        except Exception as e:
            if versioned_cache is not None:
                _close_after_failure(versioned_cache, e)
            raise


def _load_pairs(pairs: Iterable[Tuple[Optional[str], Optional[str]]], put: Callable[[str, str], None]) -> int:
    """Feed rows to ``put`` in order, so the last row of a duplicated key wins."""
    rows = 0
    skipped = 0
    for key, value in pairs:
        rows += 1
        if key is None:
            skipped += 1
            continue
        put(key, value)
    if skipped:
        logger.warning(f"Skipped {skipped} row(s) with a NULL key")
    return rows


def _close_after_failure(versioned_cache: VersionedCache, error: Exception):
    try:
        versioned_cache.close()
    except Exception as close_error:
        logger.warning(f"Failed to close {versioned_cache!r} after refresh failure: {close_error}")
        error.add_note(f"Closing the partially built cache also failed: {close_error!r}")
