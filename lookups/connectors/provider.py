"""
Connector Cache
===============

One reusable SQLConnector per lookup entry, created on first use.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, Optional

from ..namespace import ConnectorConfig, SQLLookupNamespace
from .sql_connector import SQLConnector

logger = logging.getLogger(__name__)


class ConnectorCache:
    """
    Memoizes connectors by entry identity.

    Connectors are never refreshed: a change to the URI or credentials of an
    entry is only picked up after ``discard`` is called for it.
    """

    def __init__(self, connector_factory: Optional[Callable[[ConnectorConfig], SQLConnector]] = None):
        self._connector_factory = connector_factory or SQLConnector
        self._connectors: Dict[Hashable, SQLConnector] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._connectors)

    def __contains__(self, entry: Hashable) -> bool:
        return entry in self._connectors

    def ensure_connector(self, entry: Hashable, namespace: SQLLookupNamespace) -> SQLConnector:
        """
        Return the entry's connector, creating it if needed.

        Concurrent callers may each build a connector; only the first one
        stored is kept and returned to all of them.

        Args:
            entry: Entry identity
            namespace: Lookup definition holding the connection parameters

        Returns:
            The connector retained for ``entry``
        """
        connector = self._connectors.get(entry)
        if connector is not None:
            return connector

        new_connector = self._connector_factory(namespace.connector_config)
        with self._lock:
            connector = self._connectors.setdefault(entry, new_connector)
        if connector is new_connector:
            logger.debug(f"Created connector for {entry}: {connector!r}")
        return connector

    def discard(self, entry: Hashable) -> bool:
        """
        Drop and dispose the connector of an entry that was removed.

        Returns:
            True if a connector was cached for the entry
        """
        with self._lock:
            connector = self._connectors.pop(entry, None)
        if connector is None:
            return False
        connector.dispose()
        return True

    def close_all(self):
        """Dispose every cached connector."""
        with self._lock:
            connectors = list(self._connectors.values())
            self._connectors.clear()
        for connector in connectors:
            connector.dispose()
        logger.info(f"Closed {len(connectors)} connector(s)")
