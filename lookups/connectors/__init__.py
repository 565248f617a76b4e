"""
Lookup Connectors
=================

Source connectors and their per-entry cache for the lookup generator.
"""

from .sql_connector import SQLConnector
from .provider import ConnectorCache

__all__ = ["SQLConnector", "ConnectorCache"]
