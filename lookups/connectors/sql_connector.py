"""
SQL Source Connector
====================

Connector for reading lookup rows from any database SQLAlchemy can reach.
Wraps an Engine, which pools physical connections, so one connector can be
shared by every refresh of a lookup.
"""

import logging
from typing import Any, Iterator, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from ..namespace import ConnectorConfig

logger = logging.getLogger(__name__)


class SQLConnector:
    """
    Database connector for lookup extraction.
    """

    def __init__(self, config: ConnectorConfig, **engine_args):
        """
        Initialize SQL connector.

        The engine is created immediately but no connection is opened until
        the first query.

        Args:
            config: Connection parameters (URI, user, password)
            engine_args: Extra keyword arguments for ``create_engine``
        """
        self.config = config
        self.engine: Engine = create_engine(self._build_url(config), **engine_args)

    @staticmethod
    def _build_url(config: ConnectorConfig):
        url = make_url(config.connect_uri)
        if config.user:
            url = url.set(username=config.user)
        if config.password:
            url = url.set(password=config.password)
        return url

    def __repr__(self) -> str:
        return f"SQLConnector({self.engine.url.render_as_string(hide_password=True)})"

    def dispose(self):
        """Release pooled connections."""
        self.engine.dispose()
        logger.info(f"Disposed connection pool for {self.engine.url.render_as_string(hide_password=True)}")

    def test_connection(self) -> bool:
        """Run ``SELECT 1`` against the database."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info(f"Connected to {self.engine.dialect.name}: {self.engine.url.database}")
        return True

    def get_row_count(self, table: str) -> int:
        """
        Get row count for a table.

        Args:
            table: Table name, schema-qualified if needed

        Returns:
            Row count
        """
        with self.engine.connect() as conn:
            return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()

    def stream_pairs(self, query: str) -> Iterator[Tuple[Optional[str], Optional[str]]]:
        """
        Execute a two-column query and yield rows as string pairs.

        Rows are streamed from a server-side cursor where the driver supports
        it, so large lookups are never held twice in memory.

        Args:
            query: SQL selecting the key column then the value column

        Yields:
            (key, value) tuples, each converted to ``str`` unless NULL
        """
        with self.engine.connect() as conn:
            result = conn.execution_options(stream_results=True).execute(text(query))
            for row in result:
                yield _as_string(row[0]), _as_string(row[1])

    def fetch_one(self, query: str) -> Optional[Tuple[Any, ...]]:
        """
        Execute a query and return its first row.

        Args:
            query: SQL query string

        Returns:
            First row as a tuple, or None when the query returned no rows
        """
        with self.engine.connect() as conn:
            row = conn.execute(text(query)).first()
            return tuple(row) if row is not None else None


def _as_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
