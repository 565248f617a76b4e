"""
Shared fixtures for lookup tests.
"""

from datetime import datetime
from typing import Iterator, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine, text

from lookups.cache import CacheScheduler, LookupEntry
from lookups.connectors.provider import ConnectorCache
from lookups.namespace import ConnectorConfig, SQLLookupNamespace
from lookups.watermark import to_epoch_millis


class FakeConnector:
    """In-memory stand-in for SQLConnector that records issued queries."""

    def __init__(self, rows=None, watermark=None, fail_after: Optional[int] = None):
        self.rows: List[Tuple[Optional[str], Optional[str]]] = list(rows or [])
        self.watermark = watermark
        self.fail_after = fail_after
        self.queries: List[str] = []
        self.disposed = False

    def stream_pairs(self, query: str) -> Iterator[Tuple[Optional[str], Optional[str]]]:
        self.queries.append(query)
        for index, row in enumerate(self.rows):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("connection lost while fetching rows")
            yield row
        if self.fail_after is not None and self.fail_after >= len(self.rows):
            raise RuntimeError("connection lost while fetching rows")

    def fetch_one(self, query: str):
        self.queries.append(query)
        return self.watermark

    def dispose(self):
        self.disposed = True


def make_namespace(connect_uri: str = "sqlite://", **overrides) -> SQLLookupNamespace:
    values = {
        "connector_config": ConnectorConfig(connect_uri=connect_uri),
        "table": "lookup",
        "key_column": "k",
        "value_column": "v",
    }
    values.update(overrides)
    return SQLLookupNamespace(**values)


@pytest.fixture
def scheduler():
    return CacheScheduler()


@pytest.fixture
def fake_connector():
    return FakeConnector()


@pytest.fixture
def fake_connectors(fake_connector):
    """Connector cache that always hands out ``fake_connector``."""
    return ConnectorCache(connector_factory=lambda config: fake_connector)


@pytest.fixture
def sqlite_uri(tmp_path):
    """File-backed SQLite database with a ``lookup`` table."""
    uri = f"sqlite:///{tmp_path / 'lookups.db'}"
    engine = create_engine(uri)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE lookup (k TEXT, v TEXT, region TEXT, updated_at TEXT)"))
        conn.execute(text(
            "INSERT INTO lookup (k, v, region, updated_at) VALUES "
            "('a', '1', 'US', '2024-01-01 00:00:00'), "
            "('b', '2', 'EU', '2024-01-01 00:00:00'), "
            "('n', NULL, 'US', '2024-01-01 00:00:00')"
        ))
    engine.dispose()
    return uri


@pytest.fixture
def run_sql(sqlite_uri):
    """Execute statements against the ``sqlite_uri`` database."""
    engine = create_engine(sqlite_uri)

    def _run(*statements: str):
        with engine.begin() as conn:
            for statement in statements:
                conn.execute(text(statement))

    yield _run
    engine.dispose()


@pytest.fixture
def sqlite_entry(sqlite_uri):
    return LookupEntry("sqlite_lookup", make_namespace(sqlite_uri, ts_column="updated_at"))


def epoch_millis(*args) -> int:
    return to_epoch_millis(datetime(*args))
