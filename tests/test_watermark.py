"""
Tests for watermark resolution
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from lookups.connectors.provider import ConnectorCache
from lookups.errors import WatermarkUnavailableError
from lookups.watermark import latest_update, to_epoch_millis
from tests.conftest import FakeConnector, epoch_millis, make_namespace


class TestToEpochMillis:
    """Conversion of MAX() results"""

    def test_naive_datetime_is_utc(self):
        assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000

    def test_milliseconds_are_kept(self):
        assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1, 500000)) == 1500

    def test_aware_datetime(self):
        plus_one = timezone(timedelta(hours=1))
        assert to_epoch_millis(datetime(1970, 1, 1, 1, 0, 1, tzinfo=plus_one)) == 1000

    def test_date(self):
        assert to_epoch_millis(date(1970, 1, 2)) == 86400000

    def test_numbers_are_epoch_millis(self):
        assert to_epoch_millis(1234) == 1234
        assert to_epoch_millis(1234.9) == 1234

    @pytest.mark.parametrize("value", [
        "1970-01-01 00:00:01",
        "1970-01-01 00:00:01.000",
        "1970-01-01T00:00:01",
    ])
    def test_strings(self, value):
        assert to_epoch_millis(value) == 1000

    def test_unparseable_value(self):
        with pytest.raises(ValueError):
            to_epoch_millis("yesterday")
        with pytest.raises(ValueError):
            to_epoch_millis(True)


class TestLatestUpdate:
    """MAX(ts_column) lookups"""

    def test_no_ts_column_returns_none_without_querying(self):
        connector = FakeConnector()
        connectors = ConnectorCache(connector_factory=lambda config: connector)

        assert latest_update("entry", make_namespace(), connectors) is None
        assert connector.queries == []
        assert len(connectors) == 0

    def test_returns_max_as_millis(self):
        connector = FakeConnector(watermark=(datetime(1970, 1, 1, 0, 0, 2),))
        connectors = ConnectorCache(connector_factory=lambda config: connector)

        result = latest_update("entry", make_namespace(ts_column="ts"), connectors)

        assert result == 2000
        assert connector.queries == ["SELECT MAX(ts) FROM lookup"]

    @pytest.mark.parametrize("row", [None, (None,)])
    def test_missing_watermark_is_an_error(self, row):
        connectors = ConnectorCache(connector_factory=lambda config: FakeConnector(watermark=row))

        with pytest.raises(WatermarkUnavailableError) as excinfo:
            latest_update("entry", make_namespace(ts_column="ts"), connectors)
        assert excinfo.value.table == "lookup"
        assert excinfo.value.ts_column == "ts"

    def test_sqlite_table(self, sqlite_entry):
        connectors = ConnectorCache()
        try:
            result = latest_update(sqlite_entry, sqlite_entry.namespace, connectors)
        finally:
            connectors.close_all()
        assert result == epoch_millis(2024, 1, 1)

    def test_missing_column_propagates_driver_error(self, sqlite_uri):
        connectors = ConnectorCache()
        namespace = make_namespace(sqlite_uri, ts_column="no_such_column")
        try:
            with pytest.raises(OperationalError):
                latest_update("entry", namespace, connectors)
        finally:
            connectors.close_all()
