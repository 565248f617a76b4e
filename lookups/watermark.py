"""
Watermark Resolution
====================

Reads the latest change time of a lookup table, MAX(ts_column), and
converts it to epoch milliseconds for version comparison.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Hashable, Optional

from .connectors.provider import ConnectorCache
from .errors import WatermarkUnavailableError
from .namespace import SQLLookupNamespace
from .queries import EPOCH, build_latest_update_query

logger = logging.getLogger(__name__)

TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
]


def to_epoch_millis(value: Any) -> int:
    """
    Convert a database timestamp value to epoch milliseconds.

    Naive datetimes are read as UTC, matching ``format_timestamp``.

    Args:
        value: datetime, date, epoch millis (int/float) or timestamp string

    Returns:
        Milliseconds since the epoch

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - EPOCH) // timedelta(milliseconds=1)
    if isinstance(value, date):
        return to_epoch_millis(datetime(value.year, value.month, value.day))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        text_value = value.strip()
        for fmt in TIMESTAMP_FORMATS:
            try:
                return to_epoch_millis(datetime.strptime(text_value, fmt))
            except ValueError:
                continue
        try:
            return to_epoch_millis(datetime.fromisoformat(text_value))
        except ValueError:
            pass
    raise ValueError(f"Cannot interpret {value!r} as a timestamp")


def latest_update(
    entry: Hashable,
    namespace: SQLLookupNamespace,
    connectors: ConnectorCache
) -> Optional[int]:
    """
    Get the latest update time of the lookup table.

    Args:
        entry: Entry identity, used to pick the cached connector
        namespace: Lookup definition
        connectors: Connector cache shared by the generator

    Returns:
        Epoch millis of MAX(ts_column), or None when the lookup has no
        timestamp column

    Raises:
        WatermarkUnavailableError: if the query yields no row or a NULL maximum
    """
    if not namespace.ts_column:
        return None

    connector = connectors.ensure_connector(entry, namespace)
    query = build_latest_update_query(namespace.table, namespace.ts_column)
    row = connector.fetch_one(query)
    if row is None or row[0] is None:
        raise WatermarkUnavailableError(namespace.table, namespace.ts_column)

    watermark = to_epoch_millis(row[0])
    logger.debug(f"Latest update of {namespace.table}.{namespace.ts_column}: {row[0]} ({watermark})")
    return watermark
