"""
Lookup Queries
==============

SQL text for full and incremental lookup extraction.

Table, column and filter values are trusted configuration and are
formatted into the statement as-is.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_timestamp(millis: int) -> str:
    """
    Render epoch milliseconds as a timestamp literal.

    The fractional part keeps at least one digit and drops trailing zeros,
    e.g. ``1000`` -> ``1970-01-01 00:00:01.0``.

    Args:
        millis: Milliseconds since the epoch (UTC)

    Returns:
        Timestamp string usable inside a quoted SQL literal
    """
    moment = EPOCH + timedelta(milliseconds=millis)
    fraction = f"{moment.microsecond // 1000:03d}".rstrip("0") or "0"
    return f"{moment.strftime('%Y-%m-%d %H:%M:%S')}.{fraction}"


def build_lookup_query(table: str, filter: Optional[str], key_column: str, value_column: str) -> str:
    """Select every (key, value) row with a non-null value."""
    if not filter:
        return f"SELECT {key_column}, {value_column} FROM {table} WHERE {value_column} IS NOT NULL"

    return f"SELECT {key_column}, {value_column} FROM {table} WHERE {filter} AND {value_column} IS NOT NULL"


def build_incremental_lookup_query(
    table: str,
    filter: Optional[str],
    key_column: str,
    value_column: str,
    ts_column: str,
    last_load_ts: int
) -> str:
    """Select (key, value) rows whose timestamp is at or after ``last_load_ts``."""
    since = format_timestamp(last_load_ts)
    if not filter:
        return (
            f"SELECT {key_column}, {value_column} FROM {table} "
            f"WHERE {ts_column} >= '{since}' AND {value_column} IS NOT NULL"
        )

    return (
        f"SELECT {key_column}, {value_column} FROM {table} "
        f"WHERE {filter} AND {ts_column} >= '{since}' AND {value_column} IS NOT NULL"
    )


def build_latest_update_query(table: str, ts_column: str) -> str:
    return f"SELECT MAX({ts_column}) FROM {table}"
