"""
Cache Export
============

Writes a cache generation to disk as a two-column (key, value) file.
Supports Parquet and CSV file formats.
"""

import logging
import os

import pandas as pd

from .cache import VersionedCache

logger = logging.getLogger(__name__)


def cache_to_dataframe(versioned_cache: VersionedCache) -> pd.DataFrame:
    """Contents of a generation as a DataFrame with ``key`` and ``value`` columns."""
    items = sorted(versioned_cache.get_cache().items())
    return pd.DataFrame(items, columns=["key", "value"], dtype="string")


def write_cache(
    versioned_cache: VersionedCache,
    directory: str,
    file_format: str = "csv",
    compression: str = "snappy"
) -> str:
    """
    Write a generation to ``<directory>/<lookup>_<version>.<format>``.

    Args:
        versioned_cache: Generation to export
        directory: Target directory, created if missing
        file_format: Output format ('parquet' or 'csv')
        compression: Compression type for parquet

    Returns:
        Path of the written file
    """
    if file_format not in ("csv", "parquet"):
        raise ValueError(f"Unsupported file format: {file_format}")

    df = cache_to_dataframe(versioned_cache)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{versioned_cache.entry.name}_{versioned_cache.version}.{file_format}")

    if file_format == "parquet":
        df.to_parquet(path, index=False, compression=compression)
    else:
        df.to_csv(path, index=False, encoding="utf-8")

    logger.info(f"Written {len(df)} entries to {path}")
    return path
