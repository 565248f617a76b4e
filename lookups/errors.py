"""Error types raised by the lookup cache."""


class LookupCacheError(Exception):
    """Base error for all lookup cache errors."""


class LookupConfigError(LookupCacheError):
    """Raised when a lookup definition or settings file is invalid."""


class WatermarkUnavailableError(LookupCacheError):
    """Raised when the MAX() watermark query yields no usable value."""

    def __init__(self, table: str, ts_column: str):
        self.table = table
        self.ts_column = ts_column
        super().__init__(
            f"No watermark returned for MAX({ts_column}) on {table}. "
            "The table is empty or the timestamp column holds only NULLs."
        )


class CacheClosedError(LookupCacheError):
    """Raised when writing to a versioned cache that was already closed."""
