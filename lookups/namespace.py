"""
Lookup Definitions
==================

Immutable description of one SQL-backed lookup: where to connect, which
table to read, and which columns form the key, value and change timestamp.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import LookupConfigError

DEFAULT_POLL_PERIOD_MS = 0


def _pick(config: Dict, *names: str, default: Any = None) -> Any:
    for name in names:
        if config.get(name) is not None:
            return config[name]
    return default


@dataclass(frozen=True)
class ConnectorConfig:
    """Connection parameters for the lookup's database."""

    connect_uri: str
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, config: Dict) -> "ConnectorConfig":
        connect_uri = _pick(config, "connectURI", "connect_uri")
        if not connect_uri:
            raise LookupConfigError("connectorConfig requires 'connectURI'")
        return cls(
            connect_uri=connect_uri,
            user=_pick(config, "user", "username"),
            password=_pick(config, "password"),
        )


@dataclass(frozen=True)
class SQLLookupNamespace:
    """
    Configuration of a lookup populated from a single table.

    ``filter`` is a raw SQL predicate and, like the table and column names,
    is pasted into the generated queries verbatim. These values come from
    operators and must be treated as privileged configuration.
    """

    connector_config: ConnectorConfig
    table: str
    key_column: str
    value_column: str
    filter: Optional[str] = None
    ts_column: Optional[str] = None
    poll_period_ms: int = DEFAULT_POLL_PERIOD_MS

    @property
    def supports_incremental(self) -> bool:
        return bool(self.ts_column)

    @classmethod
    def from_dict(cls, config: Dict) -> "SQLLookupNamespace":
        """
        Build a namespace from a JSON lookup definition.

        Args:
            config: Dict using the lookup JSON keys (``keyColumn``,
                ``tsColumn``, ``connectorConfig``...) or their snake_case
                equivalents

        Returns:
            SQLLookupNamespace instance
        """
        connector = _pick(config, "connectorConfig", "connector_config")
        if not isinstance(connector, dict):
            raise LookupConfigError("Lookup definition requires a 'connectorConfig' object")

        required = {
            "table": _pick(config, "table"),
            "keyColumn": _pick(config, "keyColumn", "key_column"),
            "valueColumn": _pick(config, "valueColumn", "value_column"),
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise LookupConfigError(f"Lookup definition is missing: {', '.join(missing)}")

        return cls(
            connector_config=ConnectorConfig.from_dict(connector),
            table=required["table"],
            key_column=required["keyColumn"],
            value_column=required["valueColumn"],
            filter=_pick(config, "filter") or None,
            ts_column=_pick(config, "tsColumn", "ts_column") or None,
            poll_period_ms=int(_pick(config, "pollPeriod", "poll_period_ms", default=DEFAULT_POLL_PERIOD_MS)),
        )
