"""Exception types raised by ridemetrics.

Numeric code never raises for thin or degenerate data; it returns ``None``
fields instead.  These exceptions cover caller mistakes and bad input
records.
"""


class RideMetricsError(Exception):
    """Base class for all ridemetrics errors."""


class UnknownMetricError(RideMetricsError, KeyError):
    """A metric key was requested that is not in the registry."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown metric key: {self.key}"


class MalformedRecordError(RideMetricsError, ValueError):
    """An externally supplied record does not have the expected shape."""


class ConfigError(RideMetricsError, ValueError):
    """A configuration file or value is invalid."""
