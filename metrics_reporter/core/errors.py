"""Exception types raised by the reporter and its configuration layer."""
from typing import Optional


class MetricsReporterError(Exception):
    """Base class for reporter errors."""


class MappingConfigError(MetricsReporterError, ValueError):
    """A measurement mapping or tag extractor could not be configured."""

    def __init__(self, message: str, *, measurement: Optional[str] = None, pattern: Optional[str] = None):
        super().__init__(message)
        self.measurement = measurement
        self.pattern = pattern


class SinkUnavailableError(MetricsReporterError, ConnectionError):
    """The point sink could not be reached; the current batch is discarded."""
