"""Failure taxonomy for the delivery pipeline.

None of these ever reach the caller of ``Logger.log()``; they are raised and
caught inside the pipeline and end up as local diagnostics.
"""


class ShiplogError(Exception):
    """Base class for all shiplog errors."""


class TransientDeliveryError(ShiplogError):
    """A batch could not be delivered (network error, timeout, non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentDropError(ShiplogError):
    """A queued line exceeded the retry ceiling and was discarded."""

    def __init__(self, line: str, attempts: int):
        super().__init__(f"dropped after {attempts} attempts: {line[:200]}")
        self.line = line
        self.attempts = attempts


class PersistenceError(ShiplogError):
    """Reading or writing the queue snapshot failed."""


class SerializationError(ShiplogError):
    """A value could not be serialized; neutralized inline, never raised to callers."""


class ConfigurationError(ShiplogError):
    """Invalid configuration; the affected feature is disabled."""
