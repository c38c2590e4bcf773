"""Log record model, level priorities, and metadata normalization."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

CIRCULAR_MARKER = "[Circular]"

# Log level hierarchy (higher value = higher severity)
LEVEL_PRIORITY = {
    "debug": 10,
    "info": 20,
    "warn": 30,
    "error": 40,
}


def level_priority(level: str) -> int:
    try:
        return LEVEL_PRIORITY[level]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


@dataclass(frozen=True)
class LogRecord:
    level: str
    message: str
    timestamp: str
    service: str | None = None
    meta: Mapping | None = None

    def to_dict(self) -> dict:
        """Field order matches the emitted JSON line; absent fields are omitted."""
        out = {"level": self.level, "message": self.message, "timestamp": self.timestamp}
        if self.service is not None:
            out["service"] = self.service
        if self.meta is not None:
            out["meta"] = self.meta
        return out


def normalize_meta(meta) -> Mapping | None:
    """Coerce caller metadata into a keyed mapping.

    ``None`` stays ``None``; mappings pass through untouched; anything else
    (scalars, lists, ...) is wrapped as ``{"value": meta}``.
    """
    if meta is None:
        return None
    if isinstance(meta, Mapping):
        return meta
    return {"value": meta}


def utc_timestamp() -> str:
    """Current time as an ISO 8601 string with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
