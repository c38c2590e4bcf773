"""JSON line serialization for log records."""

import json
from collections.abc import Mapping

from shiplog.records import CIRCULAR_MARKER, LogRecord


def _decycle(value, seen: set[int]):
    """Copy ``value`` into plain JSON types, replacing revisited containers."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if not isinstance(value, (Mapping, list, tuple)):
        return value  # left to json's default= hook

    if id(value) in seen:
        return CIRCULAR_MARKER
    seen.add(id(value))

    if isinstance(value, Mapping):
        return {
            key if isinstance(key, (str, int, float, bool)) or key is None else str(key):
                _decycle(val, seen)
            for key, val in value.items()
        }
    return [_decycle(item, seen) for item in value]


def format_line(record: LogRecord) -> str:
    """Serialize a record to one compact JSON line (no trailing newline).

    Never raises: cycles become ``"[Circular]"`` and values json cannot
    encode natively (datetimes, sets, custom objects) fall back to ``str()``.
    """
    payload = _decycle(record.to_dict(), set())
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=stringify)


def stringify(value) -> str:
    """str() that never raises; used for values json cannot encode natively."""
    try:
        return str(value)
    except Exception:
        return f"<unserializable {type(value).__name__}>"


def safe_parse(line: str):
    """Parse a stored line back into JSON; wrap it as ``{"line": ...}`` if that fails."""
    try:
        return json.loads(line)
    except (json.JSONDecodeError, TypeError):
        return {"line": line}
