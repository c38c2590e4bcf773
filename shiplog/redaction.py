"""Redaction engine — scrubs sensitive substrings from log records.

Rules are applied in configured order and each rule sees the output of the
previous one, so a later rule can further redact text an earlier rule already
touched. Containers are walked recursively with a per-walk visited set; any
container reached a second time is replaced with ``CIRCULAR_MARKER``.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace

from shiplog.config import RedactionConfig
from shiplog.errors import ConfigurationError
from shiplog.formatter import stringify
from shiplog.records import CIRCULAR_MARKER, LogRecord

logger = logging.getLogger(__name__)

DEFAULT_REPLACEMENT = "[REDACTED]"


@dataclass(frozen=True)
class RedactionRule:
    pattern: re.Pattern
    replacement: str | None = None


@dataclass(frozen=True)
class RedactionState:
    enabled: bool
    replacement: str
    rules: tuple[RedactionRule, ...]


DEFAULT_RULES: tuple[RedactionRule, ...] = (
    # Email addresses
    RedactionRule(re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)),
    # Phone numbers: optional country code and area code, 3+4 digit body
    RedactionRule(
        re.compile(r"\b(?:\+?\d{1,3}[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}\b")
    ),
    # Card-like runs of 13-19 digits, optionally space/dash separated
    RedactionRule(re.compile(r"\b(?:\d[ -]*?){13,19}\b")),
    # SSN-like ###-##-####
    RedactionRule(re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
)


def compile_rule(rule) -> RedactionRule:
    """Coerce a rule definition into a RedactionRule with a compiled pattern.

    Accepts a RedactionRule, a bare pattern (str or compiled), or a
    ``(pattern, replacement)`` pair. Raises ConfigurationError on bad input.
    """
    if isinstance(rule, RedactionRule):
        pattern, replacement = rule.pattern, rule.replacement
    elif isinstance(rule, (str, re.Pattern)):
        pattern, replacement = rule, None
    elif isinstance(rule, (tuple, list)) and len(rule) == 2:
        pattern, replacement = rule
    else:
        raise ConfigurationError(f"Unrecognized redaction rule: {rule!r}")

    if replacement is not None and not isinstance(replacement, str):
        raise ConfigurationError(f"Replacement must be a string: {replacement!r}")
    if isinstance(pattern, str):
        try:
            pattern = re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(f"Invalid redaction pattern {pattern!r}: {e}") from e
    elif not isinstance(pattern, re.Pattern):
        raise ConfigurationError(f"Unrecognized redaction pattern: {pattern!r}")
    return RedactionRule(pattern, replacement)


def resolve_redaction(config: RedactionConfig | None = None) -> RedactionState:
    """Build the immutable RedactionState for a logger.

    Invalid caller rules are skipped with a warning rather than failing the
    whole logger.
    """
    config = config or RedactionConfig()
    safe = config.safe_by_default
    enabled = safe if config.enabled is None else config.enabled

    rules = list(DEFAULT_RULES) if safe else []
    for raw in config.rules:
        try:
            rules.append(compile_rule(raw))
        except ConfigurationError as e:
            logger.warning("Skipping redaction rule: %s", e)

    return RedactionState(
        enabled=enabled,
        replacement=config.replacement if config.replacement is not None else DEFAULT_REPLACEMENT,
        rules=tuple(rules),
    )


def redact_string(value: str, state: RedactionState) -> str:
    for rule in state.rules:
        replacement = rule.replacement if rule.replacement is not None else state.replacement
        # Literal replacement text; backslashes are not group references.
        value = rule.pattern.sub(lambda _m, r=replacement: r, value)
    return value


def redact_value(value, state: RedactionState, seen: set[int] | None = None):
    """Recursively redact strings inside ``value``.

    Sets come back as lists. Leaves other than str, numbers, bools and None
    are redacted in the str() form the formatter would otherwise write.
    """
    if not state.enabled:
        return value
    if isinstance(value, str):
        return redact_string(value, state)
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return redact_string(stringify(value), state)

    if seen is None:
        seen = set()
    if id(value) in seen:
        return CIRCULAR_MARKER
    seen.add(id(value))

    if isinstance(value, Mapping):
        return {key: redact_value(val, state, seen) for key, val in value.items()}
    return [redact_value(item, state, seen) for item in value]


def redact_record(record: LogRecord, state: RedactionState) -> LogRecord:
    """Return a redacted copy of ``record``, or ``record`` itself when disabled."""
    if not state.enabled:
        return record

    seen: set[int] = set()
    return replace(
        record,
        message=redact_string(record.message, state),
        meta=redact_value(record.meta, state, seen) if record.meta is not None else None,
    )
