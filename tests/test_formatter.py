"""Tests for shiplog/formatter.py — JSON line output and tolerant parsing."""

import json
from datetime import datetime, timezone

from shiplog.formatter import format_line, safe_parse
from shiplog.records import LogRecord


def _make_record(meta=None, **overrides) -> LogRecord:
    fields = dict(level="warn", message="disk low", timestamp="2024-01-15T10:30:00.000Z", meta=meta)
    fields.update(overrides)
    return LogRecord(**fields)


class TestFormatLine:
    def test_single_compact_line(self):
        line = format_line(_make_record({"free_mb": 12}))
        assert "\n" not in line
        assert json.loads(line) == {
            "level": "warn",
            "message": "disk low",
            "timestamp": "2024-01-15T10:30:00.000Z",
            "meta": {"free_mb": 12},
        }

    def test_service_included_when_set(self):
        line = format_line(_make_record(service="auth-api"))
        assert json.loads(line)["service"] == "auth-api"

    def test_cycle_is_neutralized(self):
        meta = {"id": 1}
        meta["parent"] = {"child": meta}
        parsed = json.loads(format_line(_make_record(meta)))
        assert parsed["meta"] == {"id": 1, "parent": {"child": "[Circular]"}}

    def test_unserializable_values_fall_back_to_str(self):
        when = datetime(2024, 1, 15, tzinfo=timezone.utc)
        parsed = json.loads(format_line(_make_record({"when": when, "tags": {"a"}})))
        assert parsed["meta"]["when"] == str(when)
        assert parsed["meta"]["tags"] == "{'a'}"

    def test_non_string_keys_are_stringified(self):
        parsed = json.loads(format_line(_make_record({(1, 2): "pair", 3: "three"})))
        assert parsed["meta"] == {"(1, 2)": "pair", "3": "three"}

    def test_unicode_is_kept(self):
        line = format_line(_make_record(message="café ☕"))
        assert "café ☕" in line


class TestSafeParse:
    def test_valid_json(self):
        assert safe_parse('{"level":"info"}') == {"level": "info"}

    def test_invalid_json_is_wrapped(self):
        assert safe_parse("not json {") == {"line": "not json {"}
