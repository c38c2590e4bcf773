"""Tests for shiplog/records.py — levels, normalization, record shape."""

import re

import pytest

from shiplog.records import (
    LEVEL_PRIORITY,
    LogRecord,
    level_priority,
    normalize_meta,
    utc_timestamp,
)


class TestLevelPriority:
    def test_fixed_ordering(self):
        assert LEVEL_PRIORITY == {"debug": 10, "info": 20, "warn": 30, "error": 40}

    def test_known_level(self):
        assert level_priority("warn") == 30

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            level_priority("critical")


class TestNormalizeMeta:
    def test_none_stays_none(self):
        assert normalize_meta(None) is None

    def test_mapping_passes_through_by_reference(self):
        meta = {"user": "alice"}
        assert normalize_meta(meta) is meta

    @pytest.mark.parametrize("value", [42, "text", 3.5, True, [1, 2], (1, 2)])
    def test_non_mapping_is_wrapped(self, value):
        assert normalize_meta(value) == {"value": value}


class TestLogRecord:
    def test_to_dict_omits_absent_fields(self):
        record = LogRecord(level="info", message="hi", timestamp="t")
        assert record.to_dict() == {"level": "info", "message": "hi", "timestamp": "t"}

    def test_to_dict_includes_service_and_meta(self):
        record = LogRecord(
            level="error", message="boom", timestamp="t", service="auth-api", meta={"code": 500}
        )
        out = record.to_dict()
        assert out["service"] == "auth-api"
        assert out["meta"] == {"code": 500}
        assert list(out) == ["level", "message", "timestamp", "service", "meta"]


def test_utc_timestamp_format():
    ts = utc_timestamp()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", ts)
