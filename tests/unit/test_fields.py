"""
Unit tests for field normalization helpers
"""

import pytest

from ingestion.transformers.fields import (
    get_field,
    parse_bool,
    parse_list,
    to_int_or_none,
    to_iso8601,
    try_json,
    unique,
)


class TestParseList:
    """List-valued fields"""

    @pytest.mark.parametrize("value", ['["a","b","a"]', "a|b|a", "a, b; a", ["a", "b", "a"]])
    def test_deduplicates_preserving_order(self, value):
        assert parse_list(value) == ["a", "b"]

    def test_blank_and_none(self):
        assert parse_list(None) == []
        assert parse_list("  ") == []

    def test_invalid_json_falls_back_to_splitting(self):
        assert parse_list('["a", "b"') == ['["a"', "b"]

    def test_quoted_items_are_unwrapped(self):
        assert parse_list('"api","web"') == ["api", "web"]

    def test_unique_drops_blanks_and_nul(self):
        assert unique(["a", "", None, "a\x00", " b "]) == ["a", "b"]


class TestToIso8601:
    """Timestamp normalization"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-15", "2024-01-15T00:00:00Z"),
            ("2024-01-15 10:30", "2024-01-15T10:30:00Z"),
            ("2024-01-15T10:30", "2024-01-15T10:30:00Z"),
            ("2024-01-15 10:30:05", "2024-01-15T10:30:05Z"),
            ("2024-01-15T10:30:05Z", "2024-01-15T10:30:05Z"),
            ("2024-01-15T10:30:05+02:00", "2024-01-15T10:30:05+02:00"),
            ("yesterday", "yesterday"),
        ],
    )
    def test_shapes(self, value, expected):
        assert to_iso8601(value) == expected

    @pytest.mark.parametrize("value", ["2024-01-15", "2024-01-15 10:30", "2024-01-15T10:30:05Z"])
    def test_idempotent(self, value):
        once = to_iso8601(value)
        assert to_iso8601(once) == once

    def test_blank_is_absent(self):
        assert to_iso8601("") is None
        assert to_iso8601(None) is None


class TestScalars:
    """Booleans, integers, JSON and lookups"""

    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "y", True])
    def test_truthy(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "N", False])
    def test_falsy(self, value):
        assert parse_bool(value) is False

    def test_unrecognized_bool_is_absent(self):
        assert parse_bool("maybe") is None

    def test_ints(self):
        assert to_int_or_none("42") == 42
        assert to_int_or_none("10.0") == 10
        assert to_int_or_none("abc") is None
        assert to_int_or_none("") is None

    def test_try_json(self):
        assert try_json('{"a": 1}') == {"a": 1}
        assert try_json("not json") is None

    def test_get_field_is_trimmed_and_blank_is_default(self):
        record = {"name": "  value ", "blank": "   "}
        assert get_field(record, " NAME ") == "value"
        assert get_field(record, "blank", "fallback") == "fallback"
        assert get_field(record, "missing") is None
