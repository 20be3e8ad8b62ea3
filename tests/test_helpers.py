"""
Tests for helper utilities.
"""

import pytest

from atelier.models.config import PricingConfig
from atelier.utils.helpers import (
    generate_id,
    truncate_string,
    deep_equal,
    diff_fields,
    merge_dicts,
    deduplicate,
    format_currency,
    format_duration,
)


class TestGenerateId:
    """Tests for identifier generation."""

    def test_prefix_and_length(self):
        value = generate_id("decision", 8)
        assert value.startswith("decision-")
        assert len(value) == len("decision-") + 8

    def test_unique(self):
        assert len({generate_id() for _ in range(100)}) == 100


class TestTruncateString:
    """Tests for string truncation."""

    def test_no_truncation_needed(self):
        assert truncate_string("short", 10) == "short"

    def test_truncates_with_suffix(self):
        assert truncate_string("this is a long string", 10) == "this is..."

    def test_custom_suffix(self):
        assert truncate_string("this is a long string", 10, suffix="~") == "this is a~"


class TestDeepEqual:
    """Tests for structural equality."""

    def test_nested(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 3}]})

    def test_key_sets(self):
        assert not deep_equal({"a": 1}, {"a": 1, "b": None})

    def test_numbers(self):
        assert deep_equal(1, 1.0)
        assert not deep_equal(True, 1)
        assert deep_equal(float("nan"), float("nan"))

    def test_sequences(self):
        assert deep_equal((1, 2), [1, 2])
        assert not deep_equal([1, 2], [1, 2, 3])

    def test_models(self):
        assert deep_equal(PricingConfig(), PricingConfig())
        assert not deep_equal(PricingConfig(), PricingConfig(input_token_cost=1))

    def test_type_mismatch(self):
        assert not deep_equal("1", 1)


class TestDiffFields:
    """Tests for field diffs."""

    def test_only_changed(self):
        previous = {"a": 1, "b": {"c": 2}}
        assert diff_fields(previous, {"a": 1, "b": {"c": 3}, "d": 4}) == {"b": {"c": 3}, "d": 4}

    def test_no_change(self):
        assert diff_fields({"a": [1]}, {"a": [1]}) == {}


class TestMergeDicts:
    """Tests for dictionary merging."""

    def test_simple_merge(self):
        result = merge_dicts({"a": 1}, {"b": 2})
        assert result == {"a": 1, "b": 2}

    def test_override(self):
        result = merge_dicts({"a": 1}, {"a": 2})
        assert result == {"a": 2}

    def test_deep_merge(self):
        base = {"a": {"b": 1, "c": 2}}
        override = {"a": {"c": 3, "d": 4}}
        result = merge_dicts(base, override)
        assert result == {"a": {"b": 1, "c": 3, "d": 4}}

    def test_shallow_merge(self):
        result = merge_dicts({"a": {"b": 1}}, {"a": {"c": 2}}, deep=False)
        assert result == {"a": {"c": 2}}


class TestDeduplicate:
    """Tests for deduplication."""

    def test_simple_dedupe(self):
        assert deduplicate([1, 2, 2, 3, 1]) == [1, 2, 3]

    def test_preserves_order(self):
        assert deduplicate(["c", "a", "b", "a"]) == ["c", "a", "b"]

    def test_with_key_function(self):
        items = [{"id": 1}, {"id": 2}, {"id": 1}]
        result = deduplicate(items, key=lambda x: x["id"])
        assert len(result) == 2


class TestFormatCurrency:
    """Tests for currency formatting."""

    @pytest.mark.parametrize("amount,expected", [
        (0, "$0.00"),
        (1250, "$1,250.00"),
        (-300.5, "$-300.50"),
    ])
    def test_format(self, amount, expected):
        assert format_currency(amount) == expected


class TestFormatDuration:
    """Tests for duration formatting."""

    def test_milliseconds(self):
        assert format_duration(0.25) == "250ms"

    def test_seconds(self):
        assert format_duration(30) == "30.0s"

    def test_minutes(self):
        assert format_duration(90) == "1m 30s"
