"""Tests for DuplicateResolver normalization and tie-breaking."""

import math
from datetime import datetime

import pytest

from book_catalog.core.errors import ValidationError
from book_catalog.records.resolver import (
    DuplicateResolver,
    created_at_timestamp,
    normalize_numeral,
)

FIELDS = ["title", "author", "series"]


@pytest.fixture
def resolver():
    return DuplicateResolver(numeral_fields=["series"])


def _ids(records):
    return [r["id"] for r in records]


class TestResolve:

    def test_case_whitespace_and_numeral_equivalence(self, resolver):
        records = [
            {"id": 1, "title": "X", "author": "Y", "series": "1",
             "createdAt": "2024-01-01T00:00:00Z"},
            {"id": 2, "title": "x ", "author": " y", "series": "one",
             "createdAt": "2024-01-02T00:00:00Z"},
        ]
        result = resolver.resolve(records, FIELDS)

        assert _ids(result.kept) == [1]
        assert result.removed == 1
        assert _ids(result.removed_records) == [2]

    def test_mixed_volume_notations(self, resolver):
        """第一集, 1 and 一 are the same volume; 第二集 is not."""
        records = [
            {"id": "1", "title": "測試書籍", "author": "測試作者", "series": "第一集",
             "createdAt": "2023-01-01T00:00:00.000Z"},
            {"id": "2", "title": "測試書籍 ", "author": "測試作者", "series": "1",
             "createdAt": "2023-01-02T00:00:00.000Z"},
            {"id": "3", "title": "測試書籍", "author": " 測試作者 ", "series": "一",
             "createdAt": "2023-01-03T00:00:00.000Z"},
            {"id": "4", "title": "不同的書", "author": "測試作者", "series": "第二集",
             "createdAt": "2023-01-04T00:00:00.000Z"},
        ]
        result = resolver.resolve(records, FIELDS)

        assert result.removed == 2
        assert _ids(result.kept) == ["1", "4"]

    def test_earliest_created_wins_and_order_is_kept(self, resolver):
        records = [
            {"id": "a", "title": "Other"},
            {"id": "late", "title": "Same", "createdAt": "2024-05-01T00:00:00Z"},
            {"id": "b", "title": "Another"},
            {"id": "early", "title": "same", "createdAt": "2024-01-01T00:00:00Z"},
        ]
        result = resolver.resolve(records, ["title"])
        assert _ids(result.kept) == ["a", "b", "early"]

    def test_equal_timestamps_fall_back_to_position(self, resolver):
        stamp = "2024-01-01T00:00:00Z"
        records = [
            {"id": "first", "title": "T", "createdAt": stamp},
            {"id": "second", "title": "t", "createdAt": stamp},
        ]
        assert _ids(resolver.resolve(records, ["title"]).kept) == ["first"]

    def test_missing_timestamp_sorts_first(self, resolver):
        records = [
            {"id": "dated", "title": "T", "createdAt": "2024-01-01T00:00:00Z"},
            {"id": "undated", "title": "T"},
        ]
        assert _ids(resolver.resolve(records, ["title"]).kept) == ["undated"]

    def test_records_with_empty_key_fields_are_not_merged(self, resolver):
        records = [
            {"id": "1", "title": "", "author": None},
            {"id": "2"},
        ]
        result = resolver.resolve(records, ["title", "author"])
        assert result.removed == 0
        assert _ids(result.kept) == ["1", "2"]

    def test_idempotent(self, resolver):
        records = [
            {"id": "1", "title": "A", "series": "01"},
            {"id": "2", "title": "a", "series": "1"},
            {"id": "3", "title": "B", "series": "1"},
        ]
        once = resolver.resolve(records, ["title", "series"])
        twice = resolver.resolve(once.kept, ["title", "series"])

        assert twice.removed == 0
        assert twice.kept == once.kept

    def test_input_not_mutated(self, resolver):
        records = [{"id": "1", "title": "A"}, {"id": "2", "title": "A"}]
        resolver.resolve(records, ["title"])
        assert records == [{"id": "1", "title": "A"}, {"id": "2", "title": "A"}]

    def test_numerals_only_apply_to_numeral_fields(self, resolver):
        records = [
            {"id": "1", "title": "one"},
            {"id": "2", "title": "1"},
        ]
        assert resolver.resolve(records, ["title"]).removed == 0

    def test_words_starting_with_an_affix_do_not_merge(self, resolver):
        records = [
            {"id": "1", "title": "T", "series": "volcano"},
            {"id": "2", "title": "T", "series": "cano"},
        ]
        assert resolver.resolve(records, ["title", "series"]).removed == 0

    @pytest.mark.parametrize("fields", [[], [""], ["  "]])
    def test_empty_fields_rejected(self, resolver, fields):
        with pytest.raises(ValidationError):
            resolver.resolve([{"id": "1"}], fields)


class TestNumerals:

    @pytest.mark.parametrize("value,expected", [
        ("1", "1"),
        ("01", "1"),
        ("１", "1"),
        ("one", "1"),
        ("ONE", "1"),
        ("一", "1"),
        ("第一集", "1"),
        ("第3冊", "3"),
        ("vol. 2", "2"),
        ("Volume 12", "12"),
        ("#05", "5"),
        ("十二", "12"),
        ("兩", "2"),
        ("twenty", "20"),
        ("0", "0"),
        ("000", "0"),
        ("special", "special"),
        ("volcano", "volcano"),
        ("第五元素", "第五元素"),
        ("no.", "no."),
    ])
    def test_normalize_numeral(self, value, expected):
        assert normalize_numeral(value.casefold()) == expected

    def test_custom_table(self):
        resolver = DuplicateResolver(numeral_fields=["series"], numeral_table={"i": "1"})
        assert resolver.normalize("series", "I") == "1"
        assert resolver.normalize("series", "one") == "one"


class TestCreatedAt:

    def test_iso_with_z(self):
        assert created_at_timestamp("2023-01-01T00:00:00Z") == 1672531200.0

    def test_epoch_milliseconds(self):
        assert created_at_timestamp(1672531200000) == 1672531200.0

    def test_naive_datetime_is_utc(self):
        assert created_at_timestamp(datetime(2023, 1, 1)) == 1672531200.0

    @pytest.mark.parametrize("value", [None, "", "not a date", True])
    def test_unusable_values(self, value):
        assert created_at_timestamp(value) == -math.inf
