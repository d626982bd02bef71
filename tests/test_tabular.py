"""Tests for CSV import/export and the column label mapping."""

from datetime import datetime

import pytest

from book_catalog.core.errors import ValidationError
from book_catalog.records.tabular import (
    FieldMapping,
    export_filename,
    normalize_record_fields,
    parse_csv,
    to_csv,
)


class TestFieldMapping:

    def test_known_and_unknown_labels(self):
        mapping = FieldMapping()
        assert mapping.to_internal("書名") == "title"
        assert mapping.to_internal(" 作者 ") == "author"
        assert mapping.to_internal("Shelf") == "shelf"

    def test_first_label_wins_on_export(self):
        labels = dict((field, label) for label, field in FieldMapping().export_columns())
        assert labels["isbn"] == "ISBN號"

    def test_placeholders_fill_required_fields(self):
        record = normalize_record_fields({"書名": "Only a title"}, FieldMapping())
        assert record == {
            "title": "Only a title",
            "author": "未知作者",
            "category": "未分類",
        }


class TestParseCsv:

    def test_parse_with_default_labels(self):
        document = (
            "書名,作者,集數,類別,ISBN號\n"
            "測試書籍,測試作者,第一集,小說,9780000000001\n"
            "另一本書,,001,,\n"
        )
        records = parse_csv(document)

        assert records[0] == {
            "title": "測試書籍",
            "author": "測試作者",
            "series": "第一集",
            "category": "小說",
            "isbn": "9780000000001",
        }
        assert records[1] == {
            "title": "另一本書",
            "series": "001",
            "author": "未知作者",
            "category": "未分類",
        }

    def test_custom_mapping(self):
        mapping = FieldMapping(columns={"Name": "title", "Writer": "author"})
        records = parse_csv("Name,Writer,Genre\nDune,Herbert,SF\n", mapping)
        assert records == [
            {"title": "Dune", "author": "Herbert", "genre": "SF", "category": "未分類"}
        ]

    def test_blank_rows_skipped(self):
        records = parse_csv("書名,作者\n,\nA,B\n")
        assert [r["title"] for r in records] == ["A"]

    def test_header_only(self):
        assert parse_csv("書名,作者\n") == []

    @pytest.mark.parametrize("document", ["", "   \n  "])
    def test_empty_document(self, document):
        with pytest.raises(ValidationError):
            parse_csv(document)

    def test_two_labels_for_one_field(self):
        with pytest.raises(ValidationError):
            parse_csv("ISBN號,ISBN\n1,2\n")


class TestExport:

    def test_to_csv_uses_external_labels(self):
        csv_text = to_csv([{"title": "A", "author": "B", "isbn": "123", "extra": "x"}])
        header, row = csv_text.splitlines()

        assert header.split(",")[:3] == ["書名", "作者", "集數"]
        assert "ISBN號" in header.split(",")
        assert "extra" not in header
        assert row.split(",")[:2] == ["A", "B"]

    def test_export_then_import_keeps_fields(self):
        record = {"title": "A", "author": "B", "category": "C", "isbn": "0123"}
        assert parse_csv(to_csv([record])) == [record]

    def test_export_filename(self):
        name = export_filename(now=datetime(2024, 3, 5, 9, 7))
        assert name == "書籍資料_20240305_0907.csv"
