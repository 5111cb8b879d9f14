"""Tests for the static SQL Server to Snowflake type map."""

import pytest

from tablemigrate.models.schema import ColumnDefinition
from tablemigrate.services.type_mapping import (
    TYPE_MAP,
    describe_type_map,
    map_type,
    mapping_hints,
    parse_type,
)


class TestParseType:
    def test_plain_type(self):
        assert parse_type("INT") == ("int", [])

    def test_parameters(self):
        assert parse_type("decimal(10, 2)") == ("decimal", ["10", "2"])

    def test_bracketed_type(self):
        assert parse_type("[nvarchar](max)") == ("nvarchar", ["max"])


class TestMapType:
    @pytest.mark.parametrize("source_type,expected", [
        ("int", "INTEGER"),
        ("BIGINT", "BIGINT"),
        ("tinyint", "NUMBER(3, 0)"),
        ("bit", "BOOLEAN"),
        ("money", "NUMBER(19,4)"),
        ("datetime2(7)", "TIMESTAMP_NTZ"),
        ("datetimeoffset", "TIMESTAMP_TZ"),
        ("nvarchar(50)", "VARCHAR"),
        ("uniqueidentifier", "STRING"),
        ("varbinary(max)", "BINARY"),
    ])
    def test_known_types(self, source_type, expected):
        result = map_type(source_type)
        assert result.mapped
        assert result.target_type == expected

    def test_decimal_keeps_precision_and_scale(self):
        assert map_type("decimal(10, 2)").target_type == "NUMBER(10,2)"

    def test_decimal_without_arguments(self):
        assert map_type("numeric").target_type == "NUMBER"

    def test_nchar_keeps_length(self):
        assert map_type("nchar(8)").target_type == "CHAR(8)"

    def test_unmapped_type_is_returned_verbatim(self):
        result = map_type("geography")
        assert result.unmapped
        assert result.target_type == "geography"

    def test_map_is_read_only(self):
        with pytest.raises(TypeError):
            TYPE_MAP["int"] = "NUMBER"


class TestMappingHints:
    def test_hints_list_mapped_and_unmapped_columns(self):
        hints = mapping_hints([
            ColumnDefinition(name="Id", source_type="int"),
            ColumnDefinition(name="Amount", source_type="decimal", precision=12, scale=2),
            ColumnDefinition(name="Shape", source_type="geometry"),
        ])
        assert "Id: int -> INTEGER" in hints
        assert "Amount: decimal(12,2) -> NUMBER(12,2)" in hints
        assert "Unmapped source types" in hints
        assert "Shape: geometry" in hints

    def test_no_columns_gives_empty_hints(self):
        assert mapping_hints([]) == ""

    def test_describe_covers_every_entry(self):
        lines = describe_type_map().splitlines()
        assert len(lines) == len(TYPE_MAP)
        assert "decimal -> NUMBER(p,s)" in lines
