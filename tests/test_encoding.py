"""Tests for SQL literal and CSV encoding of batch values."""

import csv
import io
from datetime import date, datetime
from decimal import Decimal

import pytest

from tablemigrate.models.record import RowBatch
from tablemigrate.services.encoding import (
    build_insert_statement,
    encode_literal,
    quote_identifier,
    quote_qualified_name,
    write_csv,
)


class TestEncodeLiteral:
    @pytest.mark.parametrize("value,expected", [
        (None, "NULL"),
        (True, "TRUE"),
        (False, "FALSE"),
        (42, "42"),
        (Decimal("10.50"), "10.50"),
        (1.5, "1.5"),
        ("plain", "'plain'"),
        (date(2024, 1, 31), "'2024-01-31'"),
        (datetime(2024, 1, 31, 8, 30), "'2024-01-31 08:30:00'"),
        (b"\x01\xff", "'01ff'"),
    ])
    def test_scalars(self, value, expected):
        assert encode_literal(value) == expected

    def test_quotes_are_doubled(self):
        assert encode_literal("O'Brien") == "'O''Brien'"

    def test_backslashes_are_escaped(self):
        assert encode_literal("C:\\temp") == "'C:\\\\temp'"

    def test_non_finite_float_is_quoted(self):
        assert encode_literal(float("nan")) == "'nan'"


class TestIdentifiers:
    def test_embedded_quote_is_doubled(self):
        assert quote_identifier('odd"name') == '"odd""name"'

    def test_qualified_name_quotes_each_part(self):
        assert quote_qualified_name("DB.PUBLIC.EMPLOYEES") == '"DB"."PUBLIC"."EMPLOYEES"'


class TestInsertStatement:
    def test_multi_row_insert(self):
        batch = RowBatch(batch_number=1, table_name="EMPLOYEES", rows=[
            {"ID": 1, "NAME": "Ann"},
            {"ID": 2, "NAME": None},
        ])
        sql = build_insert_statement("EMPLOYEES", batch)
        assert sql == (
            'INSERT INTO "EMPLOYEES" ("ID", "NAME") '
            "VALUES (1, 'Ann'), (2, NULL)"
        )

    def test_empty_batch_is_rejected(self):
        with pytest.raises(ValueError):
            build_insert_statement("EMPLOYEES", RowBatch(batch_number=1, table_name="EMPLOYEES"))


class TestWriteCsv:
    def test_null_is_an_empty_unquoted_field(self):
        batch = RowBatch(batch_number=1, table_name="T", rows=[
            {"ID": 1, "NOTE": "a,b"},
            {"ID": 2, "NOTE": None},
            {"ID": 3, "NOTE": ""},
            {"ID": 4, "NOTE": 'say "hi"'},
        ])
        stream = io.StringIO()
        assert write_csv(batch, stream) == 4

        lines = stream.getvalue().splitlines()
        assert lines == [
            '"ID","NOTE"',
            '1,"a,b"',
            "2,",
            '3,""',
            '4,"say ""hi"""',
        ]

    def test_null_and_backslash_n_text_stay_distinct(self):
        batch = RowBatch(1, "T", [{"A": None}, {"A": "\\N"}, {"A": "NULL"}])
        stream = io.StringIO()
        write_csv(batch, stream)

        assert stream.getvalue().splitlines() == ['"A"', "", '"\\N"', '"NULL"']

    def test_text_round_trips_through_csv_reader(self):
        rows = [{"A": "line\nbreak", "B": Decimal("1.50"), "C": True}]
        stream = io.StringIO()
        write_csv(RowBatch(1, "T", rows), stream)

        parsed = list(csv.reader(io.StringIO(stream.getvalue())))
        assert parsed[1] == ["line\nbreak", "1.50", "TRUE"]

    def test_batch_bound_is_enforced(self):
        with pytest.raises(ValueError):
            RowBatch(batch_number=1, table_name="T", rows=[{"A": 1}, {"A": 2}], max_size=1)
