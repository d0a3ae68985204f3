"""
Tests for table schema validation.
"""

import pandas as pd
import pytest

from bat_atlas.schemas import (
    BIN_REPORT_SCHEMA,
    OCCURRENCE_SCHEMA,
    SPECIES_COUNTS_SCHEMA,
    ColumnSpec,
    Schema,
    SchemaError,
    get_schema,
    validate_column,
    validate_schema,
)


@pytest.fixture
def report_row():
    return pd.DataFrame({
        "time_period": ["1985-1989"],
        "sort_year": [1985],
        "lat": [54.1],
        "lon": [-1.2],
        "cell_id": [5183643171103440896],
        "total_records": [10],
        "species_richness": [2],
        "shannon_H": [0.673],
        "richness_per_100": [20.0],
    })


class TestValidateColumn:

    def test_missing_required_column(self):
        errors = validate_column(pd.DataFrame(), ColumnSpec("n", nullable=False))
        assert errors == ["Missing column: n"]

    def test_missing_optional_column_allowed(self):
        assert validate_column(pd.DataFrame(), ColumnSpec("gbifID", nullable=True)) == []

    def test_dtype_mismatch(self):
        errors = validate_column(pd.DataFrame({"n": [1.5]}), ColumnSpec("n", dtype="int64"))
        assert "expected int64" in errors[0]

    def test_range(self):
        spec = ColumnSpec("p", min_value=0, max_value=1)
        assert len(validate_column(pd.DataFrame({"p": [-0.1, 1.1]}), spec)) == 2

    def test_allowed_values(self):
        spec = ColumnSpec("scheme", allowed_values={"s2"})
        assert validate_column(pd.DataFrame({"scheme": ["s2", "geohash"]}), spec)


class TestValidateSchema:

    def test_valid_report(self, report_row):
        assert validate_schema(report_row, BIN_REPORT_SCHEMA) == []

    def test_duplicate_bin_rejected(self, report_row):
        doubled = pd.concat([report_row, report_row], ignore_index=True)
        with pytest.raises(SchemaError, match="duplicate"):
            validate_schema(doubled, BIN_REPORT_SCHEMA)

    def test_richness_per_100_over_100_rejected(self, report_row):
        report_row["richness_per_100"] = [100.5]
        with pytest.raises(SchemaError):
            validate_schema(report_row, BIN_REPORT_SCHEMA)

    def test_zero_count_rejected(self):
        counts = pd.DataFrame({
            "cell_id": [1], "block_start_year": [1985], "species": ["Myotis"], "n": [0],
        })
        with pytest.raises(SchemaError):
            validate_schema(counts, SPECIES_COUNTS_SCHEMA)

    def test_no_raise_returns_errors(self, report_row):
        errors = validate_schema(
            report_row.drop(columns=["lat"]), BIN_REPORT_SCHEMA, raise_on_error=False
        )
        assert any("lat" in e for e in errors)

    def test_min_rows(self):
        schema = Schema(name="t", columns=[ColumnSpec("a")], min_rows=1)
        with pytest.raises(SchemaError):
            validate_schema(pd.DataFrame({"a": []}), schema, context="empty")


class TestOccurrenceSchema:

    def test_source_columns_required(self):
        raw = pd.DataFrame({"species": ["Myotis"], "eventDate": ["2001-01-01"], "decimalLatitude": [54.1]})
        with pytest.raises(SchemaError, match="decimalLongitude"):
            validate_schema(raw, OCCURRENCE_SCHEMA, "occurrence input")


class TestRegistry:

    def test_get_schema(self):
        assert get_schema("bin_report") is BIN_REPORT_SCHEMA

    def test_unknown_schema(self):
        with pytest.raises(KeyError):
            get_schema("nta_typology")
