"""
Tests for the point-level export.
"""

import pandas as pd
import pytest

from bat_atlas.export import (
    EXPORT_COLUMNS,
    build_point_export,
    clean_remarks,
    clean_species_label,
    species_info_urls,
)
from bat_atlas.params import ExportParams
from bat_atlas.schemas import POINT_EXPORT_SCHEMA, validate_schema
from bat_atlas.spatial_index import cell_parent, point_to_cell

from conftest import YORK_LAT, YORK_LON

BOILERPLATE = ("Metadata", "BCT", "CVI")


@pytest.fixture
def raw_points():
    return pd.DataFrame({
        "gbifID": [1001, 1002, 1003, 1004],
        "species": [None, "Unidentified bat", "Myotis daubentonii", "Myotis daubentonii"],
        "speciesKey": [None, 797, 2432421, 2432421],
        "eventDate": ["2001-05-01", "2002-06-01T22:00:00Z", "2003-07-01", "1950-01-01"],
        "decimalLatitude": [YORK_LAT] * 4,
        "decimalLongitude": [YORK_LON] * 4,
        "occurrenceRemarks": [
            "Seen over river",
            "Metadata record from survey",
            "Detector survey (BCT NBMP)",
            None,
        ],
    })


class TestSpeciesLabel:

    def test_null_becomes_sentinel(self):
        cleaned = clean_species_label(pd.Series([None, "Myotis"]), "Unidentified Bat")
        assert cleaned.tolist() == ["Unidentified Bat", "Myotis"]

    def test_literal_unidentified_kept(self):
        cleaned = clean_species_label(pd.Series(["Unidentified bat"]), "Unidentified Bat")
        assert cleaned.tolist() == ["Unidentified bat"]


class TestRemarks:

    @pytest.mark.parametrize("remark", [
        "Metadata record",
        "BCT National Bat Monitoring",
        "Imported from CVI",
    ])
    def test_boilerplate_nulled(self, remark):
        assert clean_remarks(pd.Series([remark]), BOILERPLATE).isna().all()

    def test_free_text_kept(self):
        assert clean_remarks(pd.Series(["Roost in barn"]), BOILERPLATE).tolist() == ["Roost in barn"]

    def test_match_is_case_sensitive(self):
        assert clean_remarks(pd.Series(["metadata"]), BOILERPLATE).tolist() == ["metadata"]

    def test_null_stays_null(self):
        assert clean_remarks(pd.Series([None], dtype=object), BOILERPLATE).isna().all()


class TestSpeciesInfo:

    def test_url(self):
        urls = species_info_urls(pd.Series([2432421]), "https://www.gbif.org/species/")
        assert urls.tolist() == ["https://www.gbif.org/species/2432421"]

    def test_float_key_has_no_decimal(self):
        urls = species_info_urls(pd.Series([2432421.0, None]), "https://www.gbif.org/species/")
        assert urls.iloc[0] == "https://www.gbif.org/species/2432421"
        assert urls.iloc[1] is None


class TestBuildPointExport:

    def test_rows_and_columns(self, raw_points):
        points, stats = build_point_export(raw_points)
        assert list(points.columns) == EXPORT_COLUMNS
        assert points["gbifID"].tolist() == [1001, 1002, 1003]
        assert stats["rejected"]["year_out_of_range"] == 1

    def test_cleaning_applied(self, raw_points):
        points, _ = build_point_export(raw_points)
        assert points["species"].tolist() == [
            "Unidentified Bat", "Unidentified bat", "Myotis daubentonii",
        ]
        assert points["clean_remarks"].tolist()[0] == "Seen over river"
        assert points["clean_remarks"].iloc[1:].isna().all()
        assert points["species_info"].iloc[0] is None

    def test_fine_cells(self, raw_points):
        points, _ = build_point_export(raw_points)
        fine = point_to_cell(YORK_LAT, YORK_LON, 12)
        assert (points["cell_id"] == fine).all()
        assert cell_parent(fine, 10) == point_to_cell(YORK_LAT, YORK_LON, 10)

    def test_custom_sentinel(self, raw_points):
        points, _ = build_point_export(raw_points, export=ExportParams(unidentified_label="Chiroptera"))
        assert points["species"].iloc[0] == "Chiroptera"

    def test_optional_columns_absent(self, raw_points):
        raw = raw_points.drop(columns=["gbifID", "speciesKey", "occurrenceRemarks"])
        points, _ = build_point_export(raw)
        assert points["gbifID"].isna().all()
        assert points["species_info"].isna().all()
        assert points["clean_remarks"].isna().all()

    def test_passes_schema(self, raw_points):
        points, _ = build_point_export(raw_points)
        assert validate_schema(points, POINT_EXPORT_SCHEMA) == []
