"""
End-to-end tests of the metrics path: raw occurrences → bin report.
"""

import numpy as np
import pandas as pd
import pytest

from bat_atlas.aggregation import assign_bin_keys, count_species
from bat_atlas.filters import filter_metrics_records
from bat_atlas.pipeline import run_metrics_pipeline, run_metrics_pipeline_chunked
from bat_atlas.qa import check_bin_invariants
from bat_atlas.schemas import BIN_REPORT_SCHEMA, validate_schema
from bat_atlas.spatial_index import point_to_cell

from conftest import CORNWALL_LAT, CORNWALL_LON, YORK_LAT, YORK_LON


class TestWorkedExample:
    """6 Pipistrellus (1987) + 4 Myotis (1988) in one cell."""

    def test_single_bin(self, worked_example):
        report, _ = run_metrics_pipeline(worked_example)
        assert len(report) == 1
        row = report.iloc[0]
        assert row["time_period"] == "1985-1989"
        assert row["sort_year"] == 1985
        assert row["cell_id"] == point_to_cell(YORK_LAT, YORK_LON, 10)
        assert row["total_records"] == 10
        assert row["species_richness"] == 2
        assert row["shannon_H"] == 0.673
        assert row["richness_per_100"] == 20.0

    def test_nine_records_not_emitted(self, worked_example):
        report, stats = run_metrics_pipeline(worked_example.iloc[1:])
        assert report.empty
        assert stats["report"]["bins_suppressed"] == 1


class TestMixedOccurrences:

    def test_bins_emitted_in_order(self, mixed_occurrences):
        report, stats = run_metrics_pipeline(mixed_occurrences)
        assert report["sort_year"].tolist() == [2010, 1985]
        assert stats["report"]["bins_suppressed"] == 1
        assert stats["filter"]["rows_admitted"] == 31

    def test_even_three_species_bin(self, mixed_occurrences):
        report, _ = run_metrics_pipeline(mixed_occurrences)
        cornwall = report.iloc[0]
        assert cornwall["cell_id"] == point_to_cell(CORNWALL_LAT, CORNWALL_LON, 10)
        assert cornwall["species_richness"] == 3
        assert cornwall["shannon_H"] == 1.099
        assert cornwall["richness_per_100"] == 25.0
        assert cornwall["lat"] == pytest.approx(CORNWALL_LAT)

    def test_centroid_uses_records_from_all_blocks(self, mixed_occurrences):
        report, _ = run_metrics_pipeline(mixed_occurrences)
        york = report.iloc[1]
        assert york["lat"] == pytest.approx(YORK_LAT)
        assert york["lon"] == pytest.approx(YORK_LON)

    def test_report_passes_schema(self, mixed_occurrences):
        report, _ = run_metrics_pipeline(mixed_occurrences)
        assert validate_schema(report, BIN_REPORT_SCHEMA) == []

    def test_report_passes_invariants(self, mixed_occurrences):
        report, _ = run_metrics_pipeline(mixed_occurrences)
        filtered, _ = filter_metrics_records(mixed_occurrences)
        counts = count_species(assign_bin_keys(filtered))
        qa_stats = check_bin_invariants(counts, report)
        assert qa_stats["bins_checked"] == 2


class TestDeterminism:
    """Same rows in any order give the same report."""

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_permutation_idempotent(self, mixed_occurrences, seed):
        expected, _ = run_metrics_pipeline(mixed_occurrences)
        shuffled = mixed_occurrences.sample(frac=1.0, random_state=seed)
        actual, _ = run_metrics_pipeline(shuffled)
        pd.testing.assert_frame_equal(actual, expected, check_exact=True)

    def test_repeated_runs_identical(self, mixed_occurrences):
        first, _ = run_metrics_pipeline(mixed_occurrences)
        second, _ = run_metrics_pipeline(mixed_occurrences)
        pd.testing.assert_frame_equal(first, second, check_exact=True)

    @pytest.mark.parametrize("chunksize", [1, 7, 40])
    def test_chunked_matches_in_memory(self, mixed_occurrences, chunksize):
        expected, _ = run_metrics_pipeline(mixed_occurrences)
        chunks = (
            mixed_occurrences.iloc[start:start + chunksize]
            for start in range(0, len(mixed_occurrences), chunksize)
        )
        actual, stats = run_metrics_pipeline_chunked(chunks)
        pd.testing.assert_frame_equal(
            actual.drop(columns=["lat", "lon"]),
            expected.drop(columns=["lat", "lon"]),
            check_exact=True,
        )
        np.testing.assert_allclose(actual["lat"], expected["lat"], rtol=1e-12)
        np.testing.assert_allclose(actual["lon"], expected["lon"], rtol=1e-12)
        assert stats["filter"]["rows_in"] == len(mixed_occurrences)


class TestEmptyInput:

    def test_no_admitted_records(self):
        raw = pd.DataFrame({
            "species": [None],
            "eventDate": ["2001-01-01"],
            "decimalLatitude": [YORK_LAT],
            "decimalLongitude": [YORK_LON],
        })
        report, stats = run_metrics_pipeline(raw)
        assert report.empty
        assert stats["report"]["bins_emitted"] == 0
