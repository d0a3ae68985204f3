"""
Tests for run parameter loading and validation.
"""

import pytest

from bat_atlas.params import (
    ConfigError,
    ExportParams,
    MetricsParams,
    RunParams,
    SpatialParams,
    load_params,
    params_from_dict,
)
from bat_atlas.paths import PARAMS_FILE


class TestDefaults:
    """Defaults reproduce the warehouse constants."""

    def test_metrics_defaults(self):
        params = MetricsParams()
        assert (params.year_min, params.year_max) == (1960, 2026)
        assert params.block_width == 5
        assert params.min_records_per_bin == 10
        assert params.unidentified_pattern == "nidentified"

    def test_spatial_defaults(self):
        params = SpatialParams()
        assert (params.scheme, params.coarse_level, params.fine_level) == ("s2", 10, 12)

    def test_export_defaults(self):
        params = ExportParams()
        assert params.unidentified_label == "Unidentified Bat"
        assert params.remarks_boilerplate == ("Metadata", "BCT", "CVI")


class TestParamsFromDict:

    def test_empty_config_gives_defaults(self):
        assert params_from_dict({}) == RunParams()

    def test_override_single_key(self):
        params = params_from_dict({"metrics": {"min_records_per_bin": 25}})
        assert params.metrics.min_records_per_bin == 25
        assert params.metrics.block_width == 5

    def test_boilerplate_list_becomes_tuple(self):
        params = params_from_dict({"point_export": {"remarks_boilerplate": ["Metadata"]}})
        assert params.export.remarks_boilerplate == ("Metadata",)

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError, match="min_records"):
            params_from_dict({"metrics": {"min_records": 25}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError):
            params_from_dict({"metrics": [1, 2]})

    def test_to_dict_roundtrip(self):
        params = params_from_dict({"spatial_index": {"coarse_level": 9, "fine_level": 13}})
        as_dict = params.to_dict()
        assert as_dict["spatial"] == {"scheme": "s2", "coarse_level": 9, "fine_level": 13}
        assert as_dict["metrics"]["year_min"] == 1960


class TestValidation:

    def test_year_window_order(self):
        with pytest.raises(ConfigError):
            MetricsParams(year_min=2000, year_max=1990)

    def test_block_width_positive(self):
        with pytest.raises(ConfigError):
            MetricsParams(block_width=0)

    def test_unknown_scheme(self):
        with pytest.raises(ConfigError):
            SpatialParams(scheme="geohash")

    def test_level_out_of_range_for_scheme(self):
        with pytest.raises(ConfigError):
            SpatialParams(coarse_level=10, fine_level=31)

    def test_non_nested_scheme_rejected(self):
        with pytest.raises(ConfigError):
            params_from_dict({"spatial_index": {"scheme": "h3", "coarse_level": 6, "fine_level": 8}})

    def test_coarse_finer_than_fine(self):
        with pytest.raises(ConfigError):
            SpatialParams(coarse_level=12, fine_level=10)


class TestLoadParams:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "params.yml"
        path.write_text("metrics:\n  year_min: 1970\nspatial_index:\n  coarse_level: 9\n")
        params = load_params(path)
        assert params.metrics.year_min == 1970
        assert params.spatial.coarse_level == 9

    def test_empty_file(self, tmp_path):
        path = tmp_path / "params.yml"
        path.write_text("")
        assert load_params(path) == RunParams()

    def test_project_params_file_loads(self):
        if not PARAMS_FILE.exists():
            pytest.skip(f"Missing: {PARAMS_FILE}")
        params = load_params()
        assert params.metrics == MetricsParams()
        assert params.spatial == SpatialParams()
        assert params.export == ExportParams()
