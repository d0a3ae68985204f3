"""
Tests for the paths module.

Verify that project root detection and canonical paths work correctly.
"""

import pytest

from bat_atlas.paths import (
    PROJECT_ROOT,
    find_project_root,
    RAW_DIR,
    PROCESSED_DIR,
    BINS_DIR,
    POINTS_DIR,
    QA_DIR,
    METADATA_DIR,
    CONFIG_DIR,
    PARAMS_FILE,
    LOGS_DIR,
)

ALL_PATHS = [
    PROJECT_ROOT, RAW_DIR, PROCESSED_DIR, BINS_DIR, POINTS_DIR,
    QA_DIR, METADATA_DIR, CONFIG_DIR, LOGS_DIR,
]


class TestProjectRoot:
    """Tests for project root detection."""

    def test_project_root_exists(self):
        """PROJECT_ROOT should be a valid directory."""
        assert PROJECT_ROOT.exists()
        assert PROJECT_ROOT.is_dir()

    def test_project_root_marker_exists(self):
        """The .project-root marker file should exist."""
        marker = PROJECT_ROOT / ".project-root"
        assert marker.exists(), "Missing .project-root marker file"

    def test_find_project_root_from_subdir(self):
        """find_project_root should work from any subdirectory."""
        subdir = PROJECT_ROOT / "src" / "bat_atlas"
        found_root = find_project_root(subdir)
        assert found_root == PROJECT_ROOT

    def test_find_project_root_raises_on_invalid_path(self, tmp_path):
        """find_project_root should raise if no marker found."""
        with pytest.raises(FileNotFoundError):
            find_project_root(tmp_path)


class TestCanonicalPaths:
    """Tests for canonical path definitions."""

    def test_raw_dir_under_data(self):
        assert RAW_DIR.name == "raw"
        assert RAW_DIR.parent.name == "data"

    def test_outputs_under_processed(self):
        for p in [BINS_DIR, POINTS_DIR, QA_DIR, METADATA_DIR]:
            assert p.parent == PROCESSED_DIR

    def test_params_file_in_configs(self):
        assert PARAMS_FILE.parent == CONFIG_DIR

    def test_no_relative_path_components(self):
        """Canonical paths should not contain '..' components."""
        for p in ALL_PATHS:
            assert ".." not in str(p), f"Path contains '..': {p}"

    def test_all_paths_absolute(self):
        """All canonical paths should be absolute."""
        for p in ALL_PATHS:
            assert p.is_absolute(), f"Path is not absolute: {p}"


@pytest.mark.smoke
class TestPathsSmoke:
    """Smoke tests for paths module."""

    def test_import_succeeds(self):
        from bat_atlas import paths
        assert paths.PROJECT_ROOT is not None

    def test_directories_exist(self):
        assert (PROJECT_ROOT / "src").exists()
        assert (PROJECT_ROOT / "configs").exists()
