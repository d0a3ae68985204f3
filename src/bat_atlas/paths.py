"""
Canonical path resolution for the bat diversity atlas.

This module provides the single source of truth for all paths in the project.
All scripts MUST import paths from here; no relative '../' paths allowed.

- Detect root via `.project-root` (primary) and fallback markers
- Expose canonical Paths: RAW_DIR, PROCESSED_DIR, BINS_DIR, etc.
"""

from pathlib import Path
from typing import Optional

# Markers to detect project root (in priority order)
ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Find the project root by searching upward for marker files.
    
    Args:
        start_path: Starting directory for search. Defaults to this file's location.
        
    Returns:
        Path to project root directory.
        
    Raises:
        FileNotFoundError: If no root marker is found.
    """
    if start_path is None:
        start_path = Path(__file__).resolve().parent
    
    current = start_path
    
    # Search upward until we find a marker or hit filesystem root
    while current != current.parent:
        for marker in ROOT_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent
    
    # Check root directory itself
    for marker in ROOT_MARKERS:
        if (current / marker).exists():
            return current
    
    raise FileNotFoundError(
        f"Could not find project root. Searched for markers {ROOT_MARKERS} "
        f"starting from {start_path}"
    )


def _resolve_root() -> Path:
    """Resolve the root from the package location, then from the working directory."""
    try:
        return find_project_root()
    except FileNotFoundError:
        return find_project_root(Path.cwd())


# =============================================================================
# Canonical paths (resolved at import time)
# =============================================================================

PROJECT_ROOT = _resolve_root()

# Config
CONFIG_DIR = PROJECT_ROOT / "configs"
PARAMS_FILE = CONFIG_DIR / "params.yml"

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

# Processed subdirectories
BINS_DIR = PROCESSED_DIR / "bins"
POINTS_DIR = PROCESSED_DIR / "points"
QA_DIR = PROCESSED_DIR / "qa"
METADATA_DIR = PROCESSED_DIR / "metadata"

# Logs
LOGS_DIR = PROJECT_ROOT / "logs"

# Source and scripts
SRC_DIR = PROJECT_ROOT / "src"
SCRIPTS_DIR = PROJECT_ROOT / "scripts"

# Tests
TESTS_DIR = PROJECT_ROOT / "tests"
