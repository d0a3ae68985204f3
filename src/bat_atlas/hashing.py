"""
Hashing utilities for reproducibility.

Each output has a metadata sidecar with:
- input file hashes
- config digest
- code version (git commit if available)
- runtime library versions
- timestamp + run_id
"""

import hashlib
import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from bat_atlas.io_utils import atomic_write_json
from bat_atlas.logging_utils import get_versions
from bat_atlas.paths import METADATA_DIR


# =============================================================================
# Hashing
# =============================================================================

def hash_file(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Compute hash of a file.
    
    Args:
        path: Path to file
        algorithm: Hash algorithm (default: sha256)
    
    Returns:
        Hex digest of file hash
    """
    path = Path(path)
    
    if not path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {path}")
    
    h = hashlib.new(algorithm)
    
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    
    return h.hexdigest()


def hash_string(s: str, algorithm: str = "sha256") -> str:
    """Compute hash of a string."""
    h = hashlib.new(algorithm)
    h.update(s.encode("utf-8"))
    return h.hexdigest()


def hash_dict(d: Dict[str, Any], algorithm: str = "sha256") -> str:
    """
    Compute hash of a dictionary (via JSON serialization).
    
    Keys are sorted, so equal dicts hash equally regardless of insertion order.
    """
    s = json.dumps(d, sort_keys=True, default=str)
    return hash_string(s, algorithm)


# =============================================================================
# Git Version Info
# =============================================================================

def _git(*args: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def get_git_info() -> Dict[str, Any]:
    """
    Get git repository information.
    
    Returns:
        Dictionary with commit and dirty status (None outside a repository)
    """
    commit = _git("rev-parse", "HEAD")
    status = _git("status", "--porcelain")
    return {
        "commit": commit.strip() if commit is not None else None,
        "dirty": len(status.strip()) > 0 if status is not None else None,
    }


# =============================================================================
# Metadata Sidecar
# =============================================================================

def create_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create a metadata sidecar for an output file.
    
    Args:
        output_path: Path to the output file
        inputs: Dictionary mapping input names to file paths
        config: Configuration used for this run
        run_id: Unique run identifier
        extra: Additional metadata to include
    
    Returns:
        Metadata dictionary
    """
    input_hashes = {}
    for name, path in inputs.items():
        path = Path(path)
        if path.exists():
            input_hashes[name] = {"path": str(path), "hash": hash_file(path)}
        else:
            input_hashes[name] = {"path": str(path), "hash": None, "missing": True}
    
    metadata = {
        "output_file": str(output_path),
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs": input_hashes,
        "config_digest": hash_dict(config),
        "config": config,
        "git": get_git_info(),
        "versions": get_versions(),
    }
    
    if extra:
        metadata["extra"] = extra
    
    return metadata


def sidecar_path_for(output_path: Union[str, Path], metadata_dir: Optional[Path] = None) -> Path:
    """Location of the sidecar belonging to output_path."""
    metadata_dir = metadata_dir or METADATA_DIR
    return metadata_dir / f"{Path(output_path).stem}_metadata.json"


def write_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
    metadata_dir: Optional[Path] = None,
) -> Path:
    """
    Write a metadata sidecar file for an output.
    
    Returns:
        Path to the written sidecar file
    """
    metadata = create_metadata_sidecar(output_path, inputs, config, run_id, extra)
    sidecar_path = sidecar_path_for(output_path, metadata_dir)
    atomic_write_json(metadata, sidecar_path)
    return sidecar_path
