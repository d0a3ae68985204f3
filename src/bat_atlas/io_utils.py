"""
I/O utilities with atomic writes and safe reads.

All outputs are written via temp file → rename/replace.
Parquet is the internal truth; CSV and GeoJSON are exports.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import geopandas as gpd
import pandas as pd
import pyarrow.parquet as pq
import yaml


# =============================================================================
# Atomic Write Utilities
# =============================================================================

@contextmanager
def atomic_write(
    target_path: Union[str, Path],
    mode: str = "w",
    suffix: Optional[str] = None,
):
    """
    Context manager for atomic file writes.
    
    Writes to a temporary file first, then atomically renames to target.
    If an exception occurs, the temp file is cleaned up and target unchanged.
    
    Args:
        target_path: Final destination path
        mode: File mode ('w' for text, 'wb' for binary)
        suffix: Optional suffix for temp file (e.g., '.parquet')
    
    Yields:
        File handle for writing
    
    Example:
        with atomic_write("output.csv") as f:
            f.write("data")
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    
    if suffix is None:
        suffix = target_path.suffix or ".tmp"
    
    # Temp file lives in the target directory so the rename stays on one filesystem
    fd, temp_path = tempfile.mkstemp(
        suffix=suffix,
        prefix=f".{target_path.stem}_",
        dir=target_path.parent,
    )
    temp_path = Path(temp_path)
    
    try:
        os.close(fd)
        
        with open(temp_path, mode) as f:
            yield f
        
        temp_path.replace(target_path)
        
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def _temp_sibling(target_path: Path) -> Path:
    """Create an empty temp file next to target_path and return its path."""
    target_path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        suffix=target_path.suffix.lower(),
        prefix=f".{target_path.stem}_",
        dir=target_path.parent,
    )
    os.close(fd)
    return Path(temp_path)


def atomic_write_df(
    df: pd.DataFrame,
    target_path: Union[str, Path],
    **kwargs,
) -> None:
    """
    Atomically write a DataFrame to CSV or Parquet.
    
    File format determined by extension. The index is not written
    unless index=True is passed explicitly.
    
    Args:
        df: DataFrame to write
        target_path: Destination path (.csv or .parquet)
        **kwargs: Additional arguments passed to to_csv/to_parquet
    """
    target_path = Path(target_path)
    suffix = target_path.suffix.lower()
    if suffix not in (".csv", ".parquet"):
        raise ValueError(f"Unsupported format: {suffix}")
    
    kwargs.setdefault("index", False)
    temp_path = _temp_sibling(target_path)
    
    try:
        if suffix == ".parquet":
            df.to_parquet(temp_path, **kwargs)
        else:
            df.to_csv(temp_path, **kwargs)
        
        temp_path.replace(target_path)
        
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write_gdf(
    gdf: gpd.GeoDataFrame,
    target_path: Union[str, Path],
    **kwargs,
) -> None:
    """
    Atomically write a GeoDataFrame to GeoParquet or GeoJSON.
    
    Args:
        gdf: GeoDataFrame to write
        target_path: Destination path (.parquet, .geojson)
        **kwargs: Additional arguments passed to writer
    """
    target_path = Path(target_path)
    suffix = target_path.suffix.lower()
    if suffix not in (".parquet", ".geojson"):
        raise ValueError(f"Unsupported geo format: {suffix}")
    
    temp_path = _temp_sibling(target_path)
    
    try:
        if suffix == ".parquet":
            gdf.to_parquet(temp_path, **kwargs)
        else:
            gdf.to_file(temp_path, driver="GeoJSON", **kwargs)
        
        temp_path.replace(target_path)
        
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write_json(
    data: Any,
    target_path: Union[str, Path],
    **kwargs,
) -> None:
    """
    Atomically write JSON data.
    
    Args:
        data: JSON-serializable data
        target_path: Destination path
        **kwargs: Additional arguments passed to json.dump
    """
    kwargs.setdefault("indent", 2)
    kwargs.setdefault("default", str)
    
    with atomic_write(target_path, mode="w", suffix=".json") as f:
        json.dump(data, f, **kwargs)


def to_point_gdf(
    df: pd.DataFrame,
    lat_column: str,
    lon_column: str,
) -> gpd.GeoDataFrame:
    """Wrap a frame with WGS84 point geometry built from its lat/lon columns."""
    return gpd.GeoDataFrame(
        df.copy(),
        geometry=gpd.points_from_xy(df[lon_column], df[lat_column]),
        crs="EPSG:4326",
    )


# =============================================================================
# Read Utilities
# =============================================================================

def read_yaml(path: Union[str, Path]) -> dict:
    """Read a YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def read_df(
    path: Union[str, Path],
    **kwargs,
) -> pd.DataFrame:
    """
    Read a DataFrame from CSV or Parquet.
    
    Args:
        path: Path to data file
        **kwargs: Additional arguments passed to reader
    
    Returns:
        DataFrame
    """
    path = Path(path)
    suffix = path.suffix.lower()
    
    if suffix == ".parquet":
        return pd.read_parquet(path, **kwargs)
    elif suffix == ".csv":
        return pd.read_csv(path, **kwargs)
    else:
        raise ValueError(f"Unsupported format: {suffix}")


def iter_df_chunks(
    path: Union[str, Path],
    chunksize: int,
    columns: Optional[list[str]] = None,
) -> Iterator[pd.DataFrame]:
    """
    Stream a CSV or Parquet file as DataFrame chunks of at most chunksize rows.
    
    Args:
        path: Path to data file
        chunksize: Maximum rows per chunk
        columns: Optional subset of columns to read
    
    Yields:
        DataFrame chunks in file order
    """
    path = Path(path)
    suffix = path.suffix.lower()
    
    if suffix == ".csv":
        with pd.read_csv(path, usecols=columns, chunksize=chunksize) as reader:
            for chunk in reader:
                yield chunk
    elif suffix == ".parquet":
        parquet_file = pq.ParquetFile(path)
        for batch in parquet_file.iter_batches(batch_size=chunksize, columns=columns):
            yield batch.to_pandas()
    else:
        raise ValueError(f"Unsupported format: {suffix}")
