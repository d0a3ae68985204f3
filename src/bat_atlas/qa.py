"""
Quality assurance utilities for occurrence data and bin outputs.

- Remarks profiling (which free-text remarks are automated boilerplate)
- Coordinate bounds sanity checks
- Bin invariants checked before anything is written
"""

from typing import Dict, Optional

import numpy as np
import pandas as pd

from bat_atlas.aggregation import BIN_KEYS, total_blocks
from bat_atlas.diversity import InvariantViolation, add_proportions
from bat_atlas.params import MetricsParams

PROPORTION_TOLERANCE = 1e-9


class BoundsError(Exception):
    """Raised when bounds validation fails."""
    pass


# =============================================================================
# Data Quality Summaries
# =============================================================================

def remarks_frequency(
    df: pd.DataFrame,
    remarks_column: str = "occurrenceRemarks",
    top_n: int = 20,
) -> pd.DataFrame:
    """
    Most frequent non-null remarks.
    
    Used to spot automated entries ("Metadata", "CVI", ...) before deciding
    which substrings the point export strips.
    
    Args:
        df: Occurrence rows
        remarks_column: Free-text remarks column
        top_n: Number of rows to return
    
    Returns:
        DataFrame [occurrenceRemarks, frequency], frequency descending,
        ties by remark text
    """
    remarks = df[remarks_column].dropna()
    if remarks.empty:
        return pd.DataFrame({remarks_column: pd.Series(dtype=object),
                             "frequency": pd.Series(dtype="int64")})
    
    freq = remarks.value_counts().rename_axis(remarks_column).reset_index(name="frequency")
    freq = freq.sort_values(
        ["frequency", remarks_column], ascending=[False, True], kind="mergesort"
    )
    return freq.head(top_n).reset_index(drop=True)


def compute_na_rates(df: pd.DataFrame) -> dict[str, float]:
    """
    Compute NA rates for all columns in a DataFrame.
    
    Args:
        df: DataFrame to analyze
        
    Returns:
        Dictionary of column_name -> NA rate (0-1)
    """
    if len(df) == 0:
        return {c: 0.0 for c in df.columns}
    return {k: float(v) for k, v in (df.isna().sum() / len(df)).items()}


def check_bounds_wgs84(
    df: pd.DataFrame,
    lat_column: str = "lat",
    lon_column: str = "lon",
    lat_min: float = -90.0,
    lat_max: float = 90.0,
    lon_min: float = -180.0,
    lon_max: float = 180.0,
    context: str = "",
) -> bool:
    """
    Check that coordinates fall inside a WGS84 bounding box.
    
    Args:
        df: Frame with latitude/longitude columns
        lat_min, lat_max: Expected latitude range
        lon_min, lon_max: Expected longitude range
        context: Optional context for error message
        
    Returns:
        True if bounds are plausible
        
    Raises:
        BoundsError: If any coordinate is outside the range or non-finite
    """
    lats = df[lat_column].to_numpy(dtype=np.float64)
    lons = df[lon_column].to_numpy(dtype=np.float64)
    
    errors = []
    if not (np.isfinite(lats).all() and np.isfinite(lons).all()):
        errors.append("non-finite coordinates present")
    elif len(lats):
        if lats.min() < lat_min or lats.max() > lat_max:
            errors.append(
                f"Latitude out of range: [{lats.min()}, {lats.max()}] not in [{lat_min}, {lat_max}]"
            )
        if lons.min() < lon_min or lons.max() > lon_max:
            errors.append(
                f"Longitude out of range: [{lons.min()}, {lons.max()}] not in [{lon_min}, {lon_max}]"
            )
    
    if errors:
        msg = "WGS84 bounds check failed: " + "; ".join(errors)
        if context:
            msg = f"{msg} ({context})"
        raise BoundsError(msg)
    
    return True


# =============================================================================
# Bin Invariants
# =============================================================================

def check_bin_invariants(
    species_counts: pd.DataFrame,
    report: pd.DataFrame,
    params: Optional[MetricsParams] = None,
    logger=None,
) -> Dict:
    """
    Verify every emitted bin against its species counts.
    
    Checks, per emitted bin:
    - Σ n == total_records
    - species_richness == number of species rows (all with n >= 1)
    - Σ p == 1 within PROPORTION_TOLERANCE
    - shannon_H >= 0, and 0 when richness is 1
    - total_records >= min_records_per_bin
    - sort_year is a multiple of block_width
    
    Returns:
        QA stats dictionary
    
    Raises:
        InvariantViolation: On the first failed check
    """
    params = params or MetricsParams()
    
    per_bin = (
        species_counts.groupby(BIN_KEYS)["n"]
        .agg(n_sum="sum", n_rows="size", n_min="min")
        .reset_index()
        .rename(columns={"block_start_year": "sort_year"})
    )
    checked = report.merge(per_bin, on=["cell_id", "sort_year"], how="left")
    
    if checked["n_sum"].isna().any():
        raise InvariantViolation("Emitted bins without species counts")
    if (checked["n_sum"] != checked["total_records"]).any():
        raise InvariantViolation("Species counts do not sum to total_records")
    if (checked["n_rows"] != checked["species_richness"]).any():
        raise InvariantViolation("species_richness differs from the number of species rows")
    if (checked["n_min"] < 1).any():
        raise InvariantViolation("Species rows with n < 1")
    if (report["total_records"] < params.min_records_per_bin).any():
        raise InvariantViolation(
            f"Emitted bins below {params.min_records_per_bin} records"
        )
    if (report["sort_year"] % params.block_width != 0).any():
        raise InvariantViolation(f"Block starts not multiples of {params.block_width}")
    if (report["shannon_H"] < 0).any():
        raise InvariantViolation("Negative Shannon index")
    if (report.loc[report["species_richness"] == 1, "shannon_H"] != 0).any():
        raise InvariantViolation("Single-species bins with non-zero Shannon index")
    
    emitted = report[["cell_id", "sort_year"]].rename(columns={"sort_year": "block_start_year"})
    rows = species_counts.merge(emitted, on=BIN_KEYS, how="inner")
    with_p = add_proportions(rows, total_blocks(rows))
    p_sums = with_p.groupby(BIN_KEYS)["p"].sum()
    max_p_error = float((p_sums - 1.0).abs().max()) if len(p_sums) else 0.0
    if max_p_error > PROPORTION_TOLERANCE:
        raise InvariantViolation(f"Proportions do not sum to 1 (max error {max_p_error:.3e})")
    
    qa_stats = {
        "bins_checked": int(len(report)),
        "max_proportion_error": max_p_error,
        "min_total_records": int(report["total_records"].min()) if len(report) else None,
        "max_species_richness": int(report["species_richness"].max()) if len(report) else None,
        "single_species_bins": int((report["species_richness"] == 1).sum()),
    }
    if logger:
        logger.info(f"Bin invariants hold for {qa_stats['bins_checked']:,} bins", extra=qa_stats)
    
    return qa_stats
