"""
Final bin report: centroids, efficiency ratio, suppression, rounding, order.

Output columns match the Tableau extract:
time_period, sort_year, lat, lon, cell_id, total_records, species_richness,
shannon_H, richness_per_100.

Ordering is sort_year descending, then species_richness descending, then
cell_id ascending. The last key makes the order total, so repeated runs emit
identical row sequences.
"""

from typing import Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from bat_atlas.diversity import InvariantViolation, guarded_divide
from bat_atlas.params import MetricsParams
from bat_atlas.time_utils import block_label

OUTPUT_COLUMNS = [
    "time_period",
    "sort_year",
    "lat",
    "lon",
    "cell_id",
    "total_records",
    "species_richness",
    "shannon_H",
    "richness_per_100",
]

SORT_COLUMNS = ["sort_year", "species_richness", "cell_id"]
SORT_ASCENDING = [False, False, True]

SHANNON_DECIMALS = 3
EFFICIENCY_DECIMALS = 1


def round_half_away_from_zero(
    values: Union[pd.Series, np.ndarray],
    decimals: int,
) -> np.ndarray:
    """
    Round with ties going away from zero, as warehouse ROUND() does.
    
    numpy/pandas round() sends ties to even, which would change e.g. 0.25 → 0.2
    where the published output has 0.3.
    """
    values = np.asarray(values, dtype=np.float64)
    factor = 10.0 ** decimals
    rounded = np.sign(values) * np.floor(np.abs(values) * factor + 0.5) / factor
    return rounded + 0.0


def cell_centers(coordinate_sums: pd.DataFrame) -> pd.DataFrame:
    """
    Mean latitude/longitude of all admitted records in each cell.
    
    Returns:
        DataFrame [cell_id, lat, lon]
    """
    return pd.DataFrame({
        "cell_id": coordinate_sums["cell_id"].astype("int64"),
        "lat": guarded_divide(coordinate_sums["lat_sum"], coordinate_sums["n_points"], "cell centroid"),
        "lon": guarded_divide(coordinate_sums["lon_sum"], coordinate_sums["n_points"], "cell centroid"),
    })


def build_bin_report(
    bin_diversity: pd.DataFrame,
    coordinate_sums: pd.DataFrame,
    params: Optional[MetricsParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Join metrics with centroids, suppress small bins and emit ordered rows.
    
    Args:
        bin_diversity: Output of compute_bin_diversity (unrounded)
        coordinate_sums: Output of sum_cell_coordinates / merge_cell_coordinates
        params: Metrics parameters (threshold, block width)
        logger: Optional logger instance
    
    Returns:
        Tuple of (report DataFrame with OUTPUT_COLUMNS, stats dictionary)
    
    Raises:
        InvariantViolation: If a bin's cell has no centroid
    """
    params = params or MetricsParams()
    
    centers = cell_centers(coordinate_sums)
    joined = bin_diversity.merge(centers, on="cell_id", how="left", validate="many_to_one")
    missing_centers = joined["lat"].isna()
    if missing_centers.any():
        raise InvariantViolation(f"{int(missing_centers.sum())} bins have no cell centroid")
    
    joined["richness_per_100"] = guarded_divide(
        joined["species_richness"], joined["total_records"], "richness per 100 records"
    ) * 100
    
    kept = joined[joined["total_records"] >= params.min_records_per_bin].copy()
    
    kept["shannon_H"] = round_half_away_from_zero(kept["shannon_H"], SHANNON_DECIMALS)
    kept["richness_per_100"] = round_half_away_from_zero(
        kept["richness_per_100"], EFFICIENCY_DECIMALS
    )
    kept["sort_year"] = kept["block_start_year"].astype("int64")
    kept["time_period"] = [block_label(y, params.block_width) for y in kept["sort_year"]]
    
    report = (
        kept.sort_values(SORT_COLUMNS, ascending=SORT_ASCENDING, kind="mergesort")
        [OUTPUT_COLUMNS]
        .reset_index(drop=True)
    )
    
    stats = {
        "bins_total": int(len(bin_diversity)),
        "bins_emitted": int(len(report)),
        "bins_suppressed": int(len(bin_diversity) - len(report)),
        "records_in_emitted_bins": int(report["total_records"].sum()),
        "min_records_per_bin": params.min_records_per_bin,
    }
    if logger:
        logger.info(
            f"Bin report: {stats['bins_emitted']:,} bins emitted, "
            f"{stats['bins_suppressed']:,} suppressed below {params.min_records_per_bin} records",
            extra={"aggregation_stats": stats},
        )
    
    return report, stats
