"""
Two-level grouping of admitted records into (cell, block) bins.

Stage (a) counts records per (cell_id, block_start_year, species); stage (b)
sums those counts per (cell_id, block_start_year). Both are plain group-by
reductions, so partial results from separate chunks of input merge by summing
and the merged result does not depend on record order or chunking.

Per-cell coordinate sums are carried alongside so that bin centroids can be
computed after the last chunk has been consumed.
"""

import math
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from bat_atlas.filters import LAT_COL, LON_COL, REJECTION_REASONS, SPECIES_COL, filter_metrics_records
from bat_atlas.params import MetricsParams, SpatialParams
from bat_atlas.spatial_index import cell_ids
from bat_atlas.time_utils import block_starts

BIN_KEYS = ["cell_id", "block_start_year"]
SPECIES_KEYS = BIN_KEYS + [SPECIES_COL]


def assign_bin_keys(
    filtered: pd.DataFrame,
    spatial: Optional[SpatialParams] = None,
    metrics: Optional[MetricsParams] = None,
) -> pd.DataFrame:
    """
    Add coarse cell_id and block_start_year to admitted records.
    
    Args:
        filtered: Output of filter_metrics_records
        spatial: Cell scheme and levels (coarse level is used)
        metrics: Block width
    
    Returns:
        Copy of filtered with cell_id and block_start_year columns
    """
    spatial = spatial or SpatialParams()
    metrics = metrics or MetricsParams()
    
    keyed = filtered.copy()
    keyed["cell_id"] = cell_ids(
        keyed[LAT_COL].to_numpy(),
        keyed[LON_COL].to_numpy(),
        spatial.coarse_level,
        spatial.scheme,
    )
    keyed["block_start_year"] = block_starts(keyed["year"].to_numpy(), metrics.block_width)
    return keyed


def _empty_species_counts() -> pd.DataFrame:
    return pd.DataFrame({
        "cell_id": pd.Series(dtype="int64"),
        "block_start_year": pd.Series(dtype="int64"),
        SPECIES_COL: pd.Series(dtype=object),
        "n": pd.Series(dtype="int64"),
    })


def count_species(keyed: pd.DataFrame) -> pd.DataFrame:
    """
    Stage (a): records per (cell_id, block_start_year, species).
    
    Returns:
        DataFrame [cell_id, block_start_year, species, n], sorted by key,
        one row per observed triple, n >= 1
    """
    if keyed.empty:
        return _empty_species_counts()
    
    counts = keyed.groupby(SPECIES_KEYS, sort=True).size().reset_index(name="n")
    counts["n"] = counts["n"].astype("int64")
    return counts


def total_blocks(species_counts: pd.DataFrame) -> pd.DataFrame:
    """
    Stage (b): total records per (cell_id, block_start_year).
    
    Returns:
        DataFrame [cell_id, block_start_year, total_records_in_block]
    """
    totals = (
        species_counts.groupby(BIN_KEYS, sort=True)["n"]
        .sum()
        .reset_index(name="total_records_in_block")
    )
    totals["total_records_in_block"] = totals["total_records_in_block"].astype("int64")
    return totals


def merge_species_counts(parts: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Merge partial species counts from several chunks by summing n."""
    parts = [p for p in parts if not p.empty]
    if not parts:
        return _empty_species_counts()
    
    merged = (
        pd.concat(parts, ignore_index=True)
        .groupby(SPECIES_KEYS, sort=True)["n"]
        .sum()
        .reset_index()
    )
    merged["n"] = merged["n"].astype("int64")
    return merged


# =============================================================================
# Cell coordinate sums (for centroids)
# =============================================================================

def _empty_coordinate_sums() -> pd.DataFrame:
    return pd.DataFrame({
        "cell_id": pd.Series(dtype="int64"),
        "lat_sum": pd.Series(dtype="float64"),
        "lon_sum": pd.Series(dtype="float64"),
        "n_points": pd.Series(dtype="int64"),
    })


def sum_cell_coordinates(keyed: pd.DataFrame) -> pd.DataFrame:
    """
    Per-cell coordinate sums over all admitted records (all blocks).
    
    Sums are correctly rounded (math.fsum), so they do not depend on row order.
    
    Returns:
        DataFrame [cell_id, lat_sum, lon_sum, n_points]
    """
    if keyed.empty:
        return _empty_coordinate_sums()
    
    grouped = keyed.groupby("cell_id", sort=True)
    sums = pd.DataFrame({
        "lat_sum": grouped[LAT_COL].agg(math.fsum),
        "lon_sum": grouped[LON_COL].agg(math.fsum),
        "n_points": grouped.size().astype("int64"),
    }).reset_index()
    return sums


def merge_cell_coordinates(parts: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Merge partial coordinate sums from several chunks."""
    parts = [p for p in parts if not p.empty]
    if not parts:
        return _empty_coordinate_sums()
    
    grouped = pd.concat(parts, ignore_index=True).groupby("cell_id", sort=True)
    merged = pd.DataFrame({
        "lat_sum": grouped["lat_sum"].agg(math.fsum),
        "lon_sum": grouped["lon_sum"].agg(math.fsum),
        "n_points": grouped["n_points"].sum().astype("int64"),
    }).reset_index()
    return merged


# =============================================================================
# Chunked aggregation
# =============================================================================

def merge_filter_stats(stats_list: List[Dict]) -> Dict:
    """Sum filter stats dictionaries from several chunks."""
    merged = {
        "path": stats_list[0]["path"] if stats_list else "metrics",
        "rows_in": 0,
        "rows_admitted": 0,
        "rejected": {reason: 0 for reason in REJECTION_REASONS},
    }
    for stats in stats_list:
        merged["rows_in"] += stats["rows_in"]
        merged["rows_admitted"] += stats["rows_admitted"]
        for reason, count in stats["rejected"].items():
            merged["rejected"][reason] = merged["rejected"].get(reason, 0) + count
    return merged


def aggregate_chunk(
    raw_chunk: pd.DataFrame,
    metrics: Optional[MetricsParams] = None,
    spatial: Optional[SpatialParams] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame, Dict]:
    """
    Filter, key and partially aggregate one chunk of raw occurrence rows.
    
    Returns:
        Tuple of (species counts, cell coordinate sums, filter stats)
    """
    filtered, stats = filter_metrics_records(raw_chunk, metrics)
    keyed = assign_bin_keys(filtered, spatial, metrics)
    return count_species(keyed), sum_cell_coordinates(keyed), stats


def aggregate_in_chunks(
    chunks: Iterable[pd.DataFrame],
    metrics: Optional[MetricsParams] = None,
    spatial: Optional[SpatialParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, pd.DataFrame, Dict]:
    """
    Consume a stream of raw chunks and return merged partial aggregates.
    
    Nothing is emitted until every chunk has been read.
    
    Args:
        chunks: Iterable of raw occurrence DataFrames
        metrics: Metrics parameters
        spatial: Spatial parameters
        logger: Optional logger instance
    
    Returns:
        Tuple of (species counts, cell coordinate sums, merged filter stats)
    """
    count_parts = []
    coord_parts = []
    stats_parts = []
    
    for index, chunk in enumerate(chunks):
        counts, coords, stats = aggregate_chunk(chunk, metrics, spatial)
        count_parts.append(counts)
        coord_parts.append(coords)
        stats_parts.append(stats)
        if logger:
            logger.debug(
                f"Chunk {index}: {stats['rows_admitted']:,}/{stats['rows_in']:,} admitted"
            )
    
    species_counts = merge_species_counts(count_parts)
    coordinate_sums = merge_cell_coordinates(coord_parts)
    filter_stats = merge_filter_stats(stats_parts)
    
    if logger:
        logger.info(
            f"Aggregated {len(stats_parts)} chunks: {filter_stats['rows_admitted']:,} records, "
            f"{len(species_counts):,} (cell, block, species) rows",
            extra={"filter_stats": filter_stats},
        )
    
    return species_counts, coordinate_sums, filter_stats
