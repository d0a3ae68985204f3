"""
Metrics pipeline: raw occurrences → bin report.

    raw → filter_metrics_records → assign_bin_keys → count_species
        → compute_bin_diversity → build_bin_report

Every stage is a pure function of the previous stage's table. The same input
rows in any order give the same report.
"""

from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

from bat_atlas.aggregation import (
    aggregate_in_chunks,
    assign_bin_keys,
    count_species,
    sum_cell_coordinates,
)
from bat_atlas.diversity import compute_bin_diversity
from bat_atlas.filters import filter_metrics_records
from bat_atlas.params import MetricsParams, SpatialParams
from bat_atlas.reporting import build_bin_report


def _finish(
    species_counts: pd.DataFrame,
    coordinate_sums: pd.DataFrame,
    filter_stats: Dict,
    metrics: MetricsParams,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    bins = compute_bin_diversity(species_counts)
    report, report_stats = build_bin_report(bins, coordinate_sums, metrics, logger)
    stats = {
        "filter": filter_stats,
        "species_rows": int(len(species_counts)),
        "cells": int(len(coordinate_sums)),
        "report": report_stats,
    }
    return report, stats


def run_metrics_pipeline(
    raw: pd.DataFrame,
    metrics: Optional[MetricsParams] = None,
    spatial: Optional[SpatialParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Run the full metrics path over an in-memory table.
    
    Args:
        raw: Occurrence rows (species, eventDate, decimalLatitude, decimalLongitude)
        metrics: Metrics parameters
        spatial: Spatial parameters
        logger: Optional logger instance
    
    Returns:
        Tuple of (bin report, stats dictionary)
    """
    metrics = metrics or MetricsParams()
    spatial = spatial or SpatialParams()
    
    filtered, filter_stats = filter_metrics_records(raw, metrics, logger)
    keyed = assign_bin_keys(filtered, spatial, metrics)
    
    return _finish(
        count_species(keyed),
        sum_cell_coordinates(keyed),
        filter_stats,
        metrics,
        logger,
    )


def run_metrics_pipeline_chunked(
    chunks: Iterable[pd.DataFrame],
    metrics: Optional[MetricsParams] = None,
    spatial: Optional[SpatialParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Run the metrics path over a stream of chunks (e.g. a chunked CSV reader).
    
    Partial aggregates are merged after the last chunk; no bin is emitted
    before all input has been consumed.
    """
    metrics = metrics or MetricsParams()
    spatial = spatial or SpatialParams()
    
    species_counts, coordinate_sums, filter_stats = aggregate_in_chunks(
        chunks, metrics, spatial, logger
    )
    return _finish(species_counts, coordinate_sums, filter_stats, metrics, logger)
