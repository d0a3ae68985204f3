"""
Record admission for the two output paths.

The metrics path is strict: it needs a known species, usable coordinates and
an event year inside the configured window. The point-export path is
permissive about species (null species are kept and relabelled downstream)
but applies the same coordinate and year rules. The two policies are kept as
separate functions and must not be merged.

Rejections are never errors: each excluded row is counted under the first
rule it fails, in the order of REJECTION_REASONS.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from bat_atlas.params import MetricsParams
from bat_atlas.time_utils import extract_years, filter_year_range, parse_event_timestamps

SPECIES_COL = "species"
EVENT_DATE_COL = "eventDate"
LAT_COL = "decimalLatitude"
LON_COL = "decimalLongitude"

REJECTION_REASONS = [
    "missing_coordinates",
    "coordinates_out_of_range",
    "missing_species",
    "unidentified_species",
    "unparseable_timestamp",
    "year_out_of_range",
]


def _require_columns(df: pd.DataFrame, columns: List[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"Occurrence frame is missing columns: {missing}")


def _coordinate_masks(df: pd.DataFrame) -> Tuple[pd.Series, pd.Series, pd.Series, pd.Series]:
    lat = pd.to_numeric(df[LAT_COL], errors="coerce")
    lon = pd.to_numeric(df[LON_COL], errors="coerce")
    missing = lat.isna() | lon.isna()
    out_of_range = ~missing & ((lat.abs() > 90) | (lon.abs() > 180))
    return lat, lon, missing, out_of_range


def _species_masks(species: pd.Series, pattern: str) -> Tuple[pd.Series, pd.Series]:
    text = species.astype("string")
    missing = (text.isna() | (text == "")).fillna(True).astype(bool)
    unidentified = text.str.contains(pattern, regex=False).fillna(False).astype(bool) & ~missing
    return missing, unidentified


def _first_failure_counts(
    n_rows: int,
    failures: Dict[str, pd.Series],
) -> Tuple[pd.Series, Dict[str, int]]:
    """Count each rejected row under its first failing rule; return the admit mask too."""
    already_rejected = np.zeros(n_rows, dtype=bool)
    counts = {}
    for reason in REJECTION_REASONS:
        if reason not in failures:
            continue
        fails = failures[reason].to_numpy(dtype=bool)
        counts[reason] = int((fails & ~already_rejected).sum())
        already_rejected |= fails
    return ~already_rejected, counts


def _log_filter_stats(stats: Dict, label: str, logger=None) -> None:
    msg = (
        f"{label}: {stats['rows_admitted']:,} of {stats['rows_in']:,} records admitted; "
        + ", ".join(f"{k}={v:,}" for k, v in stats["rejected"].items() if v)
    )
    if logger:
        logger.info(msg, extra={"filter_stats": stats})


def filter_metrics_records(
    raw: pd.DataFrame,
    params: Optional[MetricsParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Admit records for the aggregated metrics path.
    
    A record is rejected if any of the following holds:
    - latitude or longitude is missing, or outside |lat| <= 90, |lon| <= 180
    - species is null, empty, or contains the unidentified pattern
      (case-sensitive substring, "nidentified" by default)
    - eventDate is missing or not a parseable timestamp
    - the event year is outside [year_min, year_max]
    
    Args:
        raw: Occurrence rows with species, eventDate, decimalLatitude, decimalLongitude
        params: Metrics parameters (defaults if None)
        logger: Optional logger instance
    
    Returns:
        Tuple of (filtered frame with species, year, decimalLatitude,
        decimalLongitude; stats dictionary)
    """
    params = params or MetricsParams()
    _require_columns(raw, [SPECIES_COL, EVENT_DATE_COL, LAT_COL, LON_COL])
    
    lat, lon, missing_coords, bad_coords = _coordinate_masks(raw)
    missing_species, unidentified = _species_masks(raw[SPECIES_COL], params.unidentified_pattern)
    timestamps = parse_event_timestamps(raw[EVENT_DATE_COL])
    years = extract_years(timestamps)
    unparseable = years.isna().to_numpy()
    in_window = filter_year_range(years, params.year_min, params.year_max)
    
    admitted, rejected = _first_failure_counts(
        len(raw),
        {
            "missing_coordinates": missing_coords,
            "coordinates_out_of_range": bad_coords,
            "missing_species": missing_species,
            "unidentified_species": unidentified,
            "unparseable_timestamp": pd.Series(unparseable, index=raw.index),
            "year_out_of_range": ~in_window & ~unparseable,
        },
    )
    
    filtered = pd.DataFrame({
        SPECIES_COL: raw[SPECIES_COL].astype("string")[admitted].astype(object),
        "year": years[admitted].astype("int64"),
        LAT_COL: lat[admitted].astype("float64"),
        LON_COL: lon[admitted].astype("float64"),
    }).reset_index(drop=True)
    
    stats = {
        "path": "metrics",
        "rows_in": int(len(raw)),
        "rows_admitted": int(admitted.sum()),
        "rejected": rejected,
    }
    _log_filter_stats(stats, "Metrics filter", logger)
    
    return filtered, stats


def admit_export_records(
    raw: pd.DataFrame,
    params: Optional[MetricsParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Admit records for the point-level export.
    
    Requires non-null, in-range coordinates and a parsed event year inside
    [year_min, year_max]. Species is NOT checked: null and "unidentified"
    species are both kept.
    
    Args:
        raw: Occurrence rows (all source columns are carried through)
        params: Metrics parameters supplying the year window
        logger: Optional logger instance
    
    Returns:
        Tuple of (admitted raw rows plus a parsed 'event_ts' column; stats dictionary)
    """
    params = params or MetricsParams()
    _require_columns(raw, [EVENT_DATE_COL, LAT_COL, LON_COL])
    
    _, _, missing_coords, bad_coords = _coordinate_masks(raw)
    timestamps = parse_event_timestamps(raw[EVENT_DATE_COL])
    years = extract_years(timestamps)
    unparseable = years.isna().to_numpy()
    in_window = filter_year_range(years, params.year_min, params.year_max)
    
    admitted, rejected = _first_failure_counts(
        len(raw),
        {
            "missing_coordinates": missing_coords,
            "coordinates_out_of_range": bad_coords,
            "unparseable_timestamp": pd.Series(unparseable, index=raw.index),
            "year_out_of_range": ~in_window & ~unparseable,
        },
    )
    
    admitted_rows = raw[admitted].copy()
    admitted_rows["event_ts"] = timestamps[admitted]
    admitted_rows = admitted_rows.reset_index(drop=True)
    
    stats = {
        "path": "point_export",
        "rows_in": int(len(raw)),
        "rows_admitted": int(admitted.sum()),
        "rejected": rejected,
    }
    _log_filter_stats(stats, "Point export filter", logger)
    
    return admitted_rows, stats
