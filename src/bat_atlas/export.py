"""
Point-level export for the interactive map drill-down.

One row per admitted occurrence (see admit_export_records), with:
- species: null replaced by the sentinel label; non-null values untouched,
  including literal "Unidentified bat" strings
- clean_remarks: null when the remark contains any boilerplate substring
  (case-sensitive), otherwise the remark as recorded
- species_info: GBIF species page URL, null when speciesKey is null
- cell_id: fine-resolution cell of the point
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from bat_atlas.filters import LAT_COL, LON_COL, SPECIES_COL, admit_export_records
from bat_atlas.params import ExportParams, MetricsParams, SpatialParams
from bat_atlas.spatial_index import cell_ids

REMARKS_COL = "occurrenceRemarks"
SPECIES_KEY_COL = "speciesKey"
ID_COL = "gbifID"

EXPORT_COLUMNS = [
    ID_COL,
    SPECIES_COL,
    LAT_COL,
    LON_COL,
    "eventDate",
    "clean_remarks",
    "species_info",
    "cell_id",
]


def clean_species_label(species: pd.Series, sentinel: str) -> pd.Series:
    """Replace null species with the sentinel label."""
    return species.astype(object).where(species.notna(), sentinel)


def clean_remarks(remarks: pd.Series, boilerplate: Tuple[str, ...]) -> pd.Series:
    """Null out remarks containing any boilerplate substring."""
    text = remarks.astype("string")
    flagged = pd.Series(False, index=remarks.index)
    for marker in boilerplate:
        flagged |= text.str.contains(marker, regex=False).fillna(False).astype(bool)
    return text.astype(object).where(~flagged & text.notna(), None)


def species_info_urls(species_keys: pd.Series, base_url: str) -> pd.Series:
    """GBIF species page per key; null keys give null URLs."""
    keys = pd.to_numeric(species_keys, errors="coerce").astype("Int64")
    return pd.Series(
        [None if pd.isna(k) else f"{base_url}{int(k)}" for k in keys],
        index=species_keys.index,
        dtype=object,
    )


def build_point_export(
    raw: pd.DataFrame,
    metrics: Optional[MetricsParams] = None,
    spatial: Optional[SpatialParams] = None,
    export: Optional[ExportParams] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Build the point-level export table.
    
    Args:
        raw: Occurrence rows; gbifID, speciesKey and occurrenceRemarks are
             optional and exported as null when absent
        metrics: Year window
        spatial: Cell scheme and fine level
        export: Cleaning rules
        logger: Optional logger instance
    
    Returns:
        Tuple of (export DataFrame with EXPORT_COLUMNS, filter stats)
    """
    metrics = metrics or MetricsParams()
    spatial = spatial or SpatialParams()
    export = export or ExportParams()
    
    admitted, stats = admit_export_records(raw, metrics, logger)
    
    def column(name: str) -> pd.Series:
        if name in admitted.columns:
            return admitted[name]
        return pd.Series([None] * len(admitted), index=admitted.index, dtype=object)
    
    points = pd.DataFrame({
        ID_COL: column(ID_COL),
        SPECIES_COL: clean_species_label(column(SPECIES_COL), export.unidentified_label),
        LAT_COL: pd.to_numeric(admitted[LAT_COL]).astype("float64"),
        LON_COL: pd.to_numeric(admitted[LON_COL]).astype("float64"),
        "eventDate": admitted["event_ts"],
        "clean_remarks": clean_remarks(column(REMARKS_COL), export.remarks_boilerplate),
        "species_info": species_info_urls(column(SPECIES_KEY_COL), export.species_info_base_url),
    })
    points["cell_id"] = cell_ids(
        points[LAT_COL].to_numpy(np.float64),
        points[LON_COL].to_numpy(np.float64),
        spatial.fine_level,
        spatial.scheme,
    )
    
    if logger:
        n_sentinel = int((column(SPECIES_COL).isna()).sum())
        logger.info(
            f"Point export: {len(points):,} rows, {n_sentinel:,} labelled "
            f"'{export.unidentified_label}'"
        )
    
    return points[EXPORT_COLUMNS], stats
