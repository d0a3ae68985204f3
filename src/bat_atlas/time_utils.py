"""
Timestamp parsing and fixed-width temporal blocks.

Event dates arrive as free text (ISO dates, ISO datetimes, ranges such as
"2010-06-01/2010-06-30", junk). Parsing mirrors a warehouse SAFE_CAST to
TIMESTAMP: anything that is not a single ISO date or datetime becomes NaT,
and naive values are read as UTC. Years are extracted in UTC.
"""

from typing import Union

import numpy as np
import pandas as pd
import pytz

UTC = pytz.UTC

# A timestamp literal starts with a full calendar date and has nothing after
# the optional time and offset
ISO_TIMESTAMP_PATTERN = (
    r"^\s*\d{4}-\d{1,2}-\d{1,2}"
    r"(?:[T ]\d{1,2}:\d{2}(?::\d{2}(?:\.\d{1,9})?)?)?"
    r"\s*(?:Z|[+-]\d{2}(?::?\d{2})?)?\s*$"
)


# =============================================================================
# Timestamp Parsing
# =============================================================================

def parse_event_timestamps(values: pd.Series) -> pd.Series:
    """
    Parse event dates to timezone-aware UTC timestamps.
    
    Args:
        values: Series of strings, datetimes or nulls
    
    Returns:
        Series of UTC timestamps; unparseable or missing values are NaT
    """
    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values
        if parsed.dt.tz is None:
            return parsed.dt.tz_localize(UTC)
        return parsed.dt.tz_convert(UTC)
    
    text = values.astype("string")
    well_formed = text.str.match(ISO_TIMESTAMP_PATTERN).fillna(False).astype(bool)
    
    parsed = pd.Series(pd.NaT, index=values.index, dtype="datetime64[ns, UTC]")
    if well_formed.any():
        parsed.loc[well_formed] = pd.to_datetime(
            text[well_formed].str.strip(),
            errors="coerce",
            utc=True,
            format="ISO8601",
        )
    return parsed


def extract_years(timestamps: pd.Series) -> pd.Series:
    """Calendar year (UTC) of each timestamp as nullable Int64."""
    return timestamps.dt.year.astype("Int64")


def filter_year_range(
    years: pd.Series,
    year_min: int,
    year_max: int,
) -> pd.Series:
    """Boolean mask of years inside [year_min, year_max]; missing years are False."""
    return ((years >= year_min) & (years <= year_max)).fillna(False).astype(bool)


# =============================================================================
# Temporal Blocks
# =============================================================================

def block_start(year: int, width: int = 5) -> int:
    """
    Lower bound of the fixed-width block containing year.
    
    Pure integer floor division: 1962 → 1960, 1964 → 1960, 1965 → 1965.
    """
    if width < 1:
        raise ValueError(f"Block width must be >= 1, got {width}")
    return (int(year) // width) * width


def block_starts(years: Union[pd.Series, np.ndarray], width: int = 5) -> np.ndarray:
    """Vectorised block_start over integer years."""
    if width < 1:
        raise ValueError(f"Block width must be >= 1, got {width}")
    years = np.asarray(years, dtype=np.int64)
    return (years // width) * width


def block_label(start: int, width: int = 5) -> str:
    """Display label for a block, e.g. "1985-1989"."""
    return f"{start}-{start + width - 1}"
