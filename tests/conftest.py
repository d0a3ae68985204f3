"""Shared fixtures for bat atlas tests."""

import sys
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# North Yorkshire
YORK_LAT, YORK_LON = 54.10, -1.20

# Cornwall, far from York
CORNWALL_LAT, CORNWALL_LON = 50.30, -5.05


def make_occurrences(rows):
    """Build a raw occurrence frame from (species, eventDate, lat, lon) tuples."""
    return pd.DataFrame(
        rows,
        columns=["species", "eventDate", "decimalLatitude", "decimalLongitude"],
    )


@pytest.fixture
def worked_example():
    """6 Pipistrellus in 1987 and 4 Myotis in 1988, all in one cell."""
    rows = (
        [("Pipistrellus pipistrellus", "1987-06-01", YORK_LAT, YORK_LON)] * 6
        + [("Myotis daubentonii", "1988-07-15T21:30:00Z", YORK_LAT, YORK_LON)] * 4
    )
    return make_occurrences(rows)


@pytest.fixture
def mixed_occurrences(worked_example):
    """Worked example plus a second cell, a small bin and rejected rows."""
    extra = (
        # 12 records, 3 species, Cornwall, 2011-2013 → block 2010
        [("Pipistrellus pygmaeus", "2011-05-01", CORNWALL_LAT, CORNWALL_LON)] * 4
        + [("Plecotus auritus", "2012-05-01", CORNWALL_LAT, CORNWALL_LON)] * 4
        + [("Nyctalus noctula", "2013-05-01", CORNWALL_LAT, CORNWALL_LON)] * 4
        # 9 records in York, 2020 block: suppressed
        + [("Myotis nattereri", "2021-08-01", YORK_LAT, YORK_LON)] * 9
        # rejected
        + [
            (None, "2001-01-01", YORK_LAT, YORK_LON),
            ("", "2001-01-01", YORK_LAT, YORK_LON),
            ("Unidentified bat", "2001-01-01", YORK_LAT, YORK_LON),
            ("Myotis unidentified", "2001-01-01", YORK_LAT, YORK_LON),
            ("Myotis mystacinus", "not a date", YORK_LAT, YORK_LON),
            ("Myotis mystacinus", "1959-12-31", YORK_LAT, YORK_LON),
            ("Myotis mystacinus", "2027-01-01", YORK_LAT, YORK_LON),
            ("Myotis mystacinus", "2001-01-01", None, YORK_LON),
            ("Myotis mystacinus", "2001-01-01", 91.0, YORK_LON),
        ]
    )
    return pd.concat([worked_example, make_occurrences(extra)], ignore_index=True)
