#!/usr/bin/env python3
"""
01_profile_remarks.py

Exploratory profile of the free-text occurrenceRemarks field.

Lists the most frequent non-null remarks so automated entries ("Metadata",
"BCT", "CVI", ...) can be spotted before the point export strips them.

Outputs:
- data/processed/qa/remarks_frequency.csv
- data/processed/qa/occurrence_na_rates.json
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from bat_atlas.io_utils import atomic_write_df, atomic_write_json, read_df
from bat_atlas.logging_utils import get_logger
from bat_atlas.params import load_params
from bat_atlas.paths import PROJECT_ROOT, QA_DIR
from bat_atlas.qa import compute_na_rates, remarks_frequency

OUTPUT_FREQUENCY = QA_DIR / "remarks_frequency.csv"
OUTPUT_NA_RATES = QA_DIR / "occurrence_na_rates.json"


def main():
    """Main entry point."""
    with get_logger("01_profile_remarks") as logger:
        logger.info("Starting 01_profile_remarks.py")
        
        params = load_params()
        logger.log_config(params.to_dict())
        
        try:
            input_path = PROJECT_ROOT / params.input.get(
                "occurrence_file", "data/raw/bats_uk_occurrences.csv"
            )
            if not input_path.exists():
                raise FileNotFoundError(
                    f"Occurrence table not found: {input_path}. "
                    "Export the source table to data/raw/ first."
                )
            logger.log_inputs({"occurrences": str(input_path)})
            
            df = read_df(input_path)
            logger.info(f"Loaded {len(df):,} occurrence rows")
            
            freq = remarks_frequency(df, top_n=params.export.remarks_top_n)
            na_rates = compute_na_rates(df)
            
            atomic_write_df(freq, OUTPUT_FREQUENCY)
            atomic_write_json(na_rates, OUTPUT_NA_RATES)
            logger.log_outputs({
                "remarks_frequency": str(OUTPUT_FREQUENCY),
                "na_rates": str(OUTPUT_NA_RATES),
            })
            
            logger.info(f"Top {len(freq)} remarks:")
            for _, row in freq.iterrows():
                logger.info(f"  {row['frequency']:>8,}  {row['occurrenceRemarks']}")
            
            logger.log_metrics({
                "rows": len(df),
                "rows_with_remarks": int(df["occurrenceRemarks"].notna().sum()),
                "distinct_remarks": int(df["occurrenceRemarks"].nunique()),
            })
            logger.info("SUCCESS: Profiled occurrence remarks")
            
        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
