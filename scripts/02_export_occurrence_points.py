#!/usr/bin/env python3
"""
02_export_occurrence_points.py

Export individual occurrences for the interactive map drill-down.

Records are kept one per row (not aggregated) with a fine-resolution cell id
(S2 level 12, ~5 km²) for precise mapping. The aggregated metrics in
03_build_bin_metrics.py use the coarse level (S2 level 10, ~80 km²).

Outputs:
- data/processed/points/occurrence_points.parquet
- data/processed/points/occurrence_points.csv
- data/processed/points/occurrence_points.geojson
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from bat_atlas.export import build_point_export
from bat_atlas.hashing import hash_dict, write_metadata_sidecar
from bat_atlas.io_utils import atomic_write_df, atomic_write_gdf, read_df, to_point_gdf
from bat_atlas.logging_utils import get_logger
from bat_atlas.params import load_params
from bat_atlas.paths import POINTS_DIR, PROJECT_ROOT
from bat_atlas.schemas import OCCURRENCE_SCHEMA, POINT_EXPORT_SCHEMA, validate_schema

OUTPUT_PARQUET = POINTS_DIR / "occurrence_points.parquet"
OUTPUT_CSV = POINTS_DIR / "occurrence_points.csv"
OUTPUT_GEOJSON = POINTS_DIR / "occurrence_points.geojson"


def main():
    """Main entry point."""
    with get_logger("02_export_occurrence_points") as logger:
        logger.info("Starting 02_export_occurrence_points.py")
        
        params = load_params()
        config = params.to_dict()
        logger.log_config(config, hash_dict(config))
        
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
            
            raw = read_df(input_path)
            logger.info(f"Loaded {len(raw):,} occurrence rows")
            validate_schema(raw, OCCURRENCE_SCHEMA, "occurrence input")
            
            points, filter_stats = build_point_export(
                raw, params.metrics, params.spatial, params.export, logger
            )
            logger.log_filter_stats(filter_stats)
            validate_schema(points, POINT_EXPORT_SCHEMA, "point export output")
            
            atomic_write_df(points, OUTPUT_PARQUET)
            atomic_write_df(points, OUTPUT_CSV)
            atomic_write_gdf(
                to_point_gdf(points, "decimalLatitude", "decimalLongitude"), OUTPUT_GEOJSON
            )
            logger.log_outputs({
                "points_parquet": str(OUTPUT_PARQUET),
                "points_csv": str(OUTPUT_CSV),
                "points_geojson": str(OUTPUT_GEOJSON),
            })
            
            metrics = {
                "points": len(points),
                "sentinel_species": int(
                    (points["species"] == params.export.unidentified_label).sum()
                ),
                "remarks_kept": int(points["clean_remarks"].notna().sum()),
                "distinct_fine_cells": int(points["cell_id"].nunique()),
            }
            logger.log_metrics(metrics)
            
            write_metadata_sidecar(
                output_path=OUTPUT_PARQUET,
                inputs={"occurrences": str(input_path)},
                config=config,
                run_id=logger.run_id,
                extra={"filter_stats": filter_stats, **metrics},
            )
            
            logger.info("SUCCESS: Exported occurrence points")
            
        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
