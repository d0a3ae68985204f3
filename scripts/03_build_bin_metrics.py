#!/usr/bin/env python3
"""
03_build_bin_metrics.py

Aggregated biodiversity metrics per S2 cell and 5-year block.

1. Admit records with known species, coordinates and an event year in range.
2. Group into ~80 km² cells (S2 level 10) and 5-year blocks.
3. Compute species proportions p and the Shannon index H = -Σ p·ln(p).
4. Derive richness per 100 records ("reporting efficiency").
5. Drop bins with fewer than 10 records.

Outputs:
- data/processed/bins/bin_metrics.parquet
- data/processed/bins/bin_metrics.csv (Tableau extract)
- data/processed/bins/bin_metrics.geojson (centroid points)
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from bat_atlas.aggregation import aggregate_in_chunks
from bat_atlas.diversity import compute_bin_diversity
from bat_atlas.hashing import hash_dict, write_metadata_sidecar
from bat_atlas.io_utils import atomic_write_df, atomic_write_gdf, iter_df_chunks, to_point_gdf
from bat_atlas.logging_utils import get_logger
from bat_atlas.params import load_params
from bat_atlas.paths import BINS_DIR, PROJECT_ROOT
from bat_atlas.qa import check_bin_invariants, check_bounds_wgs84
from bat_atlas.reporting import build_bin_report
from bat_atlas.schemas import BIN_REPORT_SCHEMA, SPECIES_COUNTS_SCHEMA, validate_schema

INPUT_COLUMNS = ["species", "eventDate", "decimalLatitude", "decimalLongitude"]

OUTPUT_PARQUET = BINS_DIR / "bin_metrics.parquet"
OUTPUT_CSV = BINS_DIR / "bin_metrics.csv"
OUTPUT_GEOJSON = BINS_DIR / "bin_metrics.geojson"


def main():
    """Main entry point."""
    with get_logger("03_build_bin_metrics") as logger:
        logger.info("Starting 03_build_bin_metrics.py")
        
        params = load_params()
        config = params.to_dict()
        logger.log_config(config, hash_dict(config))
        
        metrics = params.metrics
        spatial = params.spatial
        logger.info(
            f"Cells: {spatial.scheme} level {spatial.coarse_level}; "
            f"years {metrics.year_min}-{metrics.year_max} in {metrics.block_width}-year blocks; "
            f"min {metrics.min_records_per_bin} records per bin"
        )
        
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
            
            chunks = iter_df_chunks(
                input_path,
                chunksize=int(params.input.get("chunksize", 200_000)),
                columns=INPUT_COLUMNS,
            )
            species_counts, coordinate_sums, filter_stats = aggregate_in_chunks(
                chunks, metrics, spatial, logger
            )
            logger.log_filter_stats(filter_stats)
            validate_schema(species_counts, SPECIES_COUNTS_SCHEMA, "species counts")
            
            bins = compute_bin_diversity(species_counts)
            report, report_stats = build_bin_report(bins, coordinate_sums, metrics, logger)
            logger.log_aggregation_stats(report_stats)
            
            validate_schema(report, BIN_REPORT_SCHEMA, "bin metrics output")
            check_bounds_wgs84(report, context="bin centroids")
            qa_stats = check_bin_invariants(species_counts, report, metrics, logger)
            
            atomic_write_df(report, OUTPUT_PARQUET)
            atomic_write_df(report, OUTPUT_CSV)
            atomic_write_gdf(to_point_gdf(report, "lat", "lon"), OUTPUT_GEOJSON)
            logger.log_outputs({
                "bin_metrics_parquet": str(OUTPUT_PARQUET),
                "bin_metrics_csv": str(OUTPUT_CSV),
                "bin_metrics_geojson": str(OUTPUT_GEOJSON),
            })
            
            logger.log_metrics({
                "records_admitted": filter_stats["rows_admitted"],
                "bins_emitted": report_stats["bins_emitted"],
                "bins_suppressed": report_stats["bins_suppressed"],
                "mean_shannon_H": float(report["shannon_H"].mean()) if len(report) else None,
                "qa_stats": qa_stats,
            })
            
            write_metadata_sidecar(
                output_path=OUTPUT_PARQUET,
                inputs={"occurrences": str(input_path)},
                config=config,
                run_id=logger.run_id,
                extra={
                    "filter_stats": filter_stats,
                    "report_stats": report_stats,
                    "qa_stats": qa_stats,
                    "columns": list(report.columns),
                },
            )
            
            logger.info("=" * 70)
            logger.info("Bin Metrics Summary:")
            logger.info(f"  Records admitted: {filter_stats['rows_admitted']:,}")
            logger.info(f"  Bins emitted: {report_stats['bins_emitted']:,}")
            logger.info(f"  Bins suppressed: {report_stats['bins_suppressed']:,}")
            logger.info("=" * 70)
            
            logger.info("Top 5 bins by species richness:")
            top5 = report.nlargest(5, "species_richness")
            for _, row in top5.iterrows():
                logger.info(
                    f"  {row['time_period']} cell {row['cell_id']}: "
                    f"richness={row['species_richness']}, H={row['shannon_H']:.3f}"
                )
            
            logger.info("SUCCESS: Built bin metrics")
            
        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
