"""
Schema validation for pipeline tables.

- Canonical outputs are validated (columns, dtypes, NA rules, ranges) before
  they are written.
- Schema drift becomes an immediate local failure.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union

import pandas as pd


# =============================================================================
# Schema Definition
# =============================================================================

@dataclass
class ColumnSpec:
    """Specification for a single column."""
    name: str
    dtype: Optional[str] = None  # e.g., "int64", "float64", "string", "datetime"
    nullable: bool = True
    unique: bool = False
    allowed_values: Optional[Set[Any]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


@dataclass
class Schema:
    """Schema specification for a DataFrame."""
    name: str
    columns: List[ColumnSpec]
    required_columns: List[str] = field(default_factory=list)
    min_rows: int = 0
    unique_together: List[str] = field(default_factory=list)
    
    def __post_init__(self):
        if not self.required_columns:
            self.required_columns = [c.name for c in self.columns if not c.nullable]


class SchemaError(Exception):
    """Raised when schema validation fails."""
    pass


# =============================================================================
# Predefined Schemas
# =============================================================================

# Raw occurrence rows as read from the source table
OCCURRENCE_SCHEMA = Schema(
    name="occurrence",
    columns=[
        ColumnSpec("species", nullable=True),
        ColumnSpec("eventDate", nullable=True),
        ColumnSpec("decimalLatitude", nullable=True),
        ColumnSpec("decimalLongitude", nullable=True),
    ],
    required_columns=["species", "eventDate", "decimalLatitude", "decimalLongitude"],
)

# Stage (a) of the aggregator
SPECIES_COUNTS_SCHEMA = Schema(
    name="species_counts",
    columns=[
        ColumnSpec("cell_id", dtype="int64", nullable=False),
        ColumnSpec("block_start_year", dtype="int64", nullable=False),
        ColumnSpec("species", dtype="string", nullable=False),
        ColumnSpec("n", dtype="int64", nullable=False, min_value=1),
    ],
    unique_together=["cell_id", "block_start_year", "species"],
)

# Final bin report
BIN_REPORT_SCHEMA = Schema(
    name="bin_report",
    columns=[
        ColumnSpec("time_period", dtype="string", nullable=False),
        ColumnSpec("sort_year", dtype="int64", nullable=False),
        ColumnSpec("lat", dtype="float64", nullable=False, min_value=-90, max_value=90),
        ColumnSpec("lon", dtype="float64", nullable=False, min_value=-180, max_value=180),
        ColumnSpec("cell_id", dtype="int64", nullable=False),
        ColumnSpec("total_records", dtype="int64", nullable=False, min_value=1),
        ColumnSpec("species_richness", dtype="int64", nullable=False, min_value=1),
        ColumnSpec("shannon_H", dtype="float64", nullable=False, min_value=0),
        ColumnSpec("richness_per_100", dtype="float64", nullable=False, min_value=0, max_value=100),
    ],
    unique_together=["cell_id", "sort_year"],
)

# Point-level export
POINT_EXPORT_SCHEMA = Schema(
    name="point_export",
    columns=[
        ColumnSpec("gbifID", nullable=True),
        ColumnSpec("species", nullable=True),
        ColumnSpec("decimalLatitude", dtype="float64", nullable=False, min_value=-90, max_value=90),
        ColumnSpec("decimalLongitude", dtype="float64", nullable=False, min_value=-180, max_value=180),
        ColumnSpec("eventDate", dtype="datetime", nullable=False),
        ColumnSpec("clean_remarks", nullable=True),
        ColumnSpec("species_info", nullable=True),
        ColumnSpec("cell_id", dtype="int64", nullable=False),
    ],
)


# =============================================================================
# Validation Functions
# =============================================================================

def _dtype_matches(col: pd.Series, dtype: str) -> bool:
    if dtype == "int64":
        return pd.api.types.is_integer_dtype(col)
    if dtype == "float64":
        return pd.api.types.is_float_dtype(col)
    if dtype == "string":
        return pd.api.types.is_string_dtype(col) or pd.api.types.is_object_dtype(col)
    if dtype == "datetime":
        return pd.api.types.is_datetime64_any_dtype(col)
    return True


def validate_column(
    df: pd.DataFrame,
    spec: ColumnSpec,
) -> List[str]:
    """
    Validate a single column against its specification.
    
    Args:
        df: DataFrame containing the column
        spec: Column specification
    
    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    col_name = spec.name
    
    if col_name not in df.columns:
        # Optional columns may be absent
        if spec.nullable:
            return errors
        errors.append(f"Missing column: {col_name}")
        return errors
    
    col = df[col_name]
    
    if spec.dtype is not None and not _dtype_matches(col, spec.dtype):
        errors.append(f"Column {col_name}: expected {spec.dtype}, got {col.dtype}")
    
    if not spec.nullable and col.isna().any():
        na_count = col.isna().sum()
        errors.append(f"Column {col_name}: {na_count} NA values not allowed")
    
    if spec.unique and col.duplicated().any():
        dup_count = col.duplicated().sum()
        errors.append(f"Column {col_name}: {dup_count} duplicate values not allowed")
    
    if spec.allowed_values is not None:
        invalid = ~col.isin(spec.allowed_values) & col.notna()
        if invalid.any():
            invalid_vals = col[invalid].unique()[:5]
            errors.append(f"Column {col_name}: invalid values {list(invalid_vals)}")
    
    if spec.min_value is not None:
        below_min = (col < spec.min_value) & col.notna()
        if below_min.any():
            errors.append(f"Column {col_name}: values below min {spec.min_value}")
    
    if spec.max_value is not None:
        above_max = (col > spec.max_value) & col.notna()
        if above_max.any():
            errors.append(f"Column {col_name}: values above max {spec.max_value}")
    
    return errors


def validate_schema(
    df: pd.DataFrame,
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Validate a DataFrame against a schema.
    
    Args:
        df: DataFrame to validate
        schema: Schema specification
        context: Optional context for error messages
        raise_on_error: If True, raise SchemaError on validation failure
    
    Returns:
        List of error messages (empty if valid)
    
    Raises:
        SchemaError: If raise_on_error=True and validation fails
    """
    errors = []
    ctx = f" ({context})" if context else ""
    
    if len(df) < schema.min_rows:
        errors.append(f"Expected at least {schema.min_rows} rows, got {len(df)}{ctx}")
    
    missing = set(schema.required_columns) - set(df.columns)
    if missing:
        errors.append(f"Missing required columns: {sorted(missing)}{ctx}")
    
    for col_spec in schema.columns:
        if col_spec.name in missing:
            continue
        errors.extend(validate_column(df, col_spec))
    
    if schema.unique_together and set(schema.unique_together) <= set(df.columns):
        dup_count = int(df.duplicated(subset=schema.unique_together).sum())
        if dup_count:
            errors.append(
                f"{dup_count} duplicate rows on {schema.unique_together}{ctx}"
            )
    
    if errors and raise_on_error:
        raise SchemaError(f"Schema validation failed for '{schema.name}':\n" + "\n".join(errors))
    
    return errors


# =============================================================================
# Schema Registry
# =============================================================================

SCHEMAS: Dict[str, Schema] = {
    "occurrence": OCCURRENCE_SCHEMA,
    "species_counts": SPECIES_COUNTS_SCHEMA,
    "bin_report": BIN_REPORT_SCHEMA,
    "point_export": POINT_EXPORT_SCHEMA,
}


def get_schema(name: str) -> Schema:
    """Get a registered schema by name."""
    if name not in SCHEMAS:
        raise KeyError(f"Unknown schema: {name}. Available: {list(SCHEMAS.keys())}")
    return SCHEMAS[name]
