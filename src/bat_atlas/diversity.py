"""
Per-bin diversity: species richness and the Shannon index.

    p_s = n_s / N              (N = total records in the bin)
    H   = -Σ_s p_s · ln(p_s)

Computed in float64 with the natural logarithm. Species with no records never
appear as rows, so ln(0) cannot occur. A single-species bin has p = 1.0 and
H = 0 exactly. No rounding happens here; values are rounded once, when the
report is emitted.
"""

from typing import Iterable, Union

import numpy as np
import pandas as pd

from bat_atlas.aggregation import BIN_KEYS, SPECIES_KEYS


class InvariantViolation(Exception):
    """Raised when an internal invariant of the pipeline does not hold."""
    pass


class DivisionHazardError(InvariantViolation):
    """Raised when a proportion or ratio would divide by zero."""
    pass


def guarded_divide(
    numerator: Union[pd.Series, np.ndarray],
    denominator: Union[pd.Series, np.ndarray],
    context: str = "",
) -> np.ndarray:
    """
    Element-wise float64 division that refuses zero denominators.
    
    Raises:
        DivisionHazardError: If any denominator is zero or missing
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    bad = ~(denominator != 0) | np.isnan(denominator)
    if bad.any():
        msg = f"{int(bad.sum())} zero or missing denominators"
        if context:
            msg = f"{msg} ({context})"
        raise DivisionHazardError(msg)
    return numerator / denominator


def shannon_index(counts: Iterable[int]) -> float:
    """
    Shannon index of a single bin from its per-species counts.
    
    Args:
        counts: Positive record counts, one per species
    
    Returns:
        H in nats (unrounded)
    
    Raises:
        DivisionHazardError: If the counts sum to zero
        ValueError: If any count is not positive
    """
    n = np.asarray(list(counts), dtype=np.float64)
    if (n <= 0).any():
        raise ValueError("Species counts must be positive")
    p = guarded_divide(n, n.sum(), "shannon_index")
    # A single species sums to -0.0
    return float(-np.sum(p * np.log(p))) + 0.0


def add_proportions(
    species_counts: pd.DataFrame,
    block_totals: pd.DataFrame,
) -> pd.DataFrame:
    """
    Join block totals onto species counts and compute p = n / total.
    
    Returns:
        DataFrame [cell_id, block_start_year, species, n,
        total_records_in_block, p], sorted by key
    """
    joined = species_counts.merge(block_totals, on=BIN_KEYS, how="inner", validate="many_to_one")
    if len(joined) != len(species_counts):
        raise InvariantViolation(
            f"{len(species_counts) - len(joined)} species rows have no block total"
        )
    joined["p"] = guarded_divide(
        joined["n"], joined["total_records_in_block"], "species proportion"
    )
    return joined.sort_values(SPECIES_KEYS).reset_index(drop=True)


def compute_bin_diversity(species_counts: pd.DataFrame) -> pd.DataFrame:
    """
    Richness and Shannon H for every (cell, block) bin.
    
    Each bin's counts are passed to shannon_index in species order, so the
    floating-point accumulation does not depend on input order.
    
    Args:
        species_counts: Output of count_species / merge_species_counts
    
    Returns:
        DataFrame [cell_id, block_start_year, total_records, species_richness,
        shannon_H] with unrounded shannon_H
    """
    if species_counts.empty:
        return pd.DataFrame({
            "cell_id": pd.Series(dtype="int64"),
            "block_start_year": pd.Series(dtype="int64"),
            "total_records": pd.Series(dtype="int64"),
            "species_richness": pd.Series(dtype="int64"),
            "shannon_H": pd.Series(dtype="float64"),
        })
    
    ordered = species_counts.sort_values(SPECIES_KEYS, kind="mergesort")
    grouped = ordered.groupby(BIN_KEYS, sort=True)
    
    bins = pd.DataFrame({
        "total_records": grouped["n"].sum().astype("int64"),
        "species_richness": grouped["species"].nunique().astype("int64"),
        "shannon_H": grouped["n"].agg(shannon_index).astype("float64"),
    }).reset_index()
    
    return bins
