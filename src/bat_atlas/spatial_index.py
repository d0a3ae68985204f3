"""
Hierarchical spatial cell indexing.

Maps (latitude, longitude, level) to an integer cell id. The mapping is a pure
function of its three inputs: no dependency on record order or on the dataset.

Cells come from the S2 quad-sphere ("s2"). A point is projected onto one of
six cube faces, warped with the quadratic UV→ST transform and located on the
face's Hilbert curve. Ids are reported as signed 64-bit integers, the same
values the warehouse function S2_CELLIDFROMPOINT returns. Level 10 cells are
about 80 km², level 12 about 5 km², and every level-k cell is exactly partitioned
by its four level-(k+1) children, so a point's fine cell always lies inside
its coarse cell.
"""

from typing import Union

import numpy as np
import pandas as pd

ArrayLike = Union[np.ndarray, pd.Series, list]

# S2 constants
S2_MAX_LEVEL = 30
S2_POS_BITS = 2 * S2_MAX_LEVEL + 1
S2_MAX_SIZE = 1 << S2_MAX_LEVEL
LOOKUP_BITS = 4
SWAP_MASK = 0x01
INVERT_MASK = 0x02

# Hilbert curve sub-cell order and orientation change, indexed by orientation
POS_TO_IJ = ((0, 1, 3, 2), (0, 2, 3, 1), (3, 2, 0, 1), (3, 1, 0, 2))
POS_TO_ORIENTATION = (SWAP_MASK, 0, 0, INVERT_MASK | SWAP_MASK)

_UINT64_MASK = (1 << 64) - 1


class SpatialIndexError(Exception):
    """Raised when a point or cell id cannot be indexed."""
    pass


# =============================================================================
# S2 Hilbert lookup table
# =============================================================================

def _build_lookup_pos() -> np.ndarray:
    """
    Build the (i, j, orientation) → (position, orientation) table for
    LOOKUP_BITS-sized blocks of the Hilbert curve.
    """
    lookup = np.zeros(1 << (2 * LOOKUP_BITS + 2), dtype=np.int64)
    
    def init_cell(level, i, j, orig_orientation, pos, orientation):
        if level == LOOKUP_BITS:
            ij = (i << LOOKUP_BITS) + j
            lookup[(ij << 2) + orig_orientation] = (pos << 2) + orientation
            return
        r = POS_TO_IJ[orientation]
        for index in range(4):
            init_cell(
                level + 1,
                (i << 1) + (r[index] >> 1),
                (j << 1) + (r[index] & 1),
                orig_orientation,
                (pos << 2) + index,
                orientation ^ POS_TO_ORIENTATION[index],
            )
    
    for orientation in (0, SWAP_MASK, INVERT_MASK, SWAP_MASK | INVERT_MASK):
        init_cell(0, 0, 0, orientation, 0, orientation)
    
    return lookup


LOOKUP_POS = _build_lookup_pos()


# =============================================================================
# S2 projection
# =============================================================================

def _validate_points(lats: np.ndarray, lons: np.ndarray) -> None:
    if lats.shape != lons.shape:
        raise SpatialIndexError(f"lat/lon length mismatch: {lats.shape} vs {lons.shape}")
    if not (np.isfinite(lats).all() and np.isfinite(lons).all()):
        raise SpatialIndexError("Cannot index missing or non-finite coordinates")
    if (np.abs(lats) > 90).any() or (np.abs(lons) > 180).any():
        raise SpatialIndexError("Coordinates out of range: |lat| must be <= 90, |lon| <= 180")


def _s2_face_uv(lats: np.ndarray, lons: np.ndarray):
    """Project degrees onto (face, u, v)."""
    phi = np.radians(lats)
    theta = np.radians(lons)
    cos_phi = np.cos(phi)
    x = cos_phi * np.cos(theta)
    y = cos_phi * np.sin(theta)
    z = np.sin(phi)
    
    ax, ay, az = np.abs(x), np.abs(y), np.abs(z)
    largest = np.where(ax > ay, np.where(ax > az, 0, 2), np.where(ay > az, 1, 2))
    component = np.choose(largest, [x, y, z])
    face = np.where(component < 0, largest + 3, largest)
    
    faces = [face == f for f in range(6)]
    # Only the selected face's ratios are used; the others may divide by zero
    with np.errstate(divide="ignore", invalid="ignore"):
        u = np.select(faces, [y / x, -x / y, -x / z, z / x, z / y, -y / z])
        v = np.select(faces, [z / x, z / y, -y / z, y / x, -x / y, -x / z])
    
    return face.astype(np.int64), u, v


def _uv_to_st(u: np.ndarray) -> np.ndarray:
    """Quadratic transform from face coordinates to [0, 1]."""
    root = 0.5 * np.sqrt(1.0 + 3.0 * np.abs(u))
    return np.where(u >= 0, root, 1.0 - root)


def _st_to_ij(s: np.ndarray) -> np.ndarray:
    return np.clip(np.floor(S2_MAX_SIZE * s), 0, S2_MAX_SIZE - 1).astype(np.int64)


def _s2_leaf_ids(face: np.ndarray, i: np.ndarray, j: np.ndarray) -> np.ndarray:
    """Leaf (level 30) cell ids as uint64, walking the Hilbert curve 4 bits at a time."""
    n = face.astype(np.uint64) << np.uint64(S2_POS_BITS - 1)
    bits = face & SWAP_MASK
    block_mask = (1 << LOOKUP_BITS) - 1
    
    for k in range(7, -1, -1):
        shift = k * LOOKUP_BITS
        bits = bits + (((i >> shift) & block_mask) << (LOOKUP_BITS + 2))
        bits = bits + (((j >> shift) & block_mask) << 2)
        bits = LOOKUP_POS[bits]
        n = n | ((bits >> 2).astype(np.uint64) << np.uint64(2 * shift))
        bits = bits & (SWAP_MASK | INVERT_MASK)
    
    return n * np.uint64(2) + np.uint64(1)


def _s2_parent_ids(leaf_ids: np.ndarray, level: int) -> np.ndarray:
    lsb = np.uint64(1) << np.uint64(2 * (S2_MAX_LEVEL - level))
    return (leaf_ids & ~(lsb - np.uint64(1))) | lsb


def s2_cell_ids(lats: ArrayLike, lons: ArrayLike, level: int) -> np.ndarray:
    """
    Vectorised S2 cell ids at the given level.
    
    Args:
        lats: Latitudes in degrees
        lons: Longitudes in degrees
        level: S2 level, 0 (face) to 30 (leaf)
    
    Returns:
        int64 array of cell ids (signed, as the warehouse reports them)
    
    Raises:
        SpatialIndexError: On invalid level or coordinates
    """
    if not 0 <= level <= S2_MAX_LEVEL:
        raise SpatialIndexError(f"S2 level must be in [0, {S2_MAX_LEVEL}], got {level}")
    
    lats = np.asarray(lats, dtype=np.float64)
    lons = np.asarray(lons, dtype=np.float64)
    _validate_points(lats, lons)
    if lats.size == 0:
        return np.array([], dtype=np.int64)
    
    face, u, v = _s2_face_uv(lats, lons)
    i = _st_to_ij(_uv_to_st(u))
    j = _st_to_ij(_uv_to_st(v))
    
    ids = _s2_parent_ids(_s2_leaf_ids(face, i, j), level)
    return np.ascontiguousarray(ids).view(np.int64)


_SCHEMES = {
    "s2": s2_cell_ids,
}


# =============================================================================
# Public interface
# =============================================================================

def cell_ids(
    lats: ArrayLike,
    lons: ArrayLike,
    level: int,
    scheme: str = "s2",
) -> np.ndarray:
    """
    Map coordinate arrays to cell ids.
    
    Args:
        lats: Latitudes in degrees
        lons: Longitudes in degrees
        level: Resolution level for the scheme
        scheme: Cell scheme; only "s2" is supported
    
    Returns:
        int64 array of cell ids, aligned with the inputs
    """
    if scheme not in _SCHEMES:
        raise SpatialIndexError(f"Unknown cell scheme: {scheme}. Available: {list(_SCHEMES)}")
    return _SCHEMES[scheme](lats, lons, level)


def point_to_cell(lat: float, lon: float, level: int, scheme: str = "s2") -> int:
    """Cell id of a single point."""
    return int(cell_ids([lat], [lon], level, scheme)[0])


def _to_unsigned(cell_id: int) -> int:
    return int(cell_id) & _UINT64_MASK


def _to_signed(cell_id: int) -> int:
    return cell_id - (1 << 64) if cell_id >= (1 << 63) else cell_id


def cell_level(cell_id: int, scheme: str = "s2") -> int:
    """
    Level of a cell id.
    
    Raises:
        SpatialIndexError: If the id is not a valid cell id for the scheme
    """
    if scheme not in _SCHEMES:
        raise SpatialIndexError(f"Unknown cell scheme: {scheme}. Available: {list(_SCHEMES)}")
    
    unsigned = _to_unsigned(cell_id)
    if unsigned == 0 or (unsigned >> S2_POS_BITS) > 5:
        raise SpatialIndexError(f"Invalid S2 cell id: {cell_id}")
    
    trailing_zeros = (unsigned & -unsigned).bit_length() - 1
    if trailing_zeros % 2:
        raise SpatialIndexError(f"Invalid S2 cell id: {cell_id}")
    return S2_MAX_LEVEL - trailing_zeros // 2


def cell_parent(cell_id: int, level: int, scheme: str = "s2") -> int:
    """
    Ancestor of a cell at a coarser (or equal) level.
    
    Raises:
        SpatialIndexError: If level is finer than the cell's own level
    """
    own_level = cell_level(cell_id, scheme)
    if level > own_level or level < 0:
        raise SpatialIndexError(
            f"Cannot take level-{level} parent of a level-{own_level} cell"
        )
    
    lsb = 1 << (2 * (S2_MAX_LEVEL - level))
    parent = (_to_unsigned(cell_id) & -lsb) | lsb
    return _to_signed(parent)
