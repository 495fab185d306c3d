"""Vector validation shared by the chunk stores and the vector index."""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from rdf_kb.errors import DimensionMismatchError

VectorLike = Union[Sequence[float], np.ndarray]


def as_vector(vector: VectorLike, dimension: int) -> np.ndarray:
    """
    Convert to a 1-D float32 array of exactly ``dimension`` entries.

    Raises:
        DimensionMismatchError: If the length differs from ``dimension``
        ValueError: If the vector is not 1-D or contains NaN/inf
    """
    arr = np.asarray(vector, dtype=np.float32)
    if arr.ndim != 1:
        raise ValueError(f"Expected a 1-D vector, got shape {arr.shape}")
    if arr.shape[0] != dimension:
        raise DimensionMismatchError(dimension, int(arr.shape[0]))
    if not np.all(np.isfinite(arr)):
        raise ValueError("Vector contains NaN or infinite values")
    return arr


def is_empty_vector(vector: Optional[VectorLike]) -> bool:
    """True for None or a zero-length vector."""
    return vector is None or len(vector) == 0


def storable_embedding(vector: Optional[VectorLike], dimension: int) -> Optional[list[float]]:
    """
    Prepare an embedding for a FLOAT[dimension] column.

    Zero-norm vectors have no cosine direction and are stored as NULL,
    which keeps the chunk out of vector search but not out of lexical search.
    """
    if is_empty_vector(vector):
        return None
    arr = as_vector(vector, dimension)
    if not np.any(arr):
        return None
    return arr.tolist()
