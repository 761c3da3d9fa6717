"""
Vector similarity primitives.

Distance and similarity over fixed-length embedding vectors.
"""

from typing import Sequence, Union

import numpy as np

from .errors import DimensionMismatch

Vector = Union[Sequence[float], np.ndarray]


def _pair(a: Vector, b: Vector):
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise DimensionMismatch(len(va), len(vb))
    return va, vb


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine of the angle between ``a`` and ``b``.

    Returns:
        Float in [-1, 1]; 0.0 when either vector has zero norm

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    va, vb = _pair(a, b)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push identical directions just past the bounds
    return max(-1.0, min(1.0, similarity))


def euclidean_distance(a: Vector, b: Vector) -> float:
    """L2 norm of ``a - b``.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    va, vb = _pair(a, b)
    return float(np.linalg.norm(va - vb))
