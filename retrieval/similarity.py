"""
Vector similarity for embedding post-processing.

The pgvector store computes cosine distance inside PostgreSQL; the functions
here reproduce the same score client-side (in-memory store, score checks)
so both paths agree.
"""

import math
from typing import Sequence

import numpy as np

from shared.errors import DimensionMismatch


def cosine_similarity(u: Sequence[float], v: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors of equal length.

    Args:
        u: First vector
        v: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    a = np.asarray(u, dtype=np.float64).ravel()
    b = np.asarray(v, dtype=np.float64).ravel()

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0], "cosine_similarity")

    # sqrt(|a|^2 * |b|^2) keeps similarity(u, u) exactly 1.0
    denominator = math.sqrt(float(np.dot(a, a)) * float(np.dot(b, b)))
    if denominator == 0:
        return 0.0

    similarity = float(np.dot(a, b)) / denominator
    return max(-1.0, min(1.0, similarity))


def distance_to_similarity(distance: float) -> float:
    """Convert a cosine distance (pgvector ``<=>``) to a similarity."""
    return 1.0 - distance
