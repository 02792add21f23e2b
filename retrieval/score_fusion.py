"""
Score fusion for hybrid text + image retrieval.

Combines per-modality cosine similarities into one ranking score with a
weighted average:

    score = sum(value * weight) / sum(weight)

Only modalities that actually produced a similarity contribute. A card with
no image embedding is scored on its text similarity alone instead of being
treated as a zero image match.
"""

from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .models import SearchWeights


class FusionConvention(Enum):
    """How a missing modality similarity is treated when ranking."""

    # Drop the missing term and renormalize over the present weights
    DROP_MISSING = "drop_missing"
    # Count the missing term as zero similarity (legacy ranking behaviour)
    ZERO_COALESCE = "zero_coalesce"


def fuse(scores: Sequence[Tuple[float, float]]) -> float:
    """
    Weighted average of (value, weight) pairs.

    Args:
        scores: Pairs of similarity value and weight

    Returns:
        Fused score, 0.0 when the weights sum to zero
    """
    total_weight = sum(weight for _, weight in scores)
    if total_weight == 0:
        return 0.0

    weighted_sum = sum(value * weight for value, weight in scores)
    return weighted_sum / total_weight


def fusion_terms(
    text_similarity: Optional[float],
    image_similarity: Optional[float],
    weights: SearchWeights,
) -> List[Tuple[float, float]]:
    """Build fusion terms, skipping modalities with no similarity."""
    terms = []
    if text_similarity is not None:
        terms.append((text_similarity, weights.text))
    if image_similarity is not None:
        terms.append((image_similarity, weights.image))
    return terms


def fuse_modalities(
    text_similarity: Optional[float],
    image_similarity: Optional[float],
    weights: SearchWeights,
) -> Optional[float]:
    """
    Fuse text and image similarities over the signals that are present.

    Returns:
        Fused score, or None when neither similarity is present
    """
    terms = fusion_terms(text_similarity, image_similarity, weights)
    if not terms:
        return None
    return fuse(terms)


def ranking_score(
    text_similarity: Optional[float],
    image_similarity: Optional[float],
    weights: SearchWeights,
    convention: FusionConvention = FusionConvention.DROP_MISSING,
) -> Optional[float]:
    """
    Score used to order results when both query vectors are given.

    DROP_MISSING matches fuse_modalities exactly, including None when the
    present weights sum to zero. ZERO_COALESCE reproduces the legacy ORDER BY
    (unnormalized weighted sum with missing terms as 0).
    """
    if convention is FusionConvention.ZERO_COALESCE:
        return (text_similarity or 0.0) * weights.text + (
            image_similarity or 0.0
        ) * weights.image

    terms = fusion_terms(text_similarity, image_similarity, weights)
    if sum(weight for _, weight in terms) == 0:
        return None
    return fuse(terms)
