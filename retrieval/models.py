"""
Core data types for card retrieval.

Cards are read-only from the retrieval core's point of view. Embedding
dimensions are fixed per modality and checked whenever a vector enters the
core, either from the store or from an embedding collaborator.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from shared.errors import DimensionMismatch, InvalidQuery

TEXT_EMBEDDING_DIM = 768
IMAGE_EMBEDDING_DIM = 512


class DistanceMetric(Enum):
    """Distance metric declared for an embedding column."""

    COSINE = "cosine"


class Modality(str, Enum):
    TEXT = "text"
    IMAGE = "image"


EMBEDDING_DIMENSIONS = {
    Modality.TEXT: TEXT_EMBEDDING_DIM,
    Modality.IMAGE: IMAGE_EMBEDDING_DIM,
}


def validate_dimension(
    vector: Sequence[float], expected: int, what: Optional[str] = None
) -> List[float]:
    """
    Check a vector's length and return it as a list of floats.

    Raises:
        DimensionMismatch: If the length differs from ``expected``.
    """
    values = [float(x) for x in vector]
    if len(values) != expected:
        raise DimensionMismatch(expected, len(values), what)
    return values


@dataclass(frozen=True)
class Card:
    """A graded card with its metadata and optional embeddings."""

    id: str
    image_url: str
    created_at: datetime
    player: Optional[str] = None
    year: Optional[str] = None
    brand: Optional[str] = None
    card_number: Optional[str] = None
    psa_grade: Optional[str] = None
    certification_number: Optional[str] = None
    sport: Optional[str] = None
    text_embedding: Optional[List[float]] = field(
        default=None, compare=False, repr=False
    )
    image_embedding: Optional[List[float]] = field(
        default=None, compare=False, repr=False
    )

    def __post_init__(self):
        if self.text_embedding is not None:
            object.__setattr__(
                self,
                "text_embedding",
                validate_dimension(
                    self.text_embedding, TEXT_EMBEDDING_DIM, "text_embedding"
                ),
            )
        if self.image_embedding is not None:
            object.__setattr__(
                self,
                "image_embedding",
                validate_dimension(
                    self.image_embedding, IMAGE_EMBEDDING_DIM, "image_embedding"
                ),
            )

    def to_dict(self) -> Dict[str, Any]:
        """Public card fields in camelCase, without embeddings."""
        return {
            "id": self.id,
            "player": self.player,
            "year": self.year,
            "brand": self.brand,
            "cardNumber": self.card_number,
            "psaGrade": self.psa_grade,
            "certificationNumber": self.certification_number,
            "sport": self.sport,
            "imageUrl": self.image_url,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class CardFilters:
    """
    Optional metadata constraints, ANDed together.

    player and brand match as case-insensitive substrings, year matches
    exactly, grade bounds compare against the number embedded in the grade
    label.
    """

    player: Optional[str] = None
    year: Optional[str] = None
    brand: Optional[str] = None
    grade_min: Optional[float] = None
    grade_max: Optional[float] = None

    @property
    def has_grade_bound(self) -> bool:
        return self.grade_min is not None or self.grade_max is not None

    def is_empty(self) -> bool:
        return (
            not self.player
            and not self.year
            and not self.brand
            and not self.has_grade_bound
        )

    def validate(self) -> None:
        for name in ("grade_min", "grade_max"):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise InvalidQuery(f"{name} must be a finite number")
        if (
            self.grade_min is not None
            and self.grade_max is not None
            and self.grade_min > self.grade_max
        ):
            raise InvalidQuery(
                f"grade_min ({self.grade_min}) is greater than grade_max ({self.grade_max})"
            )


@dataclass(frozen=True)
class SearchWeights:
    """Per-modality fusion weights."""

    text: float = 0.5
    image: float = 0.5

    def validate(self) -> None:
        for name in ("text", "image"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidQuery(f"{name} weight must be a non-negative number")


@dataclass(frozen=True)
class SearchQuery:
    """
    A hybrid search request.

    Attributes:
        text_query: Free text to embed and match against text embeddings
        image_query: URL, data URI or raw base64 image to match against
            image embeddings
        filters: Metadata constraints
        weights: Fusion weights; the configured default is used when None
        limit: Maximum number of results, must be positive
    """

    text_query: Optional[str] = None
    image_query: Optional[str] = None
    filters: CardFilters = field(default_factory=CardFilters)
    weights: Optional[SearchWeights] = None
    limit: int = 10

    def validate(self) -> None:
        if isinstance(self.limit, bool) or not isinstance(self.limit, int):
            raise InvalidQuery("limit must be an integer")
        if self.limit <= 0:
            raise InvalidQuery(f"limit must be positive, got {self.limit}")
        if self.text_query is not None and not self.text_query.strip():
            raise InvalidQuery("text_query must not be empty")
        if self.image_query is not None and not self.image_query.strip():
            raise InvalidQuery("image_query must not be empty")
        self.filters.validate()
        if self.weights is not None:
            self.weights.validate()


@dataclass(frozen=True)
class RankedCard:
    """A store row: the card plus the similarities the query asked for."""

    card: Card
    text_similarity: Optional[float] = None
    image_similarity: Optional[float] = None


@dataclass(frozen=True)
class ScoredCard:
    """A search result with its final fused score."""

    card: Card
    score: float

    def to_dict(self) -> Dict[str, Any]:
        result = self.card.to_dict()
        result["score"] = self.score
        return result
