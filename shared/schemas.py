"""
Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from retrieval.models import Card, CardFilters, ScoredCard, SearchQuery, SearchWeights


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchFiltersModel(CamelModel):
    """Optional metadata filters."""

    player: Optional[str] = None
    year: Optional[Union[str, int]] = None
    brand: Optional[str] = None
    grade_min: Optional[float] = Field(default=None, description="Lowest numeric grade")
    grade_max: Optional[float] = Field(default=None, description="Highest numeric grade")

    def to_filters(self) -> CardFilters:
        return CardFilters(
            player=self.player or None,
            year=str(self.year) if self.year not in (None, "") else None,
            brand=self.brand or None,
            grade_min=self.grade_min,
            grade_max=self.grade_max,
        )


class SearchWeightsModel(CamelModel):
    """Fusion weights per modality."""

    text: float = 0.5
    image: float = 0.5


class SearchRequest(CamelModel):
    """Request model for hybrid card search."""

    text_query: Optional[str] = Field(default=None, description="Free text query")
    image_query: Optional[str] = Field(
        default=None, description="Image URL, data URI or raw base64"
    )
    filters: SearchFiltersModel = Field(default_factory=SearchFiltersModel)
    weights: Optional[SearchWeightsModel] = None
    # Range is checked by the search core so errors stay InvalidQuery
    limit: int = Field(default=10, description="Maximum number of results")

    def to_query(self) -> SearchQuery:
        weights = None
        if self.weights is not None:
            weights = SearchWeights(text=self.weights.text, image=self.weights.image)
        return SearchQuery(
            text_query=self.text_query,
            image_query=self.image_query,
            filters=self.filters.to_filters(),
            weights=weights,
            limit=self.limit,
        )


class CardModel(CamelModel):
    """Public card fields, without embeddings."""

    id: str
    player: Optional[str] = None
    year: Optional[str] = None
    brand: Optional[str] = None
    card_number: Optional[str] = None
    psa_grade: Optional[str] = None
    certification_number: Optional[str] = None
    sport: Optional[str] = None
    image_url: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_card(cls, card: Card) -> "CardModel":
        return cls.model_validate(card.to_dict())


class CardResult(CardModel):
    """A single search result."""

    score: float

    @classmethod
    def from_scored(cls, scored: ScoredCard) -> "CardResult":
        return cls.model_validate(scored.to_dict())


class CardCreateRequest(CamelModel):
    """Request model for adding a card with already-extracted metadata."""

    image_url: str = Field(description="Stored location of the card image")
    image_data: Optional[str] = Field(
        default=None,
        description="Image to embed as data URI or raw base64; imageUrl is fetched when absent",
    )
    player: Optional[str] = None
    year: Optional[Union[str, int]] = None
    brand: Optional[str] = None
    card_number: Optional[str] = None
    psa_grade: Optional[str] = None
    certification_number: Optional[str] = None
    sport: Optional[str] = None

    def metadata(self) -> Dict[str, Optional[str]]:
        return {
            "player": self.player,
            "year": str(self.year) if self.year not in (None, "") else None,
            "brand": self.brand,
            "card_number": self.card_number,
            "psa_grade": self.psa_grade,
            "certification_number": self.certification_number,
            "sport": self.sport,
        }


class CardCreateResponse(CamelModel):
    """Response model for card creation."""

    success: bool = True
    card_id: str
    card: CardModel


class CardListResponse(BaseModel):
    """All cards in creation order."""

    cards: List[CardModel]


class SearchResponse(BaseModel):
    """Response model for search endpoint."""

    results: List[CardResult]


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    version: str
    store_connected: bool
    card_count: int


class ErrorResponse(BaseModel):
    """Error body for search failures."""

    error: str
    detail: str
    modality: Optional[str] = None
