"""
In-memory card store.

Client-side fallback for environments without a vector-capable database
(local development, tests). Filtering, similarity and fusion use the same
functions as the rest of the core, so ordering matches PgVectorCardStore.
"""

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from shared.errors import InvalidQuery

from .metadata_filters import matches
from .models import (
    IMAGE_EMBEDDING_DIM,
    TEXT_EMBEDDING_DIM,
    Card,
    CardFilters,
    RankedCard,
    SearchWeights,
    validate_dimension,
)
from .score_fusion import FusionConvention, ranking_score
from .similarity import cosine_similarity

logger = logging.getLogger(__name__)


def _tie_break(ranked: RankedCard):
    return (ranked.card.created_at, ranked.card.id)


class InMemoryCardStore:
    """
    Card store holding cards in a Python list.

    Usage:
        store = InMemoryCardStore()
        store.add_card(image_url="s3://cards/1.jpg", player="Jordan",
                       text_embedding=vec)
        rows = store.ranked_search(vec, None, CardFilters(), 10, SearchWeights())
    """

    def __init__(self, convention: FusionConvention = FusionConvention.DROP_MISSING):
        self.convention = convention
        self._cards: List[Card] = []
        self._lock = threading.Lock()

    def add_card(
        self,
        image_url: str,
        text_embedding: Optional[Sequence[float]] = None,
        image_embedding: Optional[Sequence[float]] = None,
        card_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        **metadata: Optional[str],
    ) -> Card:
        """
        Insert a card.

        created_at defaults to now, bumped forward if needed so it stays
        strictly after the previous insert.

        Raises:
            DimensionMismatch: If an embedding has the wrong dimension
        """
        with self._lock:
            if card_id is None:
                card_id = str(uuid.uuid4())
            if any(card.id == card_id for card in self._cards):
                raise ValueError(f"Card id already used: {card_id}")

            if created_at is None:
                created_at = datetime.now(timezone.utc)
                if self._cards and created_at <= self._cards[-1].created_at:
                    created_at = self._cards[-1].created_at + timedelta(microseconds=1)

            card = Card(
                id=card_id,
                image_url=image_url,
                created_at=created_at,
                text_embedding=text_embedding,
                image_embedding=image_embedding,
                **metadata,
            )
            self._cards.append(card)

        logger.debug(f"Stored card {card.id}")
        return card

    def count(self) -> int:
        return len(self._cards)

    def list_cards(self) -> List[Card]:
        """Every card in creation order."""
        with self._lock:
            cards = list(self._cards)
        return sorted(cards, key=lambda card: (card.created_at, card.id))

    def ranked_search(
        self,
        text_vector: Optional[Sequence[float]],
        image_vector: Optional[Sequence[float]],
        filters: CardFilters,
        limit: int,
        weights: SearchWeights,
    ) -> List[RankedCard]:
        """
        Filter, score and order cards client-side.

        Args:
            text_vector: Query text embedding (768d) or None
            image_vector: Query image embedding (512d) or None
            filters: Metadata constraints
            limit: Maximum rows, must be positive
            weights: Fusion weights for hybrid ordering

        Returns:
            Ranked rows, at most ``limit``
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidQuery(f"limit must be a positive integer, got {limit!r}")
        if text_vector is not None:
            text_vector = validate_dimension(
                text_vector, TEXT_EMBEDDING_DIM, "text query vector"
            )
        if image_vector is not None:
            image_vector = validate_dimension(
                image_vector, IMAGE_EMBEDDING_DIM, "image query vector"
            )

        with self._lock:
            if filters.is_empty():
                candidates = list(self._cards)
            else:
                candidates = [card for card in self._cards if matches(card, filters)]

        rows = []
        for card in candidates:
            text_similarity = None
            image_similarity = None
            if text_vector is not None and card.text_embedding is not None:
                text_similarity = cosine_similarity(text_vector, card.text_embedding)
            if image_vector is not None and card.image_embedding is not None:
                image_similarity = cosine_similarity(image_vector, card.image_embedding)
            rows.append(RankedCard(card, text_similarity, image_similarity))

        # Stable sorts: tie-break first, then the primary key
        rows.sort(key=_tie_break)

        if text_vector is not None and image_vector is not None:
            scores = {
                id(row): ranking_score(
                    row.text_similarity,
                    row.image_similarity,
                    weights,
                    self.convention,
                )
                for row in rows
            }
            rows.sort(key=lambda r: (scores[id(r)] is None, -(scores[id(r)] or 0.0)))
        elif text_vector is not None:
            rows.sort(
                key=lambda r: (r.text_similarity is None, -(r.text_similarity or 0.0))
            )
        elif image_vector is not None:
            rows.sort(
                key=lambda r: (r.image_similarity is None, -(r.image_similarity or 0.0))
            )

        return rows[:limit]
