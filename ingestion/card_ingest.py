"""
Card ingestion pipeline.

Flow:
Card metadata + image -> Canonical card text -> Text and image embeddings -> Card store

Metadata extraction from the card photo and image hosting happen upstream;
this pipeline receives the extracted fields and a reachable image reference.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from embeddings.text_embedder import create_card_text
from retrieval.card_store import CardStore
from retrieval.hybrid_search import ImageEmbedder, TextEmbedder
from retrieval.models import Card, Modality
from shared.errors import CardSearchError, EmbeddingUnavailable, InvalidQuery

logger = logging.getLogger(__name__)

METADATA_FIELDS = (
    "player",
    "year",
    "brand",
    "card_number",
    "psa_grade",
    "certification_number",
    "sport",
)


def _embed(
    modality: Modality, embed_fn: Optional[Callable[[str], List[float]]], value: str
):
    if embed_fn is None:
        raise EmbeddingUnavailable(modality.value, "no embedder configured")
    try:
        return embed_fn(value)
    except CardSearchError:
        raise
    except Exception as e:
        logger.warning(f"{modality.value} embedding failed during ingestion: {e}")
        raise EmbeddingUnavailable(modality.value, str(e)) from e


@dataclass
class IngestionStats:
    """Statistics from ingestion calls."""

    total_cards: int = 0
    successful: int = 0
    failed: int = 0
    without_text_embedding: int = 0


class CardIngestionPipeline:
    """
    Embed and store graded cards.

    Usage:
        pipeline = CardIngestionPipeline(store, text_embedder, image_embedder)
        card = pipeline.ingest(
            image_url="https://cards.example.com/57.jpg",
            player="Michael Jordan",
            year="1986",
            psa_grade="PSA 10",
        )
    """

    def __init__(
        self,
        store: CardStore,
        text_embedder: Optional[TextEmbedder],
        image_embedder: Optional[ImageEmbedder],
    ):
        """
        Args:
            store: Card store receiving the new rows
            text_embedder: Embeds the canonical card text (768d)
            image_embedder: Embeds the card image (512d)
        """
        self.store = store
        self.text_embedder = text_embedder
        self.image_embedder = image_embedder
        self.stats = IngestionStats()

    def ingest(
        self,
        image_url: str,
        image_ref: Optional[str] = None,
        **metadata: Optional[str],
    ) -> Card:
        """
        Embed one card and store it.

        Args:
            image_url: Stored location of the card image
            image_ref: Image to embed (URL, data URI or base64); defaults
                to image_url
            **metadata: Card fields (player, year, brand, card_number,
                psa_grade, certification_number, sport)

        Returns:
            The stored card

        Raises:
            InvalidQuery: Missing image URL or unknown metadata field
            EmbeddingUnavailable: Either embedding failed
            StoreUnavailable: The insert failed
        """
        self.stats.total_cards += 1

        image_url = (image_url or "").strip()
        if not image_url:
            self.stats.failed += 1
            raise InvalidQuery("image_url is required")
        unknown = sorted(set(metadata) - set(METADATA_FIELDS))
        if unknown:
            self.stats.failed += 1
            raise InvalidQuery(f"Unknown card fields: {', '.join(unknown)}")

        fields = {name: value for name, value in metadata.items() if value}

        try:
            card_text = create_card_text(**fields)
            text_embedding = None
            if card_text:
                text_embedding = _embed(
                    Modality.TEXT,
                    self.text_embedder.embed_text if self.text_embedder else None,
                    card_text,
                )
            else:
                # No metadata to embed; the card is still findable by image
                self.stats.without_text_embedding += 1

            image_embedding = _embed(
                Modality.IMAGE,
                self.image_embedder.embed_image if self.image_embedder else None,
                image_ref or image_url,
            )

            card = self.store.add_card(
                image_url=image_url,
                text_embedding=text_embedding,
                image_embedding=image_embedding,
                **fields,
            )
        except CardSearchError:
            self.stats.failed += 1
            raise

        self.stats.successful += 1
        logger.info(f"Ingested card {card.id}: {card_text or '(no metadata)'}")
        return card
