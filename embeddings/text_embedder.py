"""
Text embedding service for card metadata and search queries.

CRITICAL: Stored card text embeddings and query embeddings must come from the
same model. When the model changes, every card must be re-embedded.

Card text is built deterministically from metadata (create_card_text) so the
same card always produces the same embedding input.
"""

import logging
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from app.config import EmbeddingConfig
from retrieval.models import Modality
from shared.errors import EmbeddingUnavailable

from .model_handle import LazyModelHandle, sentence_transformer_handle

logger = logging.getLogger(__name__)


def create_card_text(
    player: Optional[str] = None,
    year: Optional[str] = None,
    brand: Optional[str] = None,
    card_number: Optional[str] = None,
    psa_grade: Optional[str] = None,
    sport: Optional[str] = None,
    certification_number: Optional[str] = None,
) -> str:
    """
    Canonical text for a card's text embedding.

    Joins player, year, brand, card number, grade and sport with single
    spaces, skipping empty fields. The certification number is accepted so
    callers can pass full metadata, but it is never part of the text.
    """
    parts = [player, year, brand, card_number, psa_grade, sport]
    return " ".join(part for part in parts if part)


class TextEmbeddingService:
    """
    Sentence-transformers text embedder producing 768d vectors.

    Usage:
        service = TextEmbeddingService(EmbeddingConfig())
        vector = service.embed_text("Jordan rookie PSA 10")
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        model_handle: Optional[LazyModelHandle[SentenceTransformer]] = None,
    ):
        self.config = config or EmbeddingConfig()
        self._model_handle = model_handle or sentence_transformer_handle(
            self.config.text_model_name, self.config.device
        )

    def preprocess_text(self, text: str) -> str:
        """
        Deterministic text preprocessing.
        IMPORTANT: Keep this consistent across all embeddings.
        """
        # Normalize whitespace
        text = " ".join(text.split())
        if len(text) > self.config.max_text_chars:
            text = text[: self.config.max_text_chars]
        return text

    def embed_text(self, text: str) -> List[float]:
        """
        Embed one text.

        Args:
            text: Query or card text

        Returns:
            Embedding of config.text_dimension floats

        Raises:
            EmbeddingUnavailable: Model failed to load or encode, or returned
                a vector of the wrong shape
        """
        processed = self.preprocess_text(text)
        if not processed:
            raise EmbeddingUnavailable(Modality.TEXT.value, "text is empty")

        try:
            model = self._model_handle.get()
            vector = model.encode(
                processed,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except Exception as e:
            logger.warning(f"Text embedding failed: {e}")
            raise EmbeddingUnavailable(Modality.TEXT.value, str(e)) from e

        vector = np.asarray(vector, dtype=np.float32).ravel()
        if vector.shape[0] != self.config.text_dimension:
            raise EmbeddingUnavailable(
                Modality.TEXT.value,
                f"model returned {vector.shape[0]} dimensions, "
                f"expected {self.config.text_dimension}",
            )
        return vector.tolist()
