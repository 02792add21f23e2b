"""
Hybrid text + image card search.

Flow:
1. Validate the query
2. Embed text and image queries concurrently (only those given)
3. Filtered, ranked query against the card store
4. Fuse per-card similarities into the final score

Each modality stays optional. A text-only query ranks by text similarity, an
image-only query by image similarity, and a query with neither returns the
metadata matches in store order with score 1.0.
"""

import asyncio
import logging
import math
import time
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from monitoring.latency_metrics import LatencyCollector, LatencyMetrics
from shared.errors import DimensionMismatch, EmbeddingUnavailable, StoreUnavailable

from .card_store import CardStore
from .models import (
    EMBEDDING_DIMENSIONS,
    CardFilters,
    Modality,
    RankedCard,
    ScoredCard,
    SearchQuery,
    SearchWeights,
    validate_dimension,
)
from .score_fusion import fuse_modalities

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 1.0


class TextEmbedder(Protocol):
    def embed_text(self, text: str) -> List[float]:
        ...


class ImageEmbedder(Protocol):
    def embed_image(self, image_ref: str) -> List[float]:
        ...


class SearchMode(str, Enum):
    FALLBACK = "fallback"
    TEXT = "text"
    IMAGE = "image"
    HYBRID = "hybrid"


def final_score(ranked: RankedCard, weights: SearchWeights) -> float:
    """Displayed score for a ranked row; 0.0 when no signal is present."""
    score = fuse_modalities(ranked.text_similarity, ranked.image_similarity, weights)
    return 0.0 if score is None else score


class HybridSearchOrchestrator:
    """
    Top-level hybrid search over the card store.

    Usage:
        orchestrator = HybridSearchOrchestrator(
            store=PgVectorCardStore(database_url),
            text_embedder=TextEmbeddingService(config),
            image_embedder=ImageEmbeddingService(config),
        )
        results = await orchestrator.search(SearchQuery(text_query="Jordan rookie"))
    """

    def __init__(
        self,
        store: CardStore,
        text_embedder: Optional[TextEmbedder] = None,
        image_embedder: Optional[ImageEmbedder] = None,
        default_weights: Optional[SearchWeights] = None,
        embedding_timeout_s: Optional[float] = 30.0,
        store_timeout_s: Optional[float] = 10.0,
        latency_collector: Optional[LatencyCollector] = None,
    ):
        """
        Args:
            store: Card store implementing ranked_search
            text_embedder: Text embedding collaborator (768d)
            image_embedder: Image embedding collaborator (512d)
            default_weights: Weights used when a query carries none
            embedding_timeout_s: Per-call embedding timeout, None to wait forever
            store_timeout_s: Ranked query timeout, None to wait forever
            latency_collector: Optional metrics sink
        """
        self.store = store
        self.text_embedder = text_embedder
        self.image_embedder = image_embedder
        self.default_weights = default_weights or SearchWeights()
        self.embedding_timeout_s = embedding_timeout_s
        self.store_timeout_s = store_timeout_s
        self.latency_collector = latency_collector

    async def search(
        self, query: SearchQuery, request_id: Optional[str] = None
    ) -> List[ScoredCard]:
        """
        Run a hybrid search.

        Args:
            query: Search query
            request_id: Optional id for log correlation

        Returns:
            Results ordered by score descending (store order in fallback mode)

        Raises:
            InvalidQuery: Bad limit, weights, filters or blank query text
            EmbeddingUnavailable: A requested query embedding failed
            StoreUnavailable: The store query failed or timed out
        """
        query.validate()
        weights = query.weights or self.default_weights
        start_time = time.time()

        text_vector, image_vector = await self._embed_queries(query)
        embedding_ms = (time.time() - start_time) * 1000

        mode = self._mode(text_vector, image_vector)
        logger.debug(f"[{request_id}] Search mode: {mode.value}")

        store_start = time.time()
        rows = await self._ranked_search(
            text_vector, image_vector, query.filters, query.limit, weights
        )
        store_ms = (time.time() - store_start) * 1000

        if mode is SearchMode.FALLBACK:
            results = [ScoredCard(row.card, FALLBACK_SCORE) for row in rows]
        else:
            results = [ScoredCard(row.card, final_score(row, weights)) for row in rows]

        total_ms = (time.time() - start_time) * 1000
        if self.latency_collector is not None:
            self.latency_collector.record(
                LatencyMetrics(
                    total_ms=total_ms,
                    embedding_ms=embedding_ms if mode is not SearchMode.FALLBACK else None,
                    store_ms=store_ms,
                    mode=mode.value,
                    request_id=request_id,
                )
            )

        logger.info(
            f"[{request_id}] Search complete: mode={mode.value} "
            f"results={len(results)} in {total_ms:.1f}ms"
        )
        return results

    def search_blocking(self, query: SearchQuery) -> List[ScoredCard]:
        """Synchronous wrapper for callers outside an event loop."""
        return asyncio.run(self.search(query))

    @staticmethod
    def _mode(text_vector, image_vector) -> SearchMode:
        if text_vector is not None and image_vector is not None:
            return SearchMode.HYBRID
        if text_vector is not None:
            return SearchMode.TEXT
        if image_vector is not None:
            return SearchMode.IMAGE
        return SearchMode.FALLBACK

    async def _embed_queries(
        self, query: SearchQuery
    ) -> Tuple[Optional[List[float]], Optional[List[float]]]:
        """Embed whichever query parts are present, concurrently."""
        text_call = None
        image_call = None

        if query.text_query is not None:
            text_call = self._embed(
                Modality.TEXT,
                self.text_embedder.embed_text if self.text_embedder else None,
                query.text_query,
            )
        if query.image_query is not None:
            image_call = self._embed(
                Modality.IMAGE,
                self.image_embedder.embed_image if self.image_embedder else None,
                query.image_query,
            )

        calls = [call for call in (text_call, image_call) if call is not None]
        if not calls:
            return None, None

        # Wait for every call so no failure goes unretrieved; text errors win
        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        vectors = iter(outcomes)
        text_vector = next(vectors) if text_call is not None else None
        image_vector = next(vectors) if image_call is not None else None
        return text_vector, image_vector

    async def _embed(
        self,
        modality: Modality,
        embed_fn: Optional[Callable[[str], Sequence[float]]],
        value: str,
    ) -> List[float]:
        if embed_fn is None:
            raise EmbeddingUnavailable(modality.value, "no embedder configured")

        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(embed_fn, value), timeout=self.embedding_timeout_s
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"{modality.value} embedding timed out")
            raise EmbeddingUnavailable(
                modality.value, f"timed out after {self.embedding_timeout_s}s"
            ) from e
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.warning(f"{modality.value} embedding failed: {e}")
            raise EmbeddingUnavailable(modality.value, str(e)) from e

        return self._check_vector(modality, vector)

    @staticmethod
    def _check_vector(modality: Modality, vector) -> List[float]:
        """Reject malformed collaborator output instead of scoring with it."""
        if vector is None:
            raise EmbeddingUnavailable(modality.value, "embedder returned nothing")
        try:
            values = validate_dimension(
                vector, EMBEDDING_DIMENSIONS[modality], f"{modality.value} embedding"
            )
        except DimensionMismatch as e:
            raise EmbeddingUnavailable(modality.value, str(e)) from e
        except (TypeError, ValueError) as e:
            raise EmbeddingUnavailable(
                modality.value, f"embedder returned non-numeric output: {e}"
            ) from e
        if not all(math.isfinite(x) for x in values):
            raise EmbeddingUnavailable(modality.value, "embedding has non-finite values")
        return values

    async def _ranked_search(
        self,
        text_vector: Optional[List[float]],
        image_vector: Optional[List[float]],
        filters: CardFilters,
        limit: int,
        weights: SearchWeights,
    ) -> List[RankedCard]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.store.ranked_search,
                    text_vector,
                    image_vector,
                    filters,
                    limit,
                    weights,
                ),
                timeout=self.store_timeout_s,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Card store query timed out after {self.store_timeout_s}s")
            raise StoreUnavailable(
                f"card store query timed out after {self.store_timeout_s}s"
            ) from e
