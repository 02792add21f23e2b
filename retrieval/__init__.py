"""
Hybrid Card Retrieval Module.

This module implements:
- Cosine similarity between embeddings
- Weighted score fusion over the modalities that are present
- Metadata filters (player, year, brand, grade range)
- Card stores (PostgreSQL + pgvector, in-memory fallback)
- Hybrid text + image search orchestration

Usage:
    from retrieval import HybridSearchOrchestrator, InMemoryCardStore, SearchQuery

    orchestrator = HybridSearchOrchestrator(store, text_embedder, image_embedder)
    results = await orchestrator.search(SearchQuery(text_query="Jordan rookie"))
"""

from .card_store import CardStore, PgVectorCardStore, build_ranked_statement, decode_row
from .hybrid_search import HybridSearchOrchestrator, SearchMode
from .memory_store import InMemoryCardStore
from .metadata_filters import build_predicate, extract_grade, matches
from .models import (
    IMAGE_EMBEDDING_DIM,
    TEXT_EMBEDDING_DIM,
    Card,
    CardFilters,
    RankedCard,
    ScoredCard,
    SearchQuery,
    SearchWeights,
)
from .score_fusion import FusionConvention, fuse, fuse_modalities
from .similarity import cosine_similarity

__all__ = [
    "TEXT_EMBEDDING_DIM",
    "IMAGE_EMBEDDING_DIM",
    "Card",
    "CardFilters",
    "RankedCard",
    "ScoredCard",
    "SearchQuery",
    "SearchWeights",
    "cosine_similarity",
    "fuse",
    "fuse_modalities",
    "FusionConvention",
    "build_predicate",
    "extract_grade",
    "matches",
    "CardStore",
    "PgVectorCardStore",
    "InMemoryCardStore",
    "build_ranked_statement",
    "decode_row",
    "HybridSearchOrchestrator",
    "SearchMode",
]
