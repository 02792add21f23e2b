"""
Configuration module for the card search service.
Manages all environment variables and settings with validation.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from retrieval.models import IMAGE_EMBEDDING_DIM, TEXT_EMBEDDING_DIM, SearchWeights
from retrieval.score_fusion import FusionConvention


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class EmbeddingConfig:
    """Embedding model configuration - re-embed every card when this changes."""
    text_model_name: str = field(
        default_factory=lambda: os.getenv(
            "TEXT_EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2"
        )
    )
    text_dimension: int = TEXT_EMBEDDING_DIM
    image_model_name: str = field(
        default_factory=lambda: os.getenv("IMAGE_EMBEDDING_MODEL", "clip-ViT-B-32")
    )
    image_dimension: int = IMAGE_EMBEDDING_DIM
    normalize: bool = True
    device: Optional[str] = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE"))
    max_text_chars: int = 2048
    image_fetch_timeout: float = field(
        default_factory=lambda: _env_float("IMAGE_FETCH_TIMEOUT", "10")
    )


@dataclass
class SearchConfig:
    """Hybrid search defaults and request-boundary timeouts."""
    default_text_weight: float = field(
        default_factory=lambda: _env_float("SEARCH_TEXT_WEIGHT", "0.5")
    )
    default_image_weight: float = field(
        default_factory=lambda: _env_float("SEARCH_IMAGE_WEIGHT", "0.5")
    )
    default_limit: int = 10
    embedding_timeout_s: float = field(
        default_factory=lambda: _env_float("EMBEDDING_TIMEOUT_S", "30")
    )
    store_timeout_s: float = field(
        default_factory=lambda: _env_float("STORE_TIMEOUT_S", "10")
    )
    fusion_convention: FusionConvention = field(
        default_factory=lambda: FusionConvention(
            os.getenv("FUSION_CONVENTION", FusionConvention.DROP_MISSING.value)
        )
    )

    @property
    def default_weights(self) -> SearchWeights:
        return SearchWeights(
            text=self.default_text_weight, image=self.default_image_weight
        )


@dataclass
class Settings:
    """Main application settings loaded from environment."""

    # PostgreSQL + pgvector; the in-memory store is used when unset
    DATABASE_URL: Optional[str] = field(default_factory=lambda: os.getenv("DATABASE_URL"))
    DB_POOL_SIZE: int = field(default_factory=lambda: int(os.getenv("DB_POOL_SIZE", "5")))
    DB_STATEMENT_TIMEOUT_MS: int = field(
        default_factory=lambda: int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000"))
    )
    DB_CREATE_SCHEMA: bool = field(
        default_factory=lambda: os.getenv("DB_CREATE_SCHEMA", "false").lower() == "true"
    )

    # Application settings
    DEBUG: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    CORS_ORIGINS: str = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*"))

    # Nested configs
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)

    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
