"""
Embeddings Module.

CRITICAL: Never mix vectors from different models in the same column.

This module handles:
- Text embeddings for card metadata and text queries (768d)
- CLIP image embeddings for card photos and image queries (512d)
- Lazily loaded model handles owned by each embedder

Usage:
    from embeddings import TextEmbeddingService, ImageEmbeddingService

    text_vector = TextEmbeddingService().embed_text("Jordan rookie")
    image_vector = ImageEmbeddingService().embed_image("https://example.com/card.jpg")
"""

from .image_embedder import ImageEmbeddingService, load_image, read_image_bytes
from .model_handle import LazyModelHandle, sentence_transformer_handle
from .text_embedder import TextEmbeddingService, create_card_text

__all__ = [
    "TextEmbeddingService",
    "ImageEmbeddingService",
    "LazyModelHandle",
    "sentence_transformer_handle",
    "create_card_text",
    "load_image",
    "read_image_bytes",
]
