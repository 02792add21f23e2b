"""
Ingestion Module.

Turns extracted card metadata plus a card image into a stored card with text
and image embeddings.

Usage:
    from ingestion import CardIngestionPipeline

    pipeline = CardIngestionPipeline(store, text_embedder, image_embedder)
    card = pipeline.ingest(image_url="https://cards.example.com/57.jpg", player="Jordan")
"""

from .card_ingest import CardIngestionPipeline, IngestionStats

__all__ = ["CardIngestionPipeline", "IngestionStats"]
