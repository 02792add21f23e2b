"""
FastAPI application for graded card search.

Thin HTTP layer over the hybrid search core:
- Composition root (settings -> embedders -> store -> orchestrator)
- Request tracing
- Error kinds mapped to status codes
- Health and latency metrics
"""

import asyncio
import functools
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from embeddings import ImageEmbeddingService, TextEmbeddingService
from ingestion import CardIngestionPipeline
from monitoring.latency_metrics import LatencyCollector
from retrieval import HybridSearchOrchestrator, InMemoryCardStore, PgVectorCardStore
from shared.errors import (
    CardSearchError,
    DimensionMismatch,
    EmbeddingUnavailable,
    InvalidQuery,
    StoreUnavailable,
)
from shared.schemas import (
    CardCreateRequest,
    CardCreateResponse,
    CardListResponse,
    CardModel,
    CardResult,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResponse,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

__version__ = "1.0.0"

ERROR_STATUS_CODES = {
    InvalidQuery: 400,
    EmbeddingUnavailable: 503,
    StoreUnavailable: 503,
    DimensionMismatch: 500,
}


def build_orchestrator(
    settings: Settings, latency_collector: Optional[LatencyCollector] = None
) -> HybridSearchOrchestrator:
    """Wire embedders and the card store from settings."""
    convention = settings.search.fusion_convention

    if settings.DATABASE_URL:
        store = PgVectorCardStore(
            settings.DATABASE_URL,
            pool_size=settings.DB_POOL_SIZE,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
            convention=convention,
        )
        if settings.DB_CREATE_SCHEMA:
            store.create_schema()
    else:
        logger.warning("DATABASE_URL is not set, using the in-memory card store")
        store = InMemoryCardStore(convention=convention)

    return HybridSearchOrchestrator(
        store=store,
        text_embedder=TextEmbeddingService(settings.embedding),
        image_embedder=ImageEmbeddingService(settings.embedding),
        default_weights=settings.search.default_weights,
        embedding_timeout_s=settings.search.embedding_timeout_s,
        store_timeout_s=settings.search.store_timeout_s,
        latency_collector=latency_collector,
    )


async def card_search_error_handler(request: Request, exc: CardSearchError):
    """Map each search error kind to its own status code."""
    request_id = getattr(request.state, "request_id", "unknown")
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.warning(f"[{request_id}] Search failed: {exc}")

    body = ErrorResponse(
        error=exc.kind,
        detail=str(exc),
        modality=getattr(exc, "modality", None),
    )
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


def create_app(
    orchestrator: Optional[HybridSearchOrchestrator] = None,
    app_settings: Optional[Settings] = None,
    ingestion: Optional[CardIngestionPipeline] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        orchestrator: Pre-built orchestrator; built from settings at startup
            when None
        app_settings: Settings override
        ingestion: Pre-built ingestion pipeline; shares the orchestrator's
            store and embedders when None
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info(f"Starting card search v{__version__}")

        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator(
                app_settings, app.state.latency_collector
            )
        if app.state.ingestion is None:
            orchestrator = app.state.orchestrator
            app.state.ingestion = CardIngestionPipeline(
                orchestrator.store,
                orchestrator.text_embedder,
                orchestrator.image_embedder,
            )

        try:
            count = await asyncio.to_thread(app.state.orchestrator.store.count)
            logger.info(f"Connected to card store. Card count: {count}")
        except StoreUnavailable as e:
            logger.warning(f"Card store connection failed: {e}")

        yield

        logger.info("Shutting down card search")

    app = FastAPI(
        title="Graded Card Search",
        description="Hybrid text + image search over graded sports cards",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.orchestrator = orchestrator
    app.state.ingestion = ingestion
    app.state.latency_collector = (
        orchestrator.latency_collector
        if orchestrator is not None and orchestrator.latency_collector is not None
        else LatencyCollector()
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CardSearchError, card_search_error_handler)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID for tracing."""
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"- {response.status_code} - {duration_ms:.1f}ms"
        )

        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        store = request.app.state.orchestrator.store
        try:
            card_count = await asyncio.to_thread(store.count)
            connected = True
        except StoreUnavailable:
            card_count = 0
            connected = False

        return HealthResponse(
            status="healthy" if connected else "degraded",
            version=__version__,
            store_connected=connected,
            card_count=card_count,
        )

    @app.post("/search", response_model=SearchResponse)
    async def search_endpoint(body: SearchRequest, request: Request):
        """
        Hybrid card search.

        Text and image queries are both optional; with neither, the metadata
        filters alone select cards and every result scores 1.0.
        """
        request_id = getattr(request.state, "request_id", None)
        orchestrator = request.app.state.orchestrator
        results = await orchestrator.search(body.to_query(), request_id=request_id)
        return SearchResponse(results=[CardResult.from_scored(r) for r in results])

    @app.get("/cards", response_model=CardListResponse)
    async def list_cards(request: Request):
        """All cards in creation order."""
        store = request.app.state.orchestrator.store
        cards = await asyncio.to_thread(store.list_cards)
        return CardListResponse(cards=[CardModel.from_card(card) for card in cards])

    @app.post("/cards", response_model=CardCreateResponse)
    async def create_card(body: CardCreateRequest, request: Request):
        """
        Add a card from extracted metadata and its image.

        The card text and image are embedded before the insert; a failed
        embedding stores nothing.
        """
        pipeline = request.app.state.ingestion
        card = await asyncio.to_thread(
            functools.partial(
                pipeline.ingest,
                body.image_url,
                image_ref=body.image_data,
                **body.metadata(),
            )
        )
        return CardCreateResponse(card_id=card.id, card=CardModel.from_card(card))

    @app.get("/metrics")
    async def metrics_endpoint(request: Request):
        """Get search latency and ingestion metrics."""
        summary = request.app.state.latency_collector.get_summary()
        if request.app.state.ingestion is not None:
            summary["ingestion"] = asdict(request.app.state.ingestion.stats)
        return summary

    @app.post("/metrics/reset")
    async def reset_metrics(request: Request):
        """Reset search latency metrics."""
        request.app.state.latency_collector.reset()
        return {"status": "reset"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
