"""Entry point for the FastAPI-powered MoodReel service."""

from __future__ import annotations
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import settings
from .database import Database
from .errors import EmbeddingError
from .models import BackfillRequest, EmbedRequest, IngestRequest, UserProfile
from .rate_limit import RateLimiter
from .services.content_store import ContentStore
from .services.embeddings import EmbeddingClient
from .services.ingestion import IngestionService, pick_combination
from .services.openai import OpenAIEmbedder
from .services.recommendations import RecommendationService
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    embedding_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
    )
    openai_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.openai_api_url),
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    limiter = RateLimiter(settings.rate_limit_per_second, settings.rate_limit_burst)
    store = ContentStore(database.session_factory, settings)
    embedder = EmbeddingClient(settings, embedding_http_client, limiter)

    fastapi_app.state.database = database
    fastapi_app.state.content_store = store
    fastapi_app.state.recommendation_service = RecommendationService(
        settings, store, embedder
    )
    fastapi_app.state.openai_embedder = OpenAIEmbedder(
        settings, openai_http_client, limiter
    )

    ingestion_service: IngestionService | None = None
    if settings.tmdb_api_key:
        tmdb = TMDBClient(settings, tmdb_http_client, limiter)
        ingestion_service = IngestionService(settings, tmdb, store, embedder)
        fastapi_app.state.ingestion_service = ingestion_service
        await ingestion_service.start()
    else:
        logger.warning("TMDB_API_KEY is not set; ingestion endpoints are disabled")

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        if ingestion_service is not None:
            await ingestion_service.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Mood-based movie and series recommendations backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_ingestion_service(app: FastAPI) -> IngestionService:
    service = getattr(app.state, "ingestion_service", None)
    if not isinstance(service, IngestionService):
        raise HTTPException(status_code=503, detail="Ingestion is not configured")
    return service


def get_recommendation_service(app: FastAPI) -> RecommendationService:
    service = getattr(app.state, "recommendation_service", None)
    if not isinstance(service, RecommendationService):
        raise HTTPException(status_code=503, detail="Recommendations are not configured")
    return service


def get_openai_embedder(app: FastAPI) -> OpenAIEmbedder:
    embedder = getattr(app.state, "openai_embedder", None)
    if not isinstance(embedder, OpenAIEmbedder):
        raise HTTPException(status_code=503, detail="Embeddings are not configured")
    return embedder


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/ingest")
    async def ingest_endpoint(request: Request) -> JSONResponse:
        service = get_ingestion_service(fastapi_app)
        payload = await _read_payload(request)
        try:
            body = IngestRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc

        if body.tmdb_ids:
            if not body.moods:
                raise HTTPException(
                    status_code=400, detail="A mood is required when importing tmdbIds"
                )
            report = await service.import_titles(
                body.tmdb_ids,
                body.moods,
                category=body.category or "drama",
                force_availability=body.force_availability,
            )
            return JSONResponse(report.to_payload())

        category, moods = body.category, body.moods
        if category is None or not moods:
            category, mood = pick_combination(datetime.now())
            moods = [mood]
            logger.info("Automatic ingestion selection: %s + %s", category, mood)
        report = await service.run(
            category,
            moods,
            count=body.count,
            force_availability=body.force_availability,
        )
        return JSONResponse(report.to_payload())

    @fastapi_app.post("/api/backfill")
    async def backfill_endpoint(request: Request) -> JSONResponse:
        service = get_ingestion_service(fastapi_app)
        payload = await _read_payload(request)
        try:
            body = BackfillRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        report = await service.backfill(
            limit=body.limit, offset=body.offset, only_missing=body.only_missing
        )
        return JSONResponse(report.to_payload())

    @fastapi_app.post("/api/tags/cleanup")
    async def cleanup_endpoint() -> JSONResponse:
        service = get_ingestion_service(fastapi_app)
        report = await service.cleanup_tags()
        return JSONResponse(report.to_payload())

    @fastapi_app.post("/api/recommendations")
    async def recommendations_endpoint(request: Request) -> JSONResponse:
        service = get_recommendation_service(fastapi_app)
        payload = await _read_payload(request)
        try:
            profile = UserProfile.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        items = await service.recommend(profile)
        return JSONResponse({"items": [item.to_payload() for item in items]})

    @fastapi_app.post("/api/embed")
    async def embed_endpoint(request: Request) -> JSONResponse:
        embedder = get_openai_embedder(fastapi_app)
        payload = await _read_payload(request)
        try:
            body = EmbedRequest.model_validate(payload)
        except ValidationError:
            return JSONResponse(
                {"error": 'Missing "text" property in request body'}, status_code=500
            )
        try:
            vector = await embedder.embed(body.text)
        except EmbeddingError as exc:
            logger.error("Embedding failed: %s", exc)
            return JSONResponse({"error": str(exc)}, status_code=500)
        return JSONResponse({"vector": vector})


app = create_app()
