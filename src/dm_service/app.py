from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dm_service.api.middleware.correlation_id import CorrelationIdMiddleware
from dm_service.api.v1.routers import health, ws
from dm_service.config import settings
from dm_service.infrastructure.bus.redis_pubsub import RedisChangeSubscriber, RedisPubSubPublisher
from dm_service.infrastructure.profiles.memory import InMemoryProfileDirectory
from dm_service.infrastructure.store.memory import InMemoryDocumentStore
from dm_service.services.message_service import ComposePipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _memory_backend(app: FastAPI) -> AsyncIterator[None]:
    store = InMemoryDocumentStore()
    app.state.store = store
    app.state.profiles = InMemoryProfileDirectory()
    logger.info("Using in-memory document store")
    try:
        yield
    finally:
        store.close()


@asynccontextmanager
async def _postgres_backend(app: FastAPI) -> AsyncIterator[None]:
    from dm_service.infrastructure.db.session import AsyncSessionLocal, create_schema, engine
    from dm_service.infrastructure.profiles.sql import SqlProfileDirectory
    from dm_service.infrastructure.store.sql import SqlDocumentStore

    await create_schema()
    app.state.session_factory = AsyncSessionLocal
    app.state.redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    logger.info("Redis connection pool created")

    store = SqlDocumentStore(
        AsyncSessionLocal,
        RedisPubSubPublisher(app.state.redis),
        settings.STORE_CHANGES_CHANNEL,
    )
    subscriber = RedisChangeSubscriber(
        app.state.redis,
        settings.STORE_CHANGES_CHANNEL,
        store.on_feed_change,
        store.resync,
    )
    await subscriber.start()
    app.state.store = store
    app.state.profiles = SqlProfileDirectory(AsyncSessionLocal)
    try:
        yield
    finally:
        store.close()
        await subscriber.stop()
        await app.state.redis.aclose()
        await engine.dispose()
        logger.info("Redis connection pool closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    backend = _postgres_backend if settings.STORE_BACKEND == "postgres" else _memory_backend
    async with backend(app):
        app.state.compose = ComposePipeline(app.state.store)
        try:
            yield
        finally:
            ws.get_manager().close_all()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Direct Messaging Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health.router)
    app.include_router(ws.router)

    return app
