"""
ServiceMatch Backend - Composition Root
========================================

What:  Builds every long-lived object once per process and tears them down.
Why:   Components receive their collaborators at construction time instead of
       importing module-level clients, so tests can hand in fakes directly.
Who:   The FastAPI lifespan stores a container on app.state.container;
       the backfill CLI builds its own.

Object graph:
    engine ─▶ session_factory ─────────────────────┬──────────────▶ fanout
    rate_limiter ─┐                                │                  ▲
    breaker ──────┴▶ provider ─▶ store ─▶ matching ┴──────────────────┘
                                   │                        publisher ┘
                                   ├─▶ catalog / service_requests
                                   └─▶ backfill
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from servicematch.config import Settings
from servicematch.database import build_engine, build_session_factory
from servicematch.services import similarity_search
from servicematch.services.backfill import BackfillJob
from servicematch.services.catalog_service import CatalogService
from servicematch.services.embedding_base import EmbeddingProvider
from servicematch.services.embedding_store import EmbeddingStore
from servicematch.services.gemini_embeddings import CircuitBreaker, GeminiEmbeddingProvider
from servicematch.services.hashing_embeddings import HashingEmbeddingProvider
from servicematch.services.matching_service import MatchingService
from servicematch.services.notification_fanout import NotificationFanout
from servicematch.services.notification_transport import (
    LoggingNotificationPublisher,
    NotificationPublisher,
    RedisNotificationPublisher,
)
from servicematch.services.rate_limiter import EmbeddingRateLimiter
from servicematch.services.service_request_service import ServiceRequestService

logger = logging.getLogger(__name__)


def build_provider(
    settings: Settings, rate_limiter: Optional[EmbeddingRateLimiter] = None
) -> EmbeddingProvider:
    if settings.embedding_provider == "hashing":
        return HashingEmbeddingProvider(dimensions=settings.embedding_dimensions)
    return GeminiEmbeddingProvider(
        api_key=settings.gemini_api_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        rate_limiter=rate_limiter
        or EmbeddingRateLimiter(
            requests_per_minute=settings.embedding_requests_per_minute,
            daily_quota=settings.embedding_daily_quota,
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        ),
        retry_max_attempts=settings.retry_max_attempts,
        retry_min_wait=settings.retry_min_wait,
        retry_max_wait=settings.retry_max_wait,
    )


def build_publisher(settings: Settings) -> NotificationPublisher:
    if settings.redis_url:
        return RedisNotificationPublisher(
            redis_url=settings.redis_url, queue=settings.notification_queue
        )
    logger.warning("REDIS_URL not set; provider notifications will only be logged")
    return LoggingNotificationPublisher()


@dataclass
class ServiceContainer:
    settings: Settings
    engine: Optional[AsyncEngine]
    session_factory: async_sessionmaker[AsyncSession]
    provider: EmbeddingProvider
    store: EmbeddingStore
    matching: MatchingService
    catalog: CatalogService
    service_requests: ServiceRequestService
    publisher: NotificationPublisher
    fanout: NotificationFanout
    backfill: BackfillJob

    @classmethod
    def build(cls, settings: Settings) -> "ServiceContainer":
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
        provider = build_provider(settings)
        store = EmbeddingStore(provider)
        matching = MatchingService(provider, store, search=similarity_search.search)
        publisher = build_publisher(settings)

        logger.info(
            "Container built (provider=%s, dimensions=%d, publisher=%s)",
            provider.name,
            provider.dimensions,
            publisher.name,
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            provider=provider,
            store=store,
            matching=matching,
            catalog=CatalogService(store),
            service_requests=ServiceRequestService(store),
            publisher=publisher,
            fanout=NotificationFanout(
                session_factory,
                matching,
                publisher,
                dispatch_delay=settings.notification_dispatch_delay,
            ),
            backfill=BackfillJob(
                session_factory,
                store,
                batch_size=settings.backfill_batch_size,
                delay_seconds=settings.backfill_delay_seconds,
                rate_limit_sleep=settings.backfill_rate_limit_sleep,
                max_rate_limit_retries=settings.backfill_max_rate_limit_retries,
            ),
        )

    async def close(self, drain_timeout: float = 10.0) -> None:
        """Finish in-flight fan-outs, then release the queue and the pool."""
        await self.fanout.drain(timeout=drain_timeout)
        await self.publisher.close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("Container closed")
