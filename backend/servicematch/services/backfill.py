"""
ServiceMatch Backend - Embedding Backfill
==========================================

What:  Fills in vectors for active services that have none (created while the
       provider was down, throttled, or before embeddings existed).
How:   Works in small batches, newest services first, one service at a time:

    ┌───────────────┐   ┌──────────────┐   ┌──────────┐   ┌────────────┐
    │ next batch of │──▶│ regenerate   │──▶│ commit   │──▶│ pause      │──┐
    │ pending rows  │   │ (4 API calls)│   │          │   │ (delay)    │  │
    └───────────────┘   └──────────────┘   └──────────┘   └────────────┘  │
            ▲                                                              │
            └──────────────────────────────────────────────────────────────┘

Error handling per service:
    RateLimitExceededError   → sleep, retry the same service (bounded)
    DailyQuotaExceededError  → stop the whole run; resume tomorrow
    other embedding errors   → record the failure, skip the service
A service that fails is excluded from later batches of the same run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicematch.exceptions import (
    DailyQuotaExceededError,
    EmbeddingGenerationError,
    MalformedVectorError,
    RateLimitExceededError,
)
from servicematch.models import Service
from servicematch.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    pending: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    halted: bool = False
    halt_reason: Optional[str] = None
    failed_ids: List[UUID] = field(default_factory=list)


def pending_condition():
    return (Service.combined_vector.is_(None), Service.is_active.is_(True))


class BackfillJob:
    """
    Args:
        session_factory: Sessions for reading batches and writing vectors.
        store: Generates and persists vectors.
        batch_size: Services fetched per query.
        delay_seconds: Pause between two services.
        rate_limit_sleep: Pause after the provider throttles us.
        max_rate_limit_retries: Throttled retries per service before giving up on it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: EmbeddingStore,
        batch_size: int = 5,
        delay_seconds: float = 5.0,
        rate_limit_sleep: float = 60.0,
        max_rate_limit_retries: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.store = store
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.rate_limit_sleep = rate_limit_sleep
        self.max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep

    async def _count_pending(self, db: AsyncSession) -> int:
        return await db.scalar(
            select(func.count()).select_from(Service).where(*pending_condition())
        ) or 0

    async def _next_batch(self, db: AsyncSession, exclude: Set[UUID]) -> Sequence[Service]:
        stmt = (
            select(Service)
            .where(*pending_condition())
            .order_by(Service.created_at.desc())
            .limit(self.batch_size)
        )
        if exclude:
            stmt = stmt.where(Service.id.not_in(exclude))
        result = await db.execute(stmt)
        return result.scalars().all()

    async def run(self) -> BackfillReport:
        report = BackfillReport()
        done: Set[UUID] = set()

        async with self.session_factory() as db:
            report.pending = await self._count_pending(db)
        logger.info("Backfill starting: %d services without embeddings", report.pending)

        while True:
            async with self.session_factory() as db:
                batch = await self._next_batch(db, done)
                if not batch:
                    break

                for service in batch:
                    if report.processed and self.delay_seconds:
                        await self._sleep(self.delay_seconds)

                    try:
                        ok = await self._embed_with_retries(db, service)
                    except DailyQuotaExceededError as e:
                        report.halted = True
                        report.halt_reason = e.message
                        logger.warning(
                            "Backfill halted after %d services: %s", report.processed, e.message
                        )
                        self._log_summary(report)
                        return report

                    report.processed += 1
                    done.add(service.id)
                    if ok:
                        await db.commit()
                        report.succeeded += 1
                    else:
                        report.failed += 1
                        report.failed_ids.append(service.id)

        self._log_summary(report)
        return report

    async def _embed_with_retries(self, db: AsyncSession, service: Service) -> bool:
        """
        True when the service now has a combined vector.

        Raises:
            DailyQuotaExceededError: the run must stop.
        """
        attempt = 0
        while True:
            try:
                embeddings = await self.store.regenerate(db, service)
            except DailyQuotaExceededError:
                raise
            except RateLimitExceededError as e:
                attempt += 1
                if attempt > self.max_rate_limit_retries:
                    logger.error(
                        "Service %s still throttled after %d retries; skipping",
                        service.id,
                        self.max_rate_limit_retries,
                    )
                    return False
                logger.warning(
                    "Rate limited on service %s (%s); sleeping %.0fs",
                    service.id,
                    e.message,
                    self.rate_limit_sleep,
                )
                await self._sleep(self.rate_limit_sleep)
                continue
            except (EmbeddingGenerationError, MalformedVectorError) as e:
                logger.error("Embedding failed for service %s: %s", service.id, e.message)
                return False

            if embeddings.combined is None:
                logger.warning("Service %s has no embeddable text; skipping", service.id)
                return False
            logger.info("Backfilled service %s", service.id)
            return True

    def _log_summary(self, report: BackfillReport) -> None:
        logger.info(
            "Backfill finished: pending=%d processed=%d succeeded=%d failed=%d halted=%s",
            report.pending,
            report.processed,
            report.succeeded,
            report.failed,
            report.halted,
        )
