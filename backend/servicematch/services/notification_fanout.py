"""
ServiceMatch Backend - Provider Notification Fan-out
=====================================================

What:  After a customer posts a service request, notify the providers whose
       services match it with high confidence.
Why:   Providers learn about relevant demand without polling.
How:   Runs detached from the HTTP response, in its own database session:

    Idle → Matching (top 10) → Filtering (similarity > 0.6) → Dispatching → Done
                 │                     │
                 └──── error ──────────┴──▶ Aborted (logged, nothing sent)

    Dispatching handles each qualified match on its own: a provider without
    an email is skipped, a failed publish is logged and the next provider is
    still attempted. Nothing is retried.

Lifecycle:
    schedule() starts a run as an asyncio task and returns immediately.
    drain() waits for in-flight runs during application shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicematch.exceptions import NotificationDispatchError
from servicematch.models import ServiceProvider, ServiceRequest, User
from servicematch.schemas.notification import (
    IntentMetadata,
    NotificationIntent,
    description_preview,
    match_message,
)
from servicematch.services.matching_policy import (
    FANOUT_TOP_N,
    match_percentage,
    select_notify_set,
)
from servicematch.services.matching_service import MatchingService
from servicematch.services.notification_transport import NotificationPublisher
from servicematch.services.similarity_search import MatchResult

logger = logging.getLogger(__name__)


@dataclass
class FanoutReport:
    request_id: UUID
    matched: int = 0
    qualified: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False


@dataclass
class Contact:
    email: Optional[str]
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class NotificationFanout:
    """
    Args:
        session_factory: Opens the run's own session.
        matching: Ranks services against the request.
        publisher: Hands intents to the notification queue.
        dispatch_delay: Seconds to pause between two publishes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        matching: MatchingService,
        publisher: NotificationPublisher,
        dispatch_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.matching = matching
        self.publisher = publisher
        self.dispatch_delay = dispatch_delay
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    # ── Detached execution ────────────────────────────────────────────────

    def schedule(self, request_id: UUID) -> asyncio.Task:
        """Start a fan-out run in the background and return its task."""
        task = asyncio.create_task(
            self._run_logged(request_id), name=f"fanout-{request_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_logged(self, request_id: UUID) -> Optional[FanoutReport]:
        try:
            return await self.notify_matching_providers(request_id)
        except asyncio.CancelledError:
            logger.warning("Fan-out for request %s cancelled", request_id)
            raise
        except Exception:
            logger.exception("Fan-out for request %s crashed", request_id)
            return None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait up to `timeout` seconds for running fan-outs, then cancel the rest."""
        if not self.in_flight:
            return
        logger.info("Waiting for %d notification fan-out(s) to finish", self.in_flight)
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled %d unfinished notification fan-out(s)", len(pending))

    # ── One run ───────────────────────────────────────────────────────────

    async def notify_matching_providers(self, request_id: UUID) -> FanoutReport:
        report = FanoutReport(request_id=request_id)

        async with self.session_factory() as db:
            # Matching + Filtering: any failure aborts the whole run
            try:
                service_request = await db.get(ServiceRequest, request_id)
                if service_request is None:
                    logger.warning("Fan-out skipped: service request %s not found", request_id)
                    report.aborted = True
                    return report

                page = await self.matching.match_request(
                    db, service_request, limit=FANOUT_TOP_N
                )
                # Keep a vector regenerated during matching
                await db.commit()
                customer = await self._user_contact(db, service_request.user_id)
            except Exception as e:
                await db.rollback()
                logger.error(
                    "Fan-out for request %s aborted during matching: %s",
                    request_id,
                    e,
                    exc_info=True,
                )
                report.aborted = True
                return report

            report.matched = len(page.matches)
            qualified = select_notify_set(page.matches)
            report.qualified = len(qualified)

            # Dispatching: each provider on its own
            for index, match in enumerate(qualified):
                if index and self.dispatch_delay:
                    await self._sleep(self.dispatch_delay)
                await self._dispatch_one(db, service_request, customer, match, report)

        logger.info(
            "Fan-out for request %s: matched=%d qualified=%d sent=%d skipped=%d failed=%d",
            request_id,
            report.matched,
            report.qualified,
            report.sent,
            report.skipped,
            report.failed,
        )
        return report

    async def _dispatch_one(
        self,
        db: AsyncSession,
        service_request: ServiceRequest,
        customer: Contact,
        match: MatchResult,
        report: FanoutReport,
    ) -> None:
        service = match.service
        try:
            provider = await self._provider_contact(db, match.provider_id)
            if provider is None or not provider.email:
                logger.info(
                    "No email on file for provider %s (service %s); skipping",
                    match.provider_id,
                    service.id,
                )
                report.skipped += 1
                return

            intent = build_intent(service_request, customer, provider, match)
            await self.publisher.publish(intent)
            report.sent += 1
        except NotificationDispatchError as e:
            report.failed += 1
            logger.error(
                "Notification for service %s (request %s) not sent: %s",
                service.id,
                service_request.id,
                e.message,
                extra={"context": e.context},
            )
        except Exception as e:
            report.failed += 1
            logger.error(
                "Notification for service %s (request %s) failed: %s",
                service.id,
                service_request.id,
                e,
                exc_info=True,
            )

    async def _provider_contact(self, db: AsyncSession, provider_id: UUID) -> Optional[Contact]:
        result = await db.execute(
            select(User.email, User.first_name, User.last_name)
            .join(ServiceProvider, ServiceProvider.user_id == User.id)
            .where(ServiceProvider.id == provider_id)
        )
        row = result.first()
        if row is None:
            return None
        return Contact(email=row.email, first_name=row.first_name, last_name=row.last_name)

    async def _user_contact(self, db: AsyncSession, user_id: UUID) -> Contact:
        user = await db.get(User, user_id)
        if user is None:
            return Contact(email=None)
        return Contact(email=user.email, first_name=user.first_name, last_name=user.last_name)


def build_intent(
    service_request: ServiceRequest,
    customer: Contact,
    provider: Contact,
    match: MatchResult,
) -> NotificationIntent:
    percentage = match_percentage(match.similarity)
    service = match.service
    return NotificationIntent(
        recipient_email=provider.email,
        recipient_name=provider.name or None,
        message=match_message(service.title, percentage),
        metadata=IntentMetadata(
            service_request_id=service_request.id,
            service_id=service.id,
            match_percentage=percentage,
            service_title=service.title,
            customer_name=customer.name or None,
            customer_email=customer.email,
            request_title=service_request.title,
            description=description_preview(service_request.description),
            customer_location=service_request.location_label,
        ),
    )
