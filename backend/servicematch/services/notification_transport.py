"""
ServiceMatch Backend - Notification Transport
==============================================

What:  Publishers that hand a NotificationIntent to the outbound mail queue.
Why:   The fan-out only decides WHO gets notified; delivery belongs to a
       separate mailer that consumes the queue.
How:   RedisNotificationPublisher LPUSHes the intent JSON onto a Redis list
       (the mailer BRPOPs it). LoggingNotificationPublisher only logs, for
       local development without Redis.

Delivery guarantee:
    At most once. A failed publish raises NotificationDispatchError and is
    not retried; there is no outbox.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from servicematch.exceptions import NotificationDispatchError
from servicematch.schemas.notification import NotificationIntent

logger = logging.getLogger(__name__)


class NotificationPublisher(ABC):
    name: str = "notifications"

    @abstractmethod
    async def publish(self, intent: NotificationIntent) -> None:
        """
        Raises:
            NotificationDispatchError: the intent could not be handed over.
        """
        ...

    async def health_check(self) -> str:
        return "connected"

    async def close(self) -> None:
        return None


class RedisNotificationPublisher(NotificationPublisher):
    """
    Args:
        redis_url: e.g. redis://localhost:6379/0
        queue: Redis list key the mailer consumes
        client: Pre-built client (tests)
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str = "",
        queue: str = "queue:notifications:email",
        client: Optional[redis.Redis] = None,
    ):
        self.queue = queue
        self.client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
        )

    async def publish(self, intent: NotificationIntent) -> None:
        payload = intent.model_dump_json()
        try:
            await self.client.lpush(self.queue, payload)
        except RedisError as e:
            raise NotificationDispatchError(
                message="Failed to queue provider notification",
                context={
                    "queue": self.queue,
                    "service_id": str(intent.metadata.service_id),
                    "error": str(e),
                },
            ) from e
        logger.debug("Queued notification for %s on %s", intent.recipient_email, self.queue)

    async def health_check(self) -> str:
        try:
            await self.client.ping()
            return "connected"
        except RedisError as e:
            logger.warning("Notification queue unreachable: %s", e)
            return "disconnected"

    async def close(self) -> None:
        await self.client.aclose()


class LoggingNotificationPublisher(NotificationPublisher):
    name = "logging"

    async def publish(self, intent: NotificationIntent) -> None:
        logger.info(
            "Notification (not queued, REDIS_URL unset) to %s: %s",
            intent.recipient_email,
            intent.message,
        )

    async def health_check(self) -> str:
        return "logging_only"
