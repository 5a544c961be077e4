"""
ServiceMatch Backend - Google Gemini Embedding Provider
========================================================

What:  Concrete EmbeddingProvider backed by Google's text-embedding-004 model
       (768 dimensions).
Why:   Gemini embeddings are available on a free tier and work well for
       short marketplace texts (titles, descriptions, tags).
How:   genai.embed_content_async() per text, wrapped in:
         1. The shared EmbeddingRateLimiter (15 rpm / 1500 per day)
         2. Tenacity retries with exponential backoff + jitter for transient
            upstream errors (5xx, timeouts)
         3. A circuit breaker that rejects calls instantly once the provider
            has failed repeatedly
Who:   Built once by the ServiceContainer; shared by every caller.

Error translation:
    ResourceExhausted / TooManyRequests, message mentions a per-day quota
        → DailyQuotaExceededError   (never retried, breaker untouched)
    ResourceExhausted / TooManyRequests, otherwise
        → RateLimitExceededError    (never retried, breaker untouched)
    Transient errors after the last retry, or anything unexpected
        → EmbeddingGenerationError  (counts as a breaker failure)
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from servicematch.exceptions import (
    CircuitBreakerOpenError,
    DailyQuotaExceededError,
    EmbeddingGenerationError,
    MalformedVectorError,
    RateLimitExceededError,
)
from servicematch.services.embedding_base import TASK_DOCUMENT, EmbeddingProvider
from servicematch.services.rate_limiter import EmbeddingRateLimiter

logger = logging.getLogger(__name__)

# Upstream errors worth retrying: the same request may succeed a moment later
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
    google_exceptions.BadGateway,
    ConnectionError,
    TimeoutError,
)

THROTTLE_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
)

_DAILY_MARKERS = ("per day", "perday", "daily")


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker around the embedding API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Only upstream failures count. Throttling means the provider is healthy
    and enforcing limits, so it leaves the breaker untouched.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._clock = clock

    def can_execute(self) -> bool:
        """
        Returns True if the call may proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(int(self.recovery_timeout - elapsed), 1)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Embedding Provider
# ══════════════════════════════════════════════════════════════════════════

def translate_throttle(exc: Exception, daily_quota: Optional[int] = None) -> EmbeddingGenerationError:
    """Map a provider throttling response onto our exception types."""
    message = str(exc).lower()
    if any(marker in message for marker in _DAILY_MARKERS):
        return DailyQuotaExceededError(quota=daily_quota)
    return RateLimitExceededError(retry_after=60)


class GeminiEmbeddingProvider(EmbeddingProvider):
    """
    Error Handling Chain:
        limiter.acquire() → may raise DailyQuotaExceededError (local budget)
        API call fails transiently → tenacity retries (N attempts with backoff)
        → All retries fail → record breaker failure → EmbeddingGenerationError
        → Breaker threshold reached → future calls rejected instantly
        → Recovery timeout → one test call (HALF_OPEN)
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        dimensions: int,
        rate_limiter: EmbeddingRateLimiter,
        circuit_breaker: CircuitBreaker,
        retry_max_attempts: int = 3,
        retry_min_wait: float = 2,
        retry_max_wait: float = 10,
        request_timeout: float = 30.0,
    ):
        super().__init__(dimensions)
        # The SDK keeps auth in module-level state
        if api_key and api_key != "your_gemini_api_key_here":
            genai.configure(api_key=api_key)

        self.model = model
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.request_timeout = request_timeout

        logger.info(
            "GeminiEmbeddingProvider initialized with model=%s, dimensions=%d, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            model,
            dimensions,
            circuit_breaker.failure_threshold,
            circuit_breaker.recovery_timeout,
        )

    async def embed_text(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        call_id = str(uuid.uuid4())[:8]

        # Before the limiter: an open breaker must not spend quota
        self.circuit_breaker.can_execute()

        try:
            vector = await self._call_with_retry(text, task_type, call_id)
        except THROTTLE_ERRORS as e:
            logger.warning("[%s] Gemini throttled the embedding call: %s", call_id, e)
            raise translate_throttle(e, self.rate_limiter.daily_quota) from e
        except (DailyQuotaExceededError, RateLimitExceededError):
            raise
        except MalformedVectorError:
            self.circuit_breaker.record_failure()
            raise
        except TRANSIENT_ERRORS as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All %d Gemini embedding attempts failed: %s",
                call_id,
                self.retry_max_attempts,
                e,
            )
            raise EmbeddingGenerationError(
                message="Embedding generation failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "attempts": self.retry_max_attempts},
            ) from e
        except EmbeddingGenerationError:
            self.circuit_breaker.record_failure()
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Unexpected Gemini error: %s", call_id, e, exc_info=True)
            raise EmbeddingGenerationError(
                message="An unexpected error occurred during embedding generation.",
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        return vector

    async def _call_with_retry(self, text: str, task_type: str, call_id: str) -> List[float]:
        # Only the API call is retried; breaker checks and error translation
        # happen once around it in embed_text()
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._embed_once(text, task_type, call_id)
        raise EmbeddingGenerationError(context={"call_id": call_id})

    async def _embed_once(self, text: str, task_type: str, call_id: str) -> List[float]:
        await self.rate_limiter.acquire()
        start_time = time.time()
        try:
            response = await genai.embed_content_async(
                model=self.model,
                content=text,
                task_type=task_type,
                request_options={"timeout": self.request_timeout},
            )
        except Exception as e:
            logger.warning(
                "[%s] Gemini embedding call failed after %.0fms: %s",
                call_id,
                (time.time() - start_time) * 1000,
                e,
            )
            raise

        vector = response.get("embedding") if isinstance(response, dict) else None
        if not vector:
            raise EmbeddingGenerationError(
                message="The embedding provider returned an empty response.",
                context={"call_id": call_id},
            )
        if len(vector) != self.dimensions:
            raise MalformedVectorError(expected=self.dimensions, actual=len(vector))

        logger.debug(
            "[%s] Gemini embedding (%s, %d chars) completed in %.0fms",
            call_id,
            task_type,
            len(text),
            (time.time() - start_time) * 1000,
        )
        return list(vector)

    async def health_check(self) -> bool:
        """
        Lists available models (no embedding quota used) and checks that the
        configured model is among them.
        """
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
        except Exception as e:
            logger.warning("Gemini health check failed: %s", e)
            return False
        if self.model not in {m.name for m in models}:
            logger.warning("Configured embedding model %s not found in available models", self.model)
        return True
