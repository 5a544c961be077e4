"""
ServiceMatch Backend - Gemini Embedding Provider Tests
======================================================

What we test:
    ✅ Circuit breaker state transitions (CLOSED → OPEN → HALF_OPEN → CLOSED)
    ✅ Successful embedding call (task type and model forwarded)
    ✅ Transient failures retried, then success
    ✅ Throttling translated to RateLimitExceededError / DailyQuotaExceededError
    ✅ Throttling does not trip the breaker
    ✅ Open breaker rejects calls without reaching the API

The genai module is patched, so no network or API key is needed. Retry
waits are configured to zero.
"""

from unittest.mock import AsyncMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import DIMS, vec
from servicematch.exceptions import (
    CircuitBreakerOpenError,
    DailyQuotaExceededError,
    EmbeddingGenerationError,
    MalformedVectorError,
    RateLimitExceededError,
)
from servicematch.services.embedding_base import TASK_QUERY
from servicematch.services.gemini_embeddings import (
    CircuitBreaker,
    GeminiEmbeddingProvider,
    translate_throttle,
)
from servicematch.services.rate_limiter import EmbeddingRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_genai():
    with patch("servicematch.services.gemini_embeddings.genai") as genai:
        genai.embed_content_async = AsyncMock(return_value={"embedding": vec(0.5, 0.5)})
        yield genai


def make_provider(breaker=None, daily_quota=1500, max_attempts=3):
    return GeminiEmbeddingProvider(
        api_key="test-key",
        model="models/text-embedding-004",
        dimensions=DIMS,
        rate_limiter=EmbeddingRateLimiter(
            requests_per_minute=10000, daily_quota=daily_quota, sleep=_no_sleep
        ),
        circuit_breaker=breaker or CircuitBreaker(failure_threshold=3, recovery_timeout=60),
        retry_max_attempts=max_attempts,
        retry_min_wait=0,
        retry_max_wait=0,
    )


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class TestCircuitBreaker:
    def test_starts_closed(self, clock):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.can_execute() is True

    def test_opens_after_threshold(self, clock):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN

        clock.now = 10
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            breaker.can_execute()
        assert exc_info.value.retry_after == 20

    def test_half_open_after_timeout_then_recovers(self, clock):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=clock)
        breaker.record_failure()

        clock.now = 30
        assert breaker.can_execute() is True
        assert breaker.state == CircuitBreaker.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_failure_reopens(self, clock):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30, clock=clock)
        for _ in range(3):
            breaker.record_failure()
        clock.now = 45
        breaker.can_execute()

        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Throttle translation
# ══════════════════════════════════════════════════════════════════════════

class TestTranslateThrottle:
    def test_daily_quota_message(self):
        exc = google_exceptions.ResourceExhausted(
            "Quota exceeded for metric: embed_content_free_tier_requests per day"
        )
        result = translate_throttle(exc, daily_quota=1500)
        assert isinstance(result, DailyQuotaExceededError)
        assert result.quota == 1500

    def test_per_minute_message(self):
        exc = google_exceptions.ResourceExhausted("Quota exceeded: requests per minute")
        result = translate_throttle(exc)
        assert isinstance(result, RateLimitExceededError)
        assert result.retry_after == 60


# ══════════════════════════════════════════════════════════════════════════
# Provider calls
# ══════════════════════════════════════════════════════════════════════════

class TestGeminiEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_successful_embedding(self, mock_genai):
        provider = make_provider()

        result = await provider.generate_embedding("fix leaking faucet", task_type=TASK_QUERY)

        assert result == vec(0.5, 0.5)
        kwargs = mock_genai.embed_content_async.await_args.kwargs
        assert kwargs["model"] == "models/text-embedding-004"
        assert kwargs["content"] == "fix leaking faucet"
        assert kwargs["task_type"] == TASK_QUERY
        assert provider.rate_limiter.used_today == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, mock_genai):
        mock_genai.embed_content_async.side_effect = [
            google_exceptions.ServiceUnavailable("backend unavailable"),
            {"embedding": vec(1.0)},
        ]
        provider = make_provider()

        result = await provider.embed_text("hello")

        assert result == vec(1.0)
        assert mock_genai.embed_content_async.await_count == 2
        assert provider.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_and_count_failure(self, mock_genai):
        mock_genai.embed_content_async.side_effect = google_exceptions.ServiceUnavailable("down")
        provider = make_provider(max_attempts=2)

        with pytest.raises(EmbeddingGenerationError):
            await provider.embed_text("hello")

        assert mock_genai.embed_content_async.await_count == 2
        assert provider.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_throttling_is_not_retried_and_keeps_breaker_closed(self, mock_genai):
        mock_genai.embed_content_async.side_effect = google_exceptions.ResourceExhausted(
            "Resource has been exhausted (e.g. check quota)."
        )
        provider = make_provider()

        with pytest.raises(RateLimitExceededError):
            await provider.embed_text("hello")

        assert mock_genai.embed_content_async.await_count == 1
        assert provider.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_daily_throttling_raises_daily_quota(self, mock_genai):
        mock_genai.embed_content_async.side_effect = google_exceptions.ResourceExhausted(
            "Quota exceeded for quota metric 'Requests per day'"
        )
        provider = make_provider()

        with pytest.raises(DailyQuotaExceededError):
            await provider.embed_text("hello")

    @pytest.mark.asyncio
    async def test_local_daily_budget_stops_before_api(self, mock_genai):
        provider = make_provider(daily_quota=1)
        await provider.embed_text("first")

        with pytest.raises(DailyQuotaExceededError):
            await provider.embed_text("second")
        assert mock_genai.embed_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_wrong_length_response(self, mock_genai):
        mock_genai.embed_content_async.return_value = {"embedding": [0.1, 0.2]}
        provider = make_provider()

        with pytest.raises(MalformedVectorError):
            await provider.embed_text("hello")
        assert provider.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_empty_response(self, mock_genai):
        mock_genai.embed_content_async.return_value = {"embedding": []}
        provider = make_provider()

        with pytest.raises(EmbeddingGenerationError):
            await provider.embed_text("hello")

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_calling_api(self, mock_genai, clock):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=clock)
        breaker.record_failure()
        provider = make_provider(breaker=breaker)

        with pytest.raises(CircuitBreakerOpenError):
            await provider.embed_text("hello")

        mock_genai.embed_content_async.assert_not_awaited()
        assert provider.rate_limiter.used_today == 0

    @pytest.mark.asyncio
    async def test_health_check_lists_models(self, mock_genai):
        model = type("Model", (), {"name": "models/text-embedding-004"})()
        mock_genai.list_models.return_value = [model]
        provider = make_provider()

        assert await provider.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, mock_genai):
        mock_genai.list_models.side_effect = ConnectionError("no network")
        provider = make_provider()

        assert await provider.health_check() is False
