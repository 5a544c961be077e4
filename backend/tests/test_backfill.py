"""
ServiceMatch Backend - Embedding Backfill Tests
===============================================

The job's two queries (_count_pending, _next_batch) are replaced with an
in-memory list of services; the store is a double whose regenerate() fills
combined_vector or raises on chosen services.

What we test:
    ✅ Daily quota on service 5 of 12 → 1-4 embedded, 5-12 untouched, run stops
    ✅ Rate limiting sleeps and retries the same service
    ✅ Other failures skip the service without looping on it
    ✅ Pause between services
    ✅ CLI argument validation
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_service, vec
from servicematch.exceptions import (
    DailyQuotaExceededError,
    EmbeddingGenerationError,
    RateLimitExceededError,
)
from servicematch.jobs.backfill_embeddings import parse_args
from servicematch.services.backfill import BackfillJob
from servicematch.services.embedding_base import EmbeddingSet


class StoreDouble:
    """regenerate() embeds the service unless `errors` maps its position to exceptions."""

    def __init__(self, services, errors=None):
        self.position = {s.id: i + 1 for i, s in enumerate(services)}
        self.errors = errors or {}
        self.calls = []

    async def regenerate(self, db, service):
        index = self.position[service.id]
        self.calls.append(index)
        queued = self.errors.get(index)
        if queued:
            raise queued.pop(0)
        service.combined_vector = vec(1.0)
        return EmbeddingSet(combined=vec(1.0))


def build_job(session_factory, services, store, batch_size=5, sleep=None):
    job = BackfillJob(
        session_factory,
        store,
        batch_size=batch_size,
        delay_seconds=5.0,
        rate_limit_sleep=60.0,
        max_rate_limit_retries=2,
        sleep=sleep or AsyncMock(),
    )

    async def next_batch(db, exclude):
        pending = [s for s in services if s.combined_vector is None and s.id not in exclude]
        return pending[:batch_size]

    job._count_pending = AsyncMock(
        return_value=sum(1 for s in services if s.combined_vector is None)
    )
    job._next_batch = next_batch
    return job


@pytest.fixture
def services():
    return [make_service(title=f"Service {i}", combined_vector=None) for i in range(1, 13)]


@pytest.mark.asyncio
async def test_daily_quota_stops_the_run(session_factory, services):
    store = StoreDouble(services, errors={5: [DailyQuotaExceededError(quota=1500)]})
    job = build_job(session_factory, services, store)

    report = await job.run()

    assert [s.combined_vector is not None for s in services[:4]] == [True] * 4
    assert all(s.combined_vector is None for s in services[4:])
    assert store.calls == [1, 2, 3, 4, 5]
    assert report.halted is True
    assert report.pending == 12
    assert report.succeeded == 4
    assert "quota" in report.halt_reason.lower()


@pytest.mark.asyncio
async def test_all_pending_processed(session_factory, mock_db_session, services):
    store = StoreDouble(services)
    sleep = AsyncMock()
    job = build_job(session_factory, services, store, sleep=sleep)

    report = await job.run()

    assert report.halted is False
    assert report.succeeded == 12
    assert mock_db_session.commit.await_count == 12
    assert sleep.await_count == 11
    sleep.assert_awaited_with(5.0)


@pytest.mark.asyncio
async def test_rate_limit_sleeps_and_retries(session_factory, services):
    store = StoreDouble(services[:2], errors={1: [RateLimitExceededError(retry_after=60)]})
    sleep = AsyncMock()
    job = build_job(session_factory, services[:2], store, sleep=sleep)

    report = await job.run()

    assert report.succeeded == 2
    assert store.calls == [1, 1, 2]
    assert [c.args[0] for c in sleep.await_args_list] == [60.0, 5.0]


@pytest.mark.asyncio
async def test_persistent_rate_limit_gives_up_on_service(session_factory, services):
    errors = {1: [RateLimitExceededError(), RateLimitExceededError(), RateLimitExceededError()]}
    store = StoreDouble(services[:2], errors=errors)
    job = build_job(session_factory, services[:2], store)

    report = await job.run()

    assert report.failed == 1
    assert report.failed_ids == [services[0].id]
    assert report.succeeded == 1


@pytest.mark.asyncio
async def test_failed_service_not_retried_in_later_batches(session_factory, services):
    store = StoreDouble(services[:3], errors={2: [EmbeddingGenerationError()]})
    job = build_job(session_factory, services[:3], store, batch_size=2)

    report = await job.run()

    assert store.calls == [1, 2, 3]
    assert report.processed == 3
    assert report.failed == 1
    assert services[1].combined_vector is None


@pytest.mark.asyncio
async def test_nothing_pending(session_factory):
    job = build_job(session_factory, [], MagicMock())

    report = await job.run()

    assert report.pending == 0
    assert report.processed == 0


class TestCommandLine:
    def test_overrides(self):
        args = parse_args(["--batch-size", "10", "--delay", "1.5"])
        assert args.batch_size == 10
        assert args.delay == 1.5

    @pytest.mark.parametrize("argv", [["--batch-size", "0"], ["--delay", "-1"]])
    def test_invalid_values(self, argv):
        with pytest.raises(SystemExit):
            parse_args(argv)
