"""
ServiceMatch Backend - Embedding Backfill CLI
==============================================

Usage:
    python -m servicematch.jobs.backfill_embeddings [--batch-size N] [--delay SECONDS]

Embeds every active service that has no combined vector yet, newest first,
under the same rate limits as the API process. Exit codes:

    0  all pending services processed (individual failures are logged)
    2  stopped early: the daily embedding quota is exhausted, run again tomorrow
    1  configuration or database error

Run it from a single process only. The rate limiter is per process, so two
concurrent runs would together exceed the provider's per-minute limit.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from servicematch.config import settings
from servicematch.container import ServiceContainer
from servicematch.logging_setup import setup_logging

logger = logging.getLogger("servicematch.jobs.backfill")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_HALTED = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="backfill_embeddings",
        description="Generate embeddings for active services that have none.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.backfill_batch_size,
        help="services fetched per query (default: %(default)s)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=settings.backfill_delay_seconds,
        help="seconds to pause between services (default: %(default)s)",
    )
    args = parser.parse_args(argv)
    if args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    if args.delay < 0:
        parser.error("--delay must not be negative")
    return args


async def run(args: argparse.Namespace) -> int:
    # The backfill never publishes notifications, so only the provider key matters
    if settings.embedding_provider == "gemini" and not settings.gemini_api_key:
        raise ValueError("GEMINI_API_KEY is not set (or use EMBEDDING_PROVIDER=hashing)")
    container = ServiceContainer.build(settings)
    container.backfill.batch_size = args.batch_size
    container.backfill.delay_seconds = args.delay
    try:
        report = await container.backfill.run()
    finally:
        await container.close()
    return EXIT_HALTED if report.halted else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging(settings.log_level)
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ERROR
    except Exception:
        logger.exception("Backfill failed")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
