"""
ServiceMatch Backend - Logging Configuration
=============================================

What:  Configures stdlib logging for every entry point (API server, backfill CLI).
How:   Root logger with one stdout handler; noisy third-party loggers are
       turned down to WARNING.

Format: 2026-01-15T12:00:00 [INFO] servicematch.services.backfill: Backfilled service ...
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "httpcore",
    "httpx",
    "google.auth",
    "urllib3",
)


def setup_logging(level: str = "INFO") -> None:
    """Call once, before anything else logs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
