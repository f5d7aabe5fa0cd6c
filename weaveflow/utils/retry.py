"""Backoff helpers for retried external calls."""

from __future__ import annotations

import asyncio
import logging
import random

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 10.0


def is_retryable_status(status_code: int) -> bool:
    """Whether an HTTP response status is worth another attempt."""
    return status_code in RETRYABLE_STATUS


def compute_backoff(
    attempt: int,
    base: float = 0.5,
    jitter: float = 0.25,
    cap: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Exponential backoff for ``attempt`` (1-based), capped, plus jitter."""
    delay = min(base * 2 ** (attempt - 1), cap)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep before attempt ``attempt + 1``."""
    delay = compute_backoff(attempt)
    logger.debug(f"Backing off {delay:.2f}s after attempt {attempt}")
    await asyncio.sleep(delay)
