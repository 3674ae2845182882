"""Retry helpers: backoff on transient store failures, bounded CAS loops."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from promptteams.core.errors import ConflictRetryExhausted, StoreUnavailable, VersionConflict

logger = logging.getLogger("promptteams.retry")

T = TypeVar("T")


def backoff_delay(attempt: int, base: float, jitter: bool = True) -> float:
    """Exponential delay for the given 0-based attempt, with optional full jitter."""
    delay = base * (2 ** attempt)
    if jitter:
        return random.uniform(0, delay)
    return delay


async def retry_unavailable(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_base: float = 0.2,
    op: str = "operation",
) -> T:
    """Await fn() with exponential backoff on StoreUnavailable.

    Only idempotent operations may be wrapped. Every other error propagates
    on the first raise. Raises the last StoreUnavailable once attempts are
    exhausted.
    """
    last_exc: Optional[StoreUnavailable] = None
    for attempt in range(attempts):
        try:
            return await fn()
        except StoreUnavailable as e:
            last_exc = e
            if attempt < attempts - 1:
                delay = backoff_delay(attempt, backoff_base, jitter=False)
                logger.warning(
                    "%s: store unavailable (attempt %d/%d), retrying in %.3fs",
                    op, attempt + 1, attempts, delay,
                )
                await asyncio.sleep(delay)
                continue
    logger.error("%s: store unavailable after %d attempts", op, attempts)
    raise last_exc  # type: ignore[misc]


async def cas_loop(
    attempt_fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 5,
    backoff_base: float = 0.01,
    what: str = "document",
) -> T:
    """Run a read-modify-write attempt until its version-checked write lands.

    attempt_fn must re-read the document on every call and raise
    VersionConflict when its conditional write loses the race.
    """
    for attempt in range(max_attempts):
        try:
            return await attempt_fn()
        except VersionConflict as conflict:
            logger.debug(
                "cas: conflict on %s (attempt %d/%d): %s",
                what, attempt + 1, max_attempts, conflict,
            )
            if attempt < max_attempts - 1:
                await asyncio.sleep(backoff_delay(attempt, backoff_base))
    logger.warning("cas: gave up on %s after %d attempts", what, max_attempts)
    raise ConflictRetryExhausted(
        f"Concurrent updates to {what} did not settle after {max_attempts} attempts",
        attempts=max_attempts,
    )
