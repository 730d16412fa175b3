"""Bounded polling with increasing backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.exceptions import ResultUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY, max_delay: float = DEFAULT_MAX_DELAY) -> float:
    """Delay before retry number ``attempt + 1`` (0-indexed): base * 2^attempt, capped."""
    return float(max(0.0, min(base_delay * (2 ** attempt), max_delay)))


async def poll_with_backoff(
    probe: Callable[[], Awaitable[Optional[T]]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    operation_name: str = "poll",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``probe`` until it returns something other than None.

    Sleeps with exponential backoff between attempts and gives up after
    ``max_attempts`` with ``ResultUnavailable``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        result = await probe()
        if result is not None:
            return result

        if attempt + 1 < max_attempts:
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.debug("%s: attempt %d/%d not ready, retrying in %.2fs", operation_name, attempt + 1, max_attempts, delay)
            await sleep(delay)

    raise ResultUnavailable(f"{operation_name}: no result after {max_attempts} attempts")
