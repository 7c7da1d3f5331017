"""Backoff utilities.

`exponential_backoff` yields ``(attempt, delay)`` pairs: the caller tries its operation,
breaks out on success, and otherwise the generator sleeps before the next attempt.
The first attempt runs immediately; ``delay`` is the wait that preceded it.
"""
import asyncio
from typing import AsyncIterator, Tuple


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[Tuple[int, float]]:
    waited = 0.0
    delay = min(initial_delay, max_delay)
    for attempt in range(1, max_attempts + 1):
        yield attempt, waited
        if attempt < max_attempts:
            await asyncio.sleep(delay)
            waited = delay
            delay = min(delay * multiplier, max_delay)
