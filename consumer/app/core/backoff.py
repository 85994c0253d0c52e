"""Retry pacing utilities.

`fixed_backoff` yields the attempt number for the caller to try an operation,
then sleeps for a constant delay before the next attempt. The provisioning
recovery helpers use it; the consumer itself never retries on its own.
"""
import asyncio
from typing import AsyncIterator


async def fixed_backoff(
    delay_seconds: float,
    max_attempts: int,
) -> AsyncIterator[int]:
    for attempt in range(1, max_attempts + 1):
        yield attempt
        if attempt < max_attempts:
            await asyncio.sleep(delay_seconds)
