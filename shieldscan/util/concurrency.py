"""Concurrency primitives for controlled parallel execution.

One scan fans out many small requests at the same origin (sensitive-file
HEADs, directory paths). Semaphore plus rate limiting keeps that polite.
"""

import asyncio
import time
from contextlib import asynccontextmanager


class RateLimiter:
    """Minimum spacing between operations sharing this limiter."""

    def __init__(self, delay: float = 0.0):
        """Initialize rate limiter with delay in seconds between operations."""
        self.delay = delay
        self._last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait if needed to respect rate limit."""
        if self.delay <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            time_since_last = now - self._last_call

            if time_since_last < self.delay:
                await asyncio.sleep(self.delay - time_since_last)

            self._last_call = time.monotonic()


class ConcurrencyController:
    """Controls concurrent execution with semaphore + rate limiting.

    Create one per scan - the primitives bind to the running loop.
    """

    def __init__(self, max_workers: int = 6, rate_limit_delay: float = 0.0):
        """Initialize with max concurrent workers and rate limit delay."""
        self.semaphore = asyncio.Semaphore(max(1, max_workers))
        self.rate_limiter = RateLimiter(delay=rate_limit_delay)
        self.max_workers = max_workers

    @asynccontextmanager
    async def acquire(self):
        """Acquire both semaphore and rate limit before proceeding.

        Usage:
            async with controller.acquire():
                await do_network_call()
        """
        async with self.semaphore:
            await self.rate_limiter.acquire()
            yield
