"""Time sources used to stamp prediction requests.

With simulated time the clock reads 0 until the simulator has published
its first tick, so the service waits for it once at startup.
"""
from __future__ import annotations

import asyncio
import time

import redis.asyncio as aioredis

from objdet_shared.logging import get_logger

log = get_logger(__name__)


class ClockNotReadyError(RuntimeError):
    """The clock still read zero when the startup wait ran out."""


class SystemClock:
    """Wall-clock time."""

    async def now_ns(self) -> int:
        return time.time_ns()


class RedisClock:
    """Simulated time published by a simulator under a Redis key (nanoseconds)."""

    def __init__(self, redis: aioredis.Redis, key: str = "clock:ns") -> None:
        self._redis = redis
        self._key = key

    async def now_ns(self) -> int:
        value = await self._redis.get(self._key)
        if value is None:
            return 0
        return int(value)


async def wait_until_ready(
    clock: SystemClock | RedisClock,
    poll_interval_s: float = 0.1,
    timeout_s: float = 30.0,
) -> int:
    """Wait until ``clock`` reports a non-zero time and return it.

    Raises:
        ClockNotReadyError: if the clock is still at zero after ``timeout_s``.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    waited = False
    while True:
        now = await clock.now_ns()
        if now > 0:
            if waited:
                log.info("clock_ready", now_ns=now)
            return now
        if loop.time() >= deadline:
            raise ClockNotReadyError(f"clock still at zero after {timeout_s}s")
        if not waited:
            log.info("clock_waiting", timeout_s=timeout_s)
            waited = True
        await asyncio.sleep(poll_interval_s)
