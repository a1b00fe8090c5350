from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from badnet.types.proxy_config import Direction


@dataclass
class Throttle:
    """
    Token bucket plus fixed latency for one direction of a connection.

    Callers reserve their bytes before sleeping, so the bucket can go into debt:
    two transfers issued back to back are spaced out as if they had been sent
    one after the other at `bytes_per_sec`.
    """

    bytes_per_sec: int
    latency_sec: float = 0.0
    tokens: float = 0.0
    updated: float = field(default_factory=time.monotonic)

    @classmethod
    def for_direction(cls, direction: Direction) -> Throttle:
        return cls(bytes_per_sec=direction.max_bytes_per_sec, latency_sec=direction.latency_ms / 1000.0)

    @property
    def limited(self) -> bool:
        return self.bytes_per_sec > 0

    def reserve(self, num_bytes: int) -> float:
        """Take `num_bytes` out of the bucket and return how long to wait before they may be sent."""
        if not self.limited or num_bytes <= 0:
            return 0.0

        now = time.monotonic()
        # at most two seconds worth of traffic can be saved up
        self.tokens = min(self.tokens + (now - self.updated) * self.bytes_per_sec, 2.0 * self.bytes_per_sec)
        self.updated = now

        self.tokens -= num_bytes
        if self.tokens >= 0:
            return 0.0
        return -self.tokens / self.bytes_per_sec

    async def wait(self, num_bytes: int) -> None:
        delay = self.reserve(num_bytes) + self.latency_sec
        if delay > 0:
            await asyncio.sleep(delay)
