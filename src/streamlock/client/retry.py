"""Exponential backoff policy for key acquisition."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff of ``min(base_delay * 2**n, max_delay)`` between attempts."""

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    async def backoff(self, attempt: int) -> None:
        await self.sleep(self.delay(attempt))
