"""Exponential retry backoff with symmetric jitter."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field


@dataclass(slots=True)
class BackoffPolicy:
    """Map a retry attempt (1 for the first retry) to a delay in milliseconds.

    The unjittered delay doubles per attempt from ``base_delay_ms`` and is capped
    at ``max_delay_ms``. Jitter then scales it by a uniform factor in
    ``[1 - jitter_ratio, 1 + jitter_ratio]`` so tasks that failed together do not
    retry together.
    """

    base_delay_ms: int = 2000
    max_delay_ms: int = 60000
    jitter_ratio: float = 0.25
    rng: random.Random = field(default_factory=random.Random)  # noqa: S311

    def __post_init__(self) -> None:
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if not 0.0 <= self.jitter_ratio < 1.0:
            raise ValueError("jitter_ratio must be in [0, 1)")

    def base_delay(self, attempt: int) -> int:
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)

    def delay(self, attempt: int) -> int:
        base = self.base_delay(attempt)
        factor = 1.0 + self.jitter_ratio * (2.0 * self.rng.random() - 1.0)
        return math.floor(base * factor)
