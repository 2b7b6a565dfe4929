from __future__ import annotations

import random


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, cap: float = 30.0
) -> float:
    """Compute exponential backoff with jitter, capped at ``cap`` seconds."""
    delay = min(base ** attempt, cap)
    return delay + random.uniform(0, jitter)
