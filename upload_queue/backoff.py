"""
Exponential backoff for failed uploads.

Delay doubles per attempt up to a cap, with equal jitter: the result is
uniform in [delay / 2, delay], so retries of many items spread out while the
minimum wait still grows with every attempt.
"""

import random
from typing import Optional


def calculate_delay(
    retry_count: int,
    base: float,
    cap: float,
    jitter_seed: Optional[int] = None,
) -> float:
    """
    Calculate backoff delay for a retry.

    Args:
        retry_count: Zero-based retry number (0 = first retry)
        base: Base delay in seconds (0 disables backoff)
        cap: Maximum delay in seconds
        jitter_seed: Seed for deterministic jitter (tests only)

    Returns:
        Delay in seconds within [min(cap, base * 2**n) / 2, min(cap, base * 2**n)]
    """
    if base <= 0 or cap <= 0:
        return 0.0

    # Avoid float overflow on absurd retry counts
    exponent = min(max(retry_count, 0), 32)
    delay = min(cap, base * (2 ** exponent))

    rng = random.Random(jitter_seed) if jitter_seed is not None else random
    return rng.uniform(delay / 2, delay)
