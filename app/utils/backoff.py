"""Exponential backoff helpers with jitter for provider retries."""
from __future__ import annotations

import random
from typing import Mapping, Optional

from app.config import BACKOFF_POLICY


def compute_backoff_seconds(
    attempt: int,
    *,
    policy: Optional[Mapping[str, int | float]] = None,
    base: Optional[float] = None,
    factor: Optional[float] = None,
    max_seconds: Optional[float] = None,
    jitter_pct: Optional[float] = None,
) -> float:
    """Delay before retry number ``attempt`` (1-based).

    Explicit keyword values win over ``policy``; ``policy`` defaults to
    ``BACKOFF_POLICY``.
    """
    cfg = policy if policy is not None else BACKOFF_POLICY
    if attempt < 1:
        attempt = 1
    base = float(base if base is not None else cfg["base_seconds"])
    factor = float(factor if factor is not None else cfg["factor"])
    max_seconds = float(max_seconds if max_seconds is not None else cfg["max_seconds"])
    jitter_pct = float(jitter_pct if jitter_pct is not None else cfg["jitter_pct"])

    delay = min(base * (factor ** (attempt - 1)), max_seconds)
    if jitter_pct > 0:
        jitter_amount = delay * jitter_pct
        delay = random.uniform(delay - jitter_amount, delay + jitter_amount)
    return max(delay, 0.0)


def retry_after_seconds(header_value: str | None, *, cap: float | None = None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds; ``None`` if absent/invalid."""
    if not header_value:
        return None
    try:
        seconds = float(header_value.strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    if cap is not None:
        seconds = min(seconds, cap)
    return seconds


__all__ = ["compute_backoff_seconds", "retry_after_seconds"]
