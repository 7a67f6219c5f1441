"""In-memory circuit breaker for provider calls (process-local).

Keys are provider operations (e.g. ``apify:start_run``). An OPEN breaker
fails calls fast; callers treat that exactly like a transient provider
failure, so inbox entries simply stay unprocessed until a later run.

Thresholds come from ``CIRCUIT_BREAKER`` unless a mapping is passed in.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

from app.config import CIRCUIT_BREAKER

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


@dataclass
class BreakerState:
    failures: int = 0
    state: str = CLOSED
    opened_at: datetime | None = None
    half_open_probes: int = 0

    def trip(self) -> None:
        self.state = OPEN
        self.opened_at = datetime.now(timezone.utc)
        self.half_open_probes = 0


class CircuitBreaker:
    def __init__(self, config: Optional[Mapping[str, int | float]] = None):
        self._config = config
        self._states: Dict[str, BreakerState] = {}

    def _setting(self, name: str) -> float:
        # Read lazily so monkeypatched CIRCUIT_BREAKER values apply.
        source = self._config if self._config is not None else CIRCUIT_BREAKER
        return float(source[name])

    def _get(self, key: str) -> BreakerState:
        return self._states.setdefault(key, BreakerState())

    def allow_call(self, key: str) -> tuple[bool, str | None]:
        """``(allowed, reason)``; OPEN turns HALF_OPEN once the cooldown elapsed."""
        st = self._get(key)
        if st.state == OPEN:
            cooldown = timedelta(seconds=self._setting("open_cooldown_seconds"))
            if st.opened_at is None or datetime.now(timezone.utc) - st.opened_at < cooldown:
                return False, "circuit_open"
            st.state = HALF_OPEN
            st.half_open_probes = 0
        if st.state == HALF_OPEN:
            if st.half_open_probes >= self._setting("half_open_probe_count"):
                return False, "half_open_probe_exhausted"
            st.half_open_probes += 1
        return True, None

    def record_success(self, key: str) -> None:
        st = self._get(key)
        st.failures = 0
        st.state = CLOSED
        st.opened_at = None
        st.half_open_probes = 0

    def record_failure(self, key: str) -> None:
        st = self._get(key)
        st.failures += 1
        if st.state == HALF_OPEN:
            st.trip()
        elif st.state == CLOSED and st.failures >= self._setting("failure_threshold"):
            st.trip()

    def reset(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[str, dict[str, object]]:
        """Per-key state for the detailed health check."""
        return {
            key: {
                "failures": st.failures,
                "state": st.state,
                "opened_at": st.opened_at.isoformat() if st.opened_at else None,
                "half_open_probes": st.half_open_probes,
            }
            for key, st in self._states.items()
        }


GLOBAL_CIRCUIT_BREAKER = CircuitBreaker()

__all__ = ["CircuitBreaker", "BreakerState", "GLOBAL_CIRCUIT_BREAKER", "CLOSED", "OPEN", "HALF_OPEN"]
