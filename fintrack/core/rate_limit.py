"""Fixed-window request counter keyed by an arbitrary identifier.

State lives in the mapping handed to the limiter (a plain dict by default), so a
restart or a second process starts from zero. This is advisory throttling, not
a security boundary.
"""
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, MutableMapping, Optional


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in_ms: int


@dataclass
class _Window:
    count: int
    reset_at_ms: float


# Login attempts: 5 per minute per email
LOGIN = RateLimitConfig(max_requests=5, window_ms=60 * 1000)
# Public reads: 100 per minute per client
API = RateLimitConfig(max_requests=100, window_ms=60 * 1000)
# Share link generation: 10 per hour per user
SHARE = RateLimitConfig(max_requests=10, window_ms=60 * 60 * 1000)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    def __init__(
        self,
        store: Optional[MutableMapping[str, _Window]] = None,
        clock: Callable[[], float] = _monotonic_ms,
        sweep_probability: float = 0.01,
        rng: Callable[[], float] = random.random,
    ):
        self._store = store if store is not None else {}
        self._clock = clock
        self._sweep_probability = sweep_probability
        self._rng = rng
        self._lock = threading.Lock()

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        with self._lock:
            now = self._clock()

            if self._rng() < self._sweep_probability:
                self._sweep(now)

            window = self._store.get(identifier)
            if window is None or now >= window.reset_at_ms:
                self._store[identifier] = _Window(count=1, reset_at_ms=now + config.window_ms)
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - 1,
                    reset_in_ms=config.window_ms,
                )

            window.count += 1
            reset_in_ms = int(window.reset_at_ms - now)
            if window.count > config.max_requests:
                return RateLimitResult(allowed=False, remaining=0, reset_in_ms=reset_in_ms)

            return RateLimitResult(
                allowed=True,
                remaining=max(0, config.max_requests - window.count),
                reset_in_ms=reset_in_ms,
            )

    def sweep(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [key for key, window in self._store.items() if now >= window.reset_at_ms]
        for key in expired:
            del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)
