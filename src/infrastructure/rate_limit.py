# src/infrastructure/rate_limit.py

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol


@dataclass(frozen=True)
class RateLimitPreset:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


RATE_LIMIT_PRESETS: Dict[str, RateLimitPreset] = {
    "strict": RateLimitPreset(limit=5, window_seconds=60),
    "moderate": RateLimitPreset(limit=20, window_seconds=60),
    "generous": RateLimitPreset(limit=100, window_seconds=60),
    "webhook": RateLimitPreset(limit=10, window_seconds=60),
    "payment": RateLimitPreset(limit=10, window_seconds=300),
}


class RateLimiter(Protocol):
    def check(self, identifier: str, preset_name: str) -> RateLimitResult:
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """
    Fixed-window counter per (preset, identifier), held in process memory.
    Multiple API instances each keep their own counters.
    """

    def __init__(
        self,
        presets: Optional[Dict[str, RateLimitPreset]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._presets = dict(presets or RATE_LIMIT_PRESETS)
        self._clock = clock or time.time
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, identifier: str, preset_name: str) -> RateLimitResult:
        try:
            preset = self._presets[preset_name]
        except KeyError as exc:
            raise ValueError(f"Unknown rate limit preset: {preset_name}") from exc

        key = f"{preset_name}:{identifier}"
        now = self._clock()

        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(key)

            if window is None:
                window = _Window(count=0, reset_at=now + preset.window_seconds)
                self._windows[key] = window

            if window.count >= preset.limit:
                return RateLimitResult(
                    allowed=False,
                    limit=preset.limit,
                    remaining=0,
                    reset_at=window.reset_at,
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=preset.limit,
                remaining=preset.limit - window.count,
                reset_at=window.reset_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
