"""Timing helpers and token estimation."""

from __future__ import annotations

import re
import time

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


class Timer:
    """Simple context timer used around remote calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


class Deadline:
    """Absolute monotonic deadline derived from a caller timeout."""

    def __init__(self, timeout_seconds: float | None) -> None:
        self._expires_at = (
            None if timeout_seconds is None else time.monotonic() + timeout_seconds
        )

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
