"""Retry/backoff policy shared by every remote call."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from ..core.errors import GenerationError, RateLimited

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s)?\s*$", re.IGNORECASE)


def parse_retry_delay(value: Any) -> Optional[float]:
    """Convert a service delay hint into seconds.

    Accepts numbers, ``"12s"``/``"1.5s"``/``"800ms"`` strings, and protobuf
    ``Duration``-like objects exposing ``seconds``/``nanos``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if not match:
            return None
        amount = float(match.group(1))
        if (match.group(2) or "s").lower() == "ms":
            amount /= 1000.0
        return amount
    seconds = getattr(value, "seconds", None)
    if seconds is not None:
        nanos = getattr(value, "nanos", 0) or 0
        return float(seconds) + float(nanos) / 1e9
    if hasattr(value, "total_seconds"):
        return float(value.total_seconds())
    return None


def _iter_details(exc: BaseException) -> Iterable[Any]:
    details = getattr(exc, "details", None)
    if callable(details):
        try:
            details = details()
        except Exception:
            details = None
    for source in (details, getattr(exc, "error_details", None), getattr(exc, "errorDetails", None)):
        if isinstance(source, (list, tuple)):
            yield from source


def extract_retry_hint(exc: BaseException) -> Optional[float]:
    """Find the server-suggested delay (seconds) embedded in a failure, if any."""
    hint = parse_retry_delay(getattr(exc, "retry_after", None))
    if hint is not None:
        return hint
    for detail in _iter_details(exc):
        if isinstance(detail, dict):
            candidate = detail.get("retryDelay", detail.get("retry_delay"))
        else:
            candidate = getattr(detail, "retry_delay", None)
        hint = parse_retry_delay(candidate)
        if hint is not None:
            return hint
    cause = exc.__cause__
    if cause is not None and cause is not exc:
        return extract_retry_hint(cause)
    return None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    jitter: float = 1.0
    max_delay: Optional[float] = 60.0
    hint_extractor: Callable[[BaseException], Optional[float]] = extract_retry_hint

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Exponential backoff with jitter for the given 1-based attempt."""
        rng = rng or random
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter > 0:
            delay += rng.uniform(0, self.jitter)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if isinstance(exc, GenerationError):
            return exc.retryable
        return True

    def delay_for(self, exc: BaseException, attempt: int, rng: Optional[random.Random] = None) -> float:
        delay = self.backoff(attempt, rng)
        if isinstance(exc, RateLimited):
            hint = self.hint_extractor(exc)
            if hint is not None:
                delay = max(delay, hint)
        return delay
