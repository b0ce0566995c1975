"""Dual-trigger (size OR age) flush policy gated by retry backoff."""

from __future__ import annotations

from dataclasses import dataclass

from .buffer import Buffer
from .retry import RetryController


@dataclass(frozen=True)
class FlushPolicy:
    """Size and age thresholds; either one alone is enough to trigger."""

    max_size: int
    max_age_s: int

    def should_flush(self, buffer: Buffer, now: float) -> bool:
        return buffer.size() >= self.max_size or buffer.age_seconds(now) >= self.max_age_s

    def should_attempt(self, buffer: Buffer, retry: RetryController, now: float) -> bool:
        """Flush only when triggered and not inside a backoff window."""
        if buffer.is_empty():
            return False
        if not self.should_flush(buffer, now):
            return False
        return retry.permits_attempt(now)
