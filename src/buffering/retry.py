"""Bounded retry state machine for buffer deliveries.

States:

- `Idle`: no pending failure; an attempt is always permitted.
- `BackingOff(since, count)`: `count` failed attempts so far, the latest at
  `since`. Attempts are suppressed until `retry_delay_s` has elapsed.

A failure while `count` already equals `max_attempts` drops the batch and
returns to `Idle`. The delay is constant; there is no exponential growth.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

from loguru import logger

from influx_write.client import DeliveryError


@dataclass(frozen=True)
class Idle:
    """No pending failure; carries no counters."""


@dataclass(frozen=True)
class BackingOff:
    since: int
    attempt_count: int


RetryState: TypeAlias = Idle | BackingOff


class AttemptOutcome(str, Enum):
    DELIVERED = "delivered"
    BACKING_OFF = "backing_off"
    DROPPED = "dropped"


@dataclass(frozen=True)
class AttemptResult:
    outcome: AttemptOutcome
    attempt_count: int
    error: DeliveryError | None = None


class RetryController:
    """Tracks failed attempts and decides when to retry or give up."""

    def __init__(self, *, max_attempts: int, retry_delay_s: int, name: str = "influxdb") -> None:
        if max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0. Got: {max_attempts}")
        if retry_delay_s < 0:
            raise ValueError(f"retry_delay_s must be >= 0. Got: {retry_delay_s}")
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s
        self.name = name
        self.state: RetryState = Idle()

    @property
    def attempt_count(self) -> int:
        if isinstance(self.state, Idle):
            return 0
        return self.state.attempt_count

    def permits_attempt(self, now: float) -> bool:
        """False while a failed attempt is younger than the retry delay."""
        if isinstance(self.state, Idle):
            return True
        elapsed = int(now) - self.state.since
        if elapsed < self.retry_delay_s:
            logger.debug(f"{self.name}: Waiting for ({elapsed}/{self.retry_delay_s}) seconds before next retry")
            return False
        return True

    def attempt(self, deliver: Callable[[], None], now: float) -> AttemptResult:
        """Run one delivery attempt and advance the state machine.

        Only `DeliveryError` counts as a failed attempt; anything else is a bug
        and propagates.
        """
        try:
            deliver()
        except DeliveryError as exc:
            return self.record_failure(now, exc)
        self.record_success()
        return AttemptResult(AttemptOutcome.DELIVERED, attempt_count=0)

    def record_success(self) -> None:
        self.state = Idle()

    def record_failure(self, now: float, error: DeliveryError | None = None) -> AttemptResult:
        count = self.attempt_count
        if count >= self.max_attempts:
            self.state = Idle()
            logger.error(
                f"{self.name}: Maximum retries reached ({count}/{self.max_attempts}), "
                f"all buffered data has been lost! {error}"
            )
            return AttemptResult(AttemptOutcome.DROPPED, attempt_count=count, error=error)

        self.state = BackingOff(since=int(now), attempt_count=count + 1)
        logger.warning(f"{self.name}: Writing to InfluxDB failed ({count + 1}/{self.max_attempts}), {error}")
        return AttemptResult(AttemptOutcome.BACKING_OFF, attempt_count=count + 1, error=error)
