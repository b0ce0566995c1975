"""Buffered delivery engine.

Responsibilities:
- append each ingested delivery unit to the buffer
- evaluate the size/age triggers after every ingest (no background timer)
- run delivery attempts through the retry controller
- keep exactly the undelivered units when an attempt fails
- make one best-effort attempt at shutdown, ignoring backoff
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence

from loguru import logger

from influx_write.client import DeliveryError, InfluxDBClient
from influx_write.models import DeliveryUnit, WriteParams
from observability.recorder import DeliveryRecorder

from .buffer import Buffer
from .policy import FlushPolicy
from .retry import AttemptOutcome, AttemptResult, RetryController


def group_by_params(units: Sequence[DeliveryUnit]) -> list[tuple[WriteParams, list[DeliveryUnit]]]:
    """Group units sharing identical write parameters, in first-seen order."""
    groups: dict[WriteParams, list[DeliveryUnit]] = {}
    for unit in units:
        groups.setdefault(unit.params, []).append(unit)
    return list(groups.items())


def _count_lines(units: Sequence[DeliveryUnit]) -> int:
    return sum(len(u.lines) for u in units)


class BufferedWriter:
    """Owns one buffer and its retry state; delivers through `InfluxDBClient`.

    Ingest, trigger evaluation and flush run under a single lock, so at most
    one flush is ever in flight and retry accounting cannot interleave.
    """

    def __init__(
        self,
        *,
        client: InfluxDBClient,
        policy: FlushPolicy,
        retry: RetryController,
        name: str = "influxdb",
        recorder: DeliveryRecorder | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create a writer around an explicitly owned buffer."""
        self._client = client
        self._policy = policy
        self._retry = retry
        self._recorder = recorder
        self._clock = clock
        self.name = name

        self._lock = threading.Lock()
        self.buffer: Buffer[DeliveryUnit] = Buffer(created_at=clock())

    @property
    def retry(self) -> RetryController:
        return self._retry

    def ingest(self, unit: DeliveryUnit) -> AttemptResult | None:
        """Buffer one unit and flush if a trigger fires outside backoff.

        Returns the attempt result when a flush was attempted, else None.
        """
        with self._lock:
            now = self._clock()
            self.buffer.append(unit)
            logger.debug(
                f"{self.name}: Stored in buffer ({self.buffer.size()}/{self._policy.max_size}) - "
                f"{' | '.join(unit.lines)}"
            )
            if not self._policy.should_attempt(self.buffer, self._retry, now):
                return None
            return self._flush_locked(now)

    def shutdown(self) -> AttemptResult | None:
        """One final attempt regardless of backoff; failures are not retried."""
        with self._lock:
            if self.buffer.is_empty():
                return None
            now = self._clock()
            units = self.buffer.drain()
            logger.info(f"{self.name}: Flushing buffer before shutdown ({len(units)}/{self._policy.max_size})")

            groups = group_by_params(units)
            try:
                self._send_groups(groups)
            except DeliveryError as exc:
                lost = [u for _, group in groups for u in group]
                logger.error(
                    f"{self.name}: Final flush failed, {_count_lines(lost)} buffered lines have been lost! {exc}"
                )
                self._retry.record_success()
                self._record("lost_on_shutdown", lost, attempt_count=0, error=exc)
                return AttemptResult(AttemptOutcome.DROPPED, attempt_count=0, error=exc)

            self._retry.record_success()
            self.buffer.reset_age(now)
            self._record("delivered", units, attempt_count=0)
            return AttemptResult(AttemptOutcome.DELIVERED, attempt_count=0)

    def _flush_locked(self, now: float) -> AttemptResult:
        """Drain, attempt, then requeue whatever was not delivered."""
        units = self.buffer.drain()
        groups = group_by_params(units)

        result = self._retry.attempt(lambda: self._send_groups(groups), now)

        if result.outcome is AttemptOutcome.BACKING_OFF:
            pending = [u for _, group in groups for u in group]
            self.buffer.requeue(pending)
            self._record("backing_off", pending, attempt_count=result.attempt_count, error=result.error)
        elif result.outcome is AttemptOutcome.DROPPED:
            dropped = [u for _, group in groups for u in group]
            self.buffer.reset_age(now)
            self._record("dropped", dropped, attempt_count=result.attempt_count, error=result.error)
        else:
            self.buffer.reset_age(now)
            self._record("delivered", units, attempt_count=0)
        return result

    def _send_groups(self, groups: list[tuple[WriteParams, list[DeliveryUnit]]]) -> None:
        """Send each group as one payload; delivered groups are removed from `groups`."""
        while groups:
            params, units = groups[0]
            lines = [line for unit in units for line in unit.lines]
            ack = self._client.write(lines, params)
            logger.info(f"{self.name}: Sent {ack.lines} lines to InfluxDB in ({ack.elapsed_s:.3f}:s)")
            groups.pop(0)

    def _record(
        self,
        outcome,
        units: Sequence[DeliveryUnit],
        *,
        attempt_count: int,
        error: BaseException | None = None,
    ) -> None:
        if self._recorder is None:
            return
        self._recorder.record(
            outcome,
            handler=self.name,
            units=len(units),
            lines=_count_lines(units),
            attempt_count=attempt_count,
            error=error,
        )
