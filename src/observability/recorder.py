"""Recorder that hands delivery outcomes to a sink without ever failing the caller."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger

from .models import DeliveryOutcome, DeliveryRecord, utc_now
from .sinks import DeliverySink


class DeliveryRecorder:
    """Writes one `DeliveryRecord` per flush outcome to a synchronous sink."""

    def __init__(self, *, sink: DeliverySink) -> None:
        """Create a recorder backed by a synchronous sink."""
        self._sink = sink
        self._closed = False

        # Degradation tracking: counts and time window.
        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def record(
        self,
        outcome: DeliveryOutcome,
        *,
        handler: str,
        units: int,
        lines: int,
        attempt_count: int = 0,
        error: BaseException | None = None,
        occurred_at: datetime | None = None,
    ) -> None:
        """Record one outcome; sink failures are counted, not raised."""
        if self._closed:
            return

        record = DeliveryRecord(
            outcome=outcome,
            handler=handler,
            units=units,
            lines=lines,
            attempt_count=attempt_count,
            error=str(error) if error is not None else None,
            occurred_at=occurred_at or utc_now(),
            logged_at=utc_now(),
        )
        try:
            self._sink.write(record)
        except Exception as exc:  # noqa: BLE001 - recording must not break delivery
            now = utc_now()
            self._write_failures += 1
            self._first_failure_at = self._first_failure_at or now
            self._last_failure_at = now
            logger.debug(f"Delivery record write failed (ignored): {type(exc).__name__}: {exc}")

    def close(self) -> None:
        """Close the sink. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        self._sink.close()

    def failure_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
