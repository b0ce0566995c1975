"""Delivery outcome record models.

Records are designed to be:
- Durable and append-only (sink decides storage).
- One per flush outcome, so delivered/retried/lost volumes can be audited.
- Safe by default (counts and error text only, never payload lines or credentials).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


DeliveryOutcome = Literal["delivered", "backing_off", "dropped", "lost_on_shutdown"]


class DeliveryRecord(BaseModel):
    """A durable, structured record of one flush attempt."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    outcome: DeliveryOutcome

    # Handler that owned the buffer (e.g., "influxdb-events").
    handler: str

    # Volume involved in the attempt.
    units: int = 0
    lines: int = 0

    # Retry bookkeeping after the attempt.
    attempt_count: int = 0
    error: str | None = None

    # Timing fields.
    occurred_at: datetime
    logged_at: datetime = Field(default_factory=utc_now)
