"""Data models shared by the line-protocol formatter and the write client.

These models are a small, purpose-built subset of what the InfluxDB 1.x
`/write` endpoint accepts. They intentionally include only the parameters
the buffering engine needs to address a destination.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Model(BaseModel):
    # Records are built from loosely-typed host payloads; ignore anything extra.
    model_config = ConfigDict(extra="ignore", frozen=True)


class Record(_Model):
    """One observation to ship, before serialization.

    Tag maps are kept per source so the formatter can merge them in a fixed
    precedence order (global config tags are supplied by the formatter itself).
    """

    measurement: str
    fields: dict[str, Any] = Field(default_factory=dict)
    timestamp: Any = None

    # Tag sources, lowest to highest precedence.
    client_tags: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, Any] = Field(default_factory=dict)
    engine_tags: dict[str, Any] = Field(default_factory=dict)


class WriteParams(_Model):
    """Resolved write-target parameters for one payload.

    Credentials never appear in the query string; they travel as basic auth.
    """

    db: str
    rp: str | None = None
    consistency: str | None = None
    precision: str | None = "s"
    user: str | None = None
    passwd: str | None = None

    def query_params(self) -> dict[str, str]:
        """Non-empty `db`/`rp`/`consistency`/`precision`, in that order."""
        params = {
            "db": self.db,
            "rp": self.rp,
            "consistency": self.consistency,
            "precision": self.precision,
        }
        return {k: str(v) for k, v in params.items() if v is not None and str(v) != ""}

    def auth(self) -> tuple[str, str] | None:
        """Basic auth pair, only when both user and password are set."""
        if self.user and self.passwd:
            return self.user, self.passwd
        return None


class DeliveryUnit(_Model):
    """The element stored in the buffer: lines bound for one destination.

    The events variant stores one line per unit; the metrics variant stores
    every line expanded from one input event.
    """

    params: WriteParams
    lines: tuple[str, ...]


class WriteAck(_Model):
    """Successful write acknowledgement."""

    status_code: int
    lines: int
    elapsed_s: float
