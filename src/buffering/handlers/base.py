"""Handler plumbing shared by the events and metrics variants.

The host calls `run(event)` once per incoming event and `stop()` once at
shutdown. Both are fire-and-forget: `run` always reports the same
"handler finished" status, whatever happened to the event internally.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from config import InfluxDBConfig
from influx_write.client import InfluxDBClient
from influx_write.line_protocol import InvalidRecordError, LineFormatter
from influx_write.models import DeliveryUnit
from observability.recorder import DeliveryRecorder

from ..engine import BufferedWriter
from ..policy import FlushPolicy
from ..retry import RetryController

HandlerStatus = tuple[str, int]


def influxdb_section(obj: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """The `influxdb` overrides block of a client/check definition (or {})."""
    if not obj:
        return {}
    return obj.get("influxdb") or {}


class BufferedHandler:
    """Maps host events to delivery units and feeds them to a `BufferedWriter`.

    Subclasses implement `build_unit`.
    """

    default_name = "influxdb"
    description = ""

    def __init__(
        self,
        config: InfluxDBConfig,
        *,
        client: InfluxDBClient | None = None,
        recorder: DeliveryRecorder | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create a handler with its own client, buffer and retry state."""
        self.config = config
        self.name = config.handler_name
        self.formatter = LineFormatter(config.tags)
        self.client = client or InfluxDBClient(config)
        self.writer = BufferedWriter(
            client=self.client,
            policy=FlushPolicy(max_size=config.buffer_size, max_age_s=config.buffer_max_age),
            retry=RetryController(
                max_attempts=config.buffer_max_try,
                retry_delay_s=config.buffer_max_try_delay,
                name=self.name,
            ),
            name=self.name,
            recorder=recorder,
            clock=clock,
        )
        logger.info(
            f"{self.name}: Successfully initialized: url: {config.write_url}, db: {config.db}, "
            f"rp: {config.retention_policy}, cl: {config.consistency}, "
            f"http_compression: {config.http_compression}, http_timeout: {config.http_timeout}:s, "
            f"buffer_size: {config.buffer_size}, buffer_max_age: {config.buffer_max_age}:s, "
            f"buffer_max_try: {config.buffer_max_try}, buffer_max_try_delay: {config.buffer_max_try_delay}:s"
        )

    def build_unit(self, event: Mapping[str, Any]) -> DeliveryUnit | None:
        """Map one decoded event to a delivery unit (None when nothing is shippable)."""
        raise NotImplementedError

    def run(self, event: str | bytes | Mapping[str, Any]) -> HandlerStatus:
        """Buffer one event (and maybe flush). Never raises."""
        try:
            payload = json.loads(event) if isinstance(event, (str, bytes)) else event
            unit = self.build_unit(payload)
            if unit is not None:
                self.writer.ingest(unit)
        except InvalidRecordError as exc:
            logger.error(f"{self.name}: Event is invalid, skipping event {event} - {exc}")
        except Exception as exc:  # noqa: BLE001 - the host protocol is fire-and-forget
            logger.error(f"{self.name}: Unable to buffer event: {event} - {type(exc).__name__}: {exc}")
        return f"{self.name}: handler finished", 0

    def stop(self) -> None:
        """Final best-effort flush, then release the HTTP session."""
        try:
            self.writer.shutdown()
        finally:
            self.client.close()
