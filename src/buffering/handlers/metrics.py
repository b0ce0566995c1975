"""Metrics variant: Graphite output expanded to many lines per event.

Each check may override its destination (database, retention policy,
consistency, credentials, precision), so every event becomes one delivery
unit carrying its own resolved `WriteParams`.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from loguru import logger

from influx_write.line_protocol import InvalidRecordError, parse_timestamp
from influx_write.models import DeliveryUnit, Record, WriteParams

from .base import BufferedHandler, influxdb_section

_LINE_BREAK = re.compile(r"\r\n|\n")
_WHITESPACE = re.compile(r"\s+")


def metric_measurement(path: str) -> str:
    """Drop the leading host component of a dotted metric path."""
    return "_".join(path.split(".")[1:])


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


class MetricsHandler(BufferedHandler):
    """Historization of Graphite-format check metrics in InfluxDB."""

    default_name = "influxdb-metrics"
    description = "Historization of Metrics in InfluxDB"

    def resolve_params(self, check: Mapping[str, Any]) -> WriteParams:
        """Per-check overrides falling back to the handler configuration."""
        overrides = influxdb_section(check)
        return WriteParams(
            db=overrides.get("database") or self.config.db,
            rp=overrides.get("retention_policy") or self.config.retention_policy,
            consistency=overrides.get("consistency") or self.config.consistency,
            user=overrides.get("user") or self.config.user,
            passwd=overrides.get("passwd") or self.config.passwd,
            precision=overrides.get("precision") or "s",
        )

    def to_records(self, event: Mapping[str, Any]) -> list[Record]:
        """One record per valid Graphite line; invalid lines are logged and skipped."""
        check = event.get("check") or {}
        client = event.get("client") or {}
        client_tags = influxdb_section(client).get("tags") or {}
        check_tags = influxdb_section(check).get("tags") or {}
        engine_tags = {
            "source": self.config.source,
            "host": client.get("name"),
            "ip": client.get("address"),
        }
        interval = check.get("interval")

        records: list[Record] = []
        for line in _LINE_BREAK.split(check.get("output") or ""):
            parts = _WHITESPACE.split(line.strip())
            if len(parts) != 3:
                if line.strip():
                    logger.error(f"{self.name}: Metric is invalid, skipping metric {line}")
                continue

            key, val, ts = parts
            try:
                parse_timestamp(ts)
                value = float(val)
            except (InvalidRecordError, ValueError):
                logger.error(f"{self.name}: Timestamp or value is invalid, skipping metric {line}")
                continue

            records.append(
                Record(
                    measurement=metric_measurement(key),
                    fields={
                        "duration": _as_float(check.get("duration")),
                        "interval": int(interval) if interval not in (None, "") else None,
                        "value": value,
                    },
                    timestamp=ts,
                    client_tags=client_tags,
                    tags=check_tags,
                    engine_tags=engine_tags,
                )
            )
        return records

    def build_unit(self, event: Mapping[str, Any]) -> DeliveryUnit | None:
        check = event.get("check") or {}
        lines: list[str] = []
        for record in self.to_records(event):
            try:
                lines.append(self.formatter.format(record))
            except InvalidRecordError as exc:
                logger.error(f"{self.name}: Metric field is invalid, skipping metric {record.measurement} - {exc}")
        if not lines:
            return None
        return DeliveryUnit(params=self.resolve_params(check), lines=tuple(lines))
