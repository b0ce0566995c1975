"""Events variant: one line per monitoring event, one fixed destination."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from influx_write.models import DeliveryUnit, Record

from .base import BufferedHandler, influxdb_section

_STATUS_NAMES = {0: "Ok", 1: "Warning", 2: "Critical"}


def event_status(status: Any) -> str:
    """Check exit status as a label (anything unexpected is Unknown)."""
    return _STATUS_NAMES.get(status, "Unknown")


def event_measurement(check_name: str) -> str:
    return check_name.replace(".", "_").replace(" ", "_")


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


class EventsHandler(BufferedHandler):
    """Historization of monitoring events in InfluxDB."""

    default_name = "influxdb-events"
    description = "Historization of Events in InfluxDB"

    def to_record(self, event: Mapping[str, Any]) -> Record:
        """Map a decoded event onto a record; tag merging happens in the formatter."""
        check = event.get("check") or {}
        client = event.get("client") or {}
        history = check.get("history") or []

        fields = {
            "type": check.get("type"),
            "client_ip": client.get("address"),
            "client_ver": client.get("version"),
            "action": event.get("action"),
            "status": event_status(check.get("status")),
            "interval": _as_int(check.get("interval")),
            "occurrences": _as_int(event.get("occurrences")),
            "issued": _as_int(check.get("issued")),
            "executed": _as_int(check.get("executed")),
            "history": ",".join(str(h) for h in history) if history else None,
        }
        return Record(
            measurement=event_measurement(str(check.get("name") or "")),
            fields=fields,
            timestamp=event.get("timestamp"),
            client_tags=influxdb_section(client).get("tags") or {},
            tags=influxdb_section(check).get("tags") or {},
            engine_tags={"source": self.config.source, "client": client.get("name")},
        )

    def build_unit(self, event: Mapping[str, Any]) -> DeliveryUnit:
        line = self.formatter.format(self.to_record(event))
        return DeliveryUnit(params=self.config.default_write_params(), lines=(line,))
