from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import pytest

from buffering.handlers.events import EventsHandler, event_measurement, event_status
from buffering.handlers.factory import create_handler, handler_from_settings
from buffering.handlers.metrics import MetricsHandler, metric_measurement
from config import InfluxDBConfig
from influx_write.client import DeliveryError, DeliveryErrorKind
from influx_write.models import WriteAck, WriteParams


class _FakeClient:
    def __init__(self) -> None:
        self.failing = False
        self.writes: list[tuple[WriteParams, list[str]]] = []
        self.closed = False

    def write(self, lines: Sequence[str], params: WriteParams) -> WriteAck:
        if self.failing:
            raise DeliveryError(DeliveryErrorKind.TIMEOUT, "no response within 15s")
        self.writes.append((params, list(lines)))
        return WriteAck(status_code=204, lines=len(lines), elapsed_s=0.0)

    def close(self) -> None:
        self.closed = True


def _event(**overrides: Any) -> dict[str, Any]:
    event: dict[str, Any] = {
        "timestamp": 1_480_000_000,
        "action": "create",
        "occurrences": 3,
        "client": {
            "name": "web-1",
            "address": "10.0.0.5",
            "version": "0.26.5",
            "influxdb": {"tags": {"team": "web", "env": "prod"}},
        },
        "check": {
            "name": "check disk.root",
            "type": "standard",
            "status": 2,
            "interval": 60,
            "issued": 1_479_999_990,
            "executed": 1_479_999_991,
            "history": ["0", "0", "2"],
            "influxdb": {"tags": {"env": "staging"}},
        },
    }
    event.update(overrides)
    return event


def _config(name: str, **overrides: Any) -> InfluxDBConfig:
    values: dict[str, Any] = {"hostname": "h", "db": "sensu", "handler_name": name, "buffer_size": 100}
    values.update(overrides)
    return InfluxDBConfig(**values)


def _events_handler(clock, **overrides: Any) -> tuple[EventsHandler, _FakeClient]:
    client = _FakeClient()
    handler = EventsHandler(_config("influxdb-events", **overrides), client=client, clock=clock)  # type: ignore[arg-type]
    return handler, client


def _metrics_handler(clock, **overrides: Any) -> tuple[MetricsHandler, _FakeClient]:
    client = _FakeClient()
    handler = MetricsHandler(_config("influxdb-metrics", **overrides), client=client, clock=clock)  # type: ignore[arg-type]
    return handler, client


@pytest.mark.parametrize(("status", "label"), [(0, "Ok"), (1, "Warning"), (2, "Critical"), (3, "Unknown"), (None, "Unknown")])
def test_event_status_labels(status: Any, label: str) -> None:
    assert event_status(status) == label


def test_event_measurement_replaces_separators() -> None:
    assert event_measurement("check disk.root") == "check_disk_root"


def test_metric_measurement_drops_host_component() -> None:
    assert metric_measurement("web-1.cpu.user") == "cpu_user"
    assert metric_measurement("nohost") == ""


def test_events_handler_formats_one_line(clock) -> None:
    handler, client = _events_handler(clock, tags={"dc": "eu", "env": "global"}, buffer_size=1)

    status = handler.run(json.dumps(_event()))

    assert status == ("influxdb-events: handler finished", 0)
    params, lines = client.writes[0]
    assert params == WriteParams(db="sensu", precision="s")
    assert lines == [
        "check_disk_root,client=web-1,dc=eu,env=staging,source=sensu,team=web "
        'action="create",client_ip="10.0.0.5",client_ver="0.26.5",executed=1479999991i,'
        'history="0,0,2",interval=60i,issued=1479999990i,occurrences=3i,status="Critical",type="standard" '
        "1480000000"
    ]


def test_events_handler_accepts_decoded_mapping(clock) -> None:
    handler, _ = _events_handler(clock)
    handler.run(_event())
    assert handler.writer.buffer.size() == 1


def test_invalid_timestamp_is_skipped_and_logged(clock, log_messages: list[tuple[str, str]]) -> None:
    handler, _ = _events_handler(clock)

    status = handler.run(_event(timestamp="yesterday"))

    assert status == ("influxdb-events: handler finished", 0)
    assert handler.writer.buffer.is_empty()
    assert any(level == "ERROR" and "skipping event" in msg for level, msg in log_messages)

    handler.run(_event())
    assert handler.writer.buffer.size() == 1


def test_malformed_json_never_raises(clock, log_messages: list[tuple[str, str]]) -> None:
    handler, _ = _events_handler(clock)
    assert handler.run("{not json") == ("influxdb-events: handler finished", 0)
    assert handler.writer.buffer.is_empty()
    assert any("Unable to buffer event" in msg for _, msg in log_messages)


def test_delivery_failure_is_invisible_to_host(clock) -> None:
    handler, client = _events_handler(clock, buffer_size=1)
    client.failing = True

    assert handler.run(_event()) == ("influxdb-events: handler finished", 0)
    assert handler.writer.buffer.size() == 1
    assert handler.writer.retry.attempt_count == 1


def test_stop_flushes_and_closes_client(clock) -> None:
    handler, client = _events_handler(clock)
    handler.run(_event())
    handler.run(_event(timestamp=1_480_000_060))

    handler.stop()

    assert len(client.writes[0][1]) == 2
    assert client.closed


def test_metrics_handler_builds_unit_per_event(clock, log_messages: list[tuple[str, str]]) -> None:
    handler, client = _metrics_handler(clock, buffer_size=1, retention_policy="raw")
    event = _event()
    event["check"] = {
        "name": "cpu-metrics",
        "duration": 0.25,
        "interval": 30,
        "output": "web-1.cpu.user 12.5 1480000000\r\nbroken line\nweb-1.cpu.system 3 1480000000\nweb-1.cpu.idle 80 soon\n",
        "influxdb": {"database": "metrics", "precision": "ms", "tags": {"role": "frontend"}},
    }

    handler.run(event)

    params, lines = client.writes[0]
    assert params == WriteParams(db="metrics", rp="raw", precision="ms")
    assert lines == [
        "cpu_user,env=prod,host=web-1,ip=10.0.0.5,role=frontend,source=sensu,team=web "
        "duration=0.25,interval=30i,value=12.5 1480000000",
        "cpu_system,env=prod,host=web-1,ip=10.0.0.5,role=frontend,source=sensu,team=web "
        "duration=0.25,interval=30i,value=3.0 1480000000",
    ]
    errors = [msg for level, msg in log_messages if level == "ERROR"]
    assert any("broken line" in msg for msg in errors)
    assert any("web-1.cpu.idle 80 soon" in msg for msg in errors)


def test_metrics_without_valid_lines_buffers_nothing(clock) -> None:
    handler, _ = _metrics_handler(clock)
    event = _event()
    event["check"] = {"name": "x", "output": "garbage\n"}

    handler.run(event)

    assert handler.writer.buffer.is_empty()


def test_metrics_buffer_counts_units_not_lines(clock) -> None:
    handler, client = _metrics_handler(clock, buffer_size=2)
    event = _event()
    event["check"] = {"name": "x", "output": "h.a 1 1\nh.b 2 1\nh.c 3 1"}

    handler.run(event)
    assert client.writes == []
    assert handler.writer.buffer.size() == 1

    handler.run(event)
    assert len(client.writes) == 1
    assert len(client.writes[0][1]) == 6


def test_metrics_params_fall_back_to_config(clock) -> None:
    handler, _ = _metrics_handler(clock, user="u", passwd="p", consistency="all")
    params = handler.resolve_params({"name": "x"})
    assert params == WriteParams(db="sensu", consistency="all", user="u", passwd="p", precision="s")


def test_factory_builds_named_handler() -> None:
    handler = create_handler("influxdb-metrics", _config("influxdb-events"))
    try:
        assert isinstance(handler, MetricsHandler)
        assert handler.name == "influxdb-metrics"
    finally:
        handler.client.close()


def test_factory_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown handler"):
        create_handler("influxdb-logs", _config("influxdb-logs"))


def test_handler_from_settings_requires_destination() -> None:
    with pytest.raises(ValueError):
        handler_from_settings({"influxdb-events": {"hostname": "h"}}, "influxdb-events")


def test_event_with_line_break_never_reaches_batch(clock, log_messages: list[tuple[str, str]]) -> None:
    handler, client = _events_handler(clock, buffer_size=2)
    bad = _event()
    bad["client"] = {**bad["client"], "version": "0.26\n5"}

    handler.run(bad)
    assert handler.writer.buffer.is_empty()
    assert any(level == "ERROR" and "skipping event" in msg for level, msg in log_messages)

    handler.run(_event())
    handler.run(_event(timestamp=1_480_000_060))
    _, lines = client.writes[0]
    assert len(lines) == 2
    assert all("\n" not in line for line in lines)
