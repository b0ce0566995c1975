from __future__ import annotations

import time

import pytest

from buffering.handlers.events import EventsHandler
from buffering.handlers.metrics import MetricsHandler
from buffering.retry import AttemptOutcome
from config import InfluxDBConfig, load_config
from influx_write.client import DeliveryError, DeliveryErrorKind, InfluxDBClient


def _has_real_influxdb() -> bool:
    # `load_config()` loads `.env` first, so a local `.env` is enough to opt in.
    try:
        load_config()
    except Exception:
        return False
    return True


def _real_config(name: str, **overrides) -> InfluxDBConfig:
    cfg = load_config(name).influxdb
    return cfg.model_copy(update=overrides)


@pytest.mark.integration
def test_write_single_line_to_real_influxdb() -> None:
    if not _has_real_influxdb():
        pytest.skip("Missing INFLUXDB_HOSTNAME/INFLUXDB_DB; skipping network integration test.")

    cfg = _real_config("influxdb-events")
    client = InfluxDBClient(cfg)
    try:
        line = f"influx_relay_it,source=pytest value=1i {int(time.time())}"
        ack = client.write([line], cfg.default_write_params())
    finally:
        client.close()

    assert ack.status_code == 204
    assert ack.lines == 1


@pytest.mark.integration
def test_unknown_database_is_rejected() -> None:
    if not _has_real_influxdb():
        pytest.skip("Missing INFLUXDB_HOSTNAME/INFLUXDB_DB; skipping network integration test.")

    cfg = _real_config("influxdb-events")
    client = InfluxDBClient(cfg)
    params = cfg.default_write_params().model_copy(update={"db": "influx_relay_missing_db"})
    try:
        with pytest.raises(DeliveryError) as excinfo:
            client.write([f"influx_relay_it value=1i {int(time.time())}"], params)
    finally:
        client.close()

    assert excinfo.value.kind is DeliveryErrorKind.REJECTED
    assert excinfo.value.status_code is not None


@pytest.mark.integration
def test_handlers_flush_on_stop() -> None:
    if not _has_real_influxdb():
        pytest.skip("Missing INFLUXDB_HOSTNAME/INFLUXDB_DB; skipping network integration test.")

    now = int(time.time())
    event = {
        "timestamp": now,
        "client": {"name": "pytest-host", "address": "127.0.0.1"},
        "check": {
            "name": "influx_relay_check",
            "status": 0,
            "history": ["0"],
            "output": f"pytest-host.relay.latency 0.5 {now}\n",
        },
    }

    events = EventsHandler(_real_config("influxdb-events", buffer_size=100))
    metrics = MetricsHandler(_real_config("influxdb-metrics", buffer_size=100))
    for handler in (events, metrics):
        handler.run(event)
        assert handler.writer.buffer.size() == 1
        try:
            result = handler.writer.shutdown()
        finally:
            handler.client.close()
        assert result is not None and result.outcome is AttemptOutcome.DELIVERED
