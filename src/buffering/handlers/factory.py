"""Handler construction from the host's settings mapping."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from config import InfluxDBConfig
from observability.recorder import DeliveryRecorder

from .base import BufferedHandler
from .events import EventsHandler
from .metrics import MetricsHandler

HANDLERS: dict[str, type[BufferedHandler]] = {
    EventsHandler.default_name: EventsHandler,
    MetricsHandler.default_name: MetricsHandler,
}


def create_handler(
    name: str,
    config: InfluxDBConfig,
    *,
    recorder: DeliveryRecorder | None = None,
) -> BufferedHandler:
    """Instantiate the handler registered under `name`."""
    try:
        handler_cls = HANDLERS[name]
    except KeyError:
        raise ValueError(f"Unknown handler {name!r}. Expected one of: {', '.join(sorted(HANDLERS))}") from None
    if config.handler_name != name:
        config = config.model_copy(update={"handler_name": name})
    return handler_cls(config, recorder=recorder)


def handler_from_settings(
    settings: Mapping[str, Any],
    name: str,
    *,
    recorder: DeliveryRecorder | None = None,
) -> BufferedHandler:
    """Validate the `name` settings section and build its handler.

    Raises `ValueError` when required destination settings are missing.
    """
    return create_handler(name, InfluxDBConfig.from_settings(settings, name), recorder=recorder)
