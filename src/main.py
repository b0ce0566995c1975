"""Stand-in host process for the buffered InfluxDB handlers.

This module wires a handler the way a monitoring host would:

- Loads configuration from environment (`INFLUXDB_*`, `.env`).
- Builds the events or metrics handler (`INFLUXDB_HANDLER`).
- Calls `run()` once per JSON event read from stdin (one per line).
- Calls `stop()` at EOF so the buffer gets its final flush.

Set `OBSERVABILITY_DB_PATH` to persist delivery outcomes in DuckDB.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable

from loguru import logger

from buffering.handlers.base import BufferedHandler
from buffering.handlers.factory import create_handler
from config import load_config
from observability import DeliveryRecorder, DuckDBDeliverySink


def configure_logging(level: str | None = None) -> None:
    """Route loguru to stderr at `LOG_LEVEL` (default INFO)."""
    logger.remove()
    logger.add(sys.stderr, level=(level or os.getenv("LOG_LEVEL", "INFO")).upper())


def pump(handler: BufferedHandler, lines: Iterable[str]) -> int:
    """Feed every non-blank line to the handler, then stop it. Returns events seen."""
    seen = 0
    try:
        for raw in lines:
            if not raw.strip():
                continue
            handler.run(raw)
            seen += 1
    finally:
        handler.stop()
    return seen


def main() -> None:
    """CLI entrypoint for `python src/main.py < events.ndjson`."""
    configure_logging()
    handler_name = os.getenv("INFLUXDB_HANDLER", "influxdb-events")
    cfg = load_config(handler_name)

    recorder = None
    db_path = os.getenv("OBSERVABILITY_DB_PATH")
    if db_path:
        recorder = DeliveryRecorder(sink=DuckDBDeliverySink(path=db_path))

    handler = create_handler(handler_name, cfg.influxdb, recorder=recorder)
    try:
        seen = pump(handler, sys.stdin)
        logger.info(f"{handler_name}: processed {seen} events")
    finally:
        if recorder is not None:
            recorder.close()


if __name__ == "__main__":
    main()
