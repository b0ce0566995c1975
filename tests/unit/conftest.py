from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger


@pytest.fixture
def log_messages() -> Iterator[list[tuple[str, str]]]:
    """Capture `(level, message)` pairs emitted through loguru during a test.

    loguru does not go through stdlib logging, so `caplog` never sees it.
    """
    captured: list[tuple[str, str]] = []

    def _sink(message) -> None:  # noqa: ANN001
        record = message.record
        captured.append((record["level"].name, record["message"]))

    handler_id = logger.add(_sink, level="DEBUG")
    yield captured
    logger.remove(handler_id)


class FakeClock:
    """Manually advanced replacement for `time.time`."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
