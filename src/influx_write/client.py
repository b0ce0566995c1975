"""Synchronous write client for the InfluxDB 1.x HTTP `/write` endpoint.

The client performs exactly one POST per call and classifies the outcome:

- HTTP 204 is the only success.
- Any other status is a `rejected` delivery error (status + body kept).
- Exceeding `http_timeout` for the whole round trip (or `requests.Timeout`)
  is a `timeout` delivery error.
- Any other transport failure (refused, reset, DNS) is `unreachable`.

Retrying is the caller's job; nothing here loops. One `requests.Session` is
reused across calls so connections are pooled between flushes.
"""

from __future__ import annotations

import gzip
import queue
import threading
import time
from collections.abc import Sequence
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import requests #type: ignore
from loguru import logger

from config import InfluxDBConfig

from .models import WriteAck, WriteParams

_SUCCESS_STATUS = 204


class DeliveryErrorKind(str, Enum):
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


class DeliveryError(RuntimeError):
    """A single write attempt that did not end in HTTP 204."""

    def __init__(
        self,
        kind: DeliveryErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ):
        """Create an error capturing the failure kind and, if any, the HTTP response."""
        self.kind = kind
        self.status_code = status_code
        self.body = body
        super().__init__(f"{kind.value}: {message}")


class InfluxDBClient:
    """One-shot line-protocol writer.

    Members:
    - Config: `config`
    - Write endpoint: `write_url` (scheme/host/port from config)
    - HTTP session: `session` (reused across writes)
    """

    def __init__(self, config: InfluxDBConfig, *, session: requests.Session | None = None):
        """Create a client for the configured destination."""
        self.config = config
        self.write_url: str = config.write_url
        self.timeout: float = config.http_timeout
        self.compression: bool = config.http_compression

        self.session = session or requests.Session()
        if config.ssl:
            self.session.verify = config.ssl_cert or True

    def close(self) -> None:
        """Release pooled connections."""
        self.session.close()

    def build_url(self, params: WriteParams) -> str:
        """Write URL with the non-empty, non-credential parameters as query string."""
        query = params.query_params()
        if not query:
            return self.write_url
        return f"{self.write_url}?{urlencode(query)}"

    def write(self, lines: Sequence[str], params: WriteParams) -> WriteAck:
        """Newline-join `lines` and send them as one payload."""
        payload = "\n".join(lines).encode("utf-8")
        ack = self.send(payload, params)
        return ack.model_copy(update={"lines": len(lines)})

    def send(self, payload: bytes, params: WriteParams, timeout: float | None = None) -> WriteAck:
        """POST one payload; return an ack or raise `DeliveryError`.

        `timeout` bounds the whole round trip (connect, upload, headers and
        body), not each socket operation.
        """
        limit = timeout or self.timeout
        headers = {
            "Content-Type": "text/plain; charset=utf-8",
            "User-Agent": self.config.handler_name,
        }
        body = payload
        if self.compression:
            headers["Content-Encoding"] = "gzip"
            body = gzip.compress(payload)

        url = self.build_url(params)
        logger.debug(f"{self.config.handler_name}: Writing {len(payload)} bytes to InfluxDB: {url}")

        started = time.monotonic()
        try:
            resp = self._post_with_deadline(url, body=body, headers=headers, auth=params.auth(), limit=limit)
        except requests.Timeout as exc:
            raise DeliveryError(DeliveryErrorKind.TIMEOUT, f"no response within {limit}s") from exc
        except requests.RequestException as exc:
            raise DeliveryError(DeliveryErrorKind.UNREACHABLE, str(exc)) from exc
        elapsed = time.monotonic() - started

        if resp.status_code != _SUCCESS_STATUS:
            raise DeliveryError(
                DeliveryErrorKind.REJECTED,
                f"response code = {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        logger.debug(f"{self.config.handler_name}: response code = {resp.status_code}, body = {resp.text}")
        return WriteAck(status_code=resp.status_code, lines=len(payload.splitlines()), elapsed_s=elapsed)

    def _post_with_deadline(
        self,
        url: str,
        *,
        body: bytes,
        headers: dict[str, str],
        auth: tuple[str, str] | None,
        limit: float,
    ) -> requests.Response:
        """Run the POST on a daemon thread and wait at most `limit` seconds for it.

        `requests` bounds each socket operation only. An abandoned request
        finishes on its own thread and its response is closed there.
        """
        outcome: queue.Queue[tuple[str, Any]] = queue.Queue()
        abandoned = threading.Event()

        def _worker() -> None:
            try:
                resp = self.session.post(url, data=body, headers=headers, auth=auth, timeout=limit)
            except BaseException as exc:  # noqa: BLE001 - re-raised on the calling thread
                outcome.put(("error", exc))
                return
            if abandoned.is_set():
                resp.close()
                return
            outcome.put(("ok", resp))

        thread = threading.Thread(target=_worker, daemon=True, name=f"{self.config.handler_name}-write")
        thread.start()

        try:
            status, value = outcome.get(timeout=limit)
        except queue.Empty:
            abandoned.set()
            raise DeliveryError(DeliveryErrorKind.TIMEOUT, f"no response within {limit}s") from None

        if status == "error":
            raise value
        return value
