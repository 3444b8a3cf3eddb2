"""
Wire-level diagnostics.

A WireTap sees the exact bytes exchanged with the server: the request body,
the response status, every raw network chunk and every framed record. The
logging implementation writes them to the ``interactions_client.wire`` logger
with long base64 ``data`` values shortened. Whether a tap is attached is
decided by configuration (``diagnostics.wire_log``).
"""
import itertools
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

wire_logger = logging.getLogger("interactions_client.wire")

_request_counter = itertools.count(1)

_BASE64_DATA = re.compile(r'("data"\s*:\s*")([A-Za-z0-9+/=]{100})([A-Za-z0-9+/=]+)"')


def next_request_id() -> int:
    return next(_request_counter)


def truncate_base64(text: str) -> str:
    return _BASE64_DATA.sub(r'\1\2..."', text)


class WireTap(ABC):
    @abstractmethod
    def on_request(self, request_id: int, method: str, url: str, body: Optional[bytes]) -> None: ...

    @abstractmethod
    def on_response_status(self, request_id: int, status: int) -> None: ...

    @abstractmethod
    def on_chunk(self, request_id: int, chunk: bytes) -> None: ...

    @abstractmethod
    def on_record(self, request_id: int, record: Any) -> None: ...


class NullWireTap(WireTap):
    def on_request(self, request_id, method, url, body):
        pass

    def on_response_status(self, request_id, status):
        pass

    def on_chunk(self, request_id, chunk):
        pass

    def on_record(self, request_id, record):
        pass


class LoggingWireTap(WireTap):
    def __init__(self, level: int = logging.DEBUG, logger: Optional[logging.Logger] = None):
        self.level = level
        self.logger = logger or wire_logger

    def _log(self, request_id: int, direction: str, message: str) -> None:
        self.logger.log(self.level, f"[REQ#{request_id}] {direction} {message}")

    def on_request(self, request_id, method, url, body):
        self._log(request_id, ">>>", f"{method} {url}")
        if not body:
            return
        text = body.decode("utf-8", errors="replace")
        try:
            text = json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except ValueError:
            if len(text) > 500:
                text = text[:500] + "..."
        for line in truncate_base64(text).splitlines():
            self._log(request_id, ">>>", line)

    def on_response_status(self, request_id, status):
        label = "OK" if status < 300 else "ERROR"
        self._log(request_id, "<<<", f"{status} {label}")

    def on_chunk(self, request_id, chunk):
        self._log(request_id, "<<<", f"chunk {len(chunk)} bytes")

    def on_record(self, request_id, record):
        event = record.event or "-"
        self._log(request_id, "<<<", f"SSE event={event} data={truncate_base64(record.data)}")
