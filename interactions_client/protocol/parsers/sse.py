import re
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Optional

from interactions_client.core.errors import FrameDecodeError, StreamTruncatedError
from interactions_client.core.logging import logger
from interactions_client.protocol.diagnostics import WireTap

DEFAULT_MAX_RECORD_BYTES = 16 * 1024 * 1024

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class WireRecord:
    event: Optional[str]
    data: str
    event_id: Optional[str] = None


class SseFrameParser:
    """
    Incremental Server-Sent Events framer.
    - feed() buffers raw bytes and drains every record closed by a blank line
    - Partial records stay buffered until the next chunk
    - UTF-8 decoding happens per complete record, so split code points are safe
    - finalize() reports leftover bytes as a truncated record
    """

    # blank line in any of the three line-ending styles; longest alternatives first
    SEPARATOR = re.compile(rb"\r\n\r\n|\r\n\n|\n\r\n|\n\n|\r\r")
    LINE_BREAK = re.compile(r"\r\n|\r|\n")

    def __init__(self, max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES):
        self.buf = bytearray()
        self._scan_pos = 0
        self.max_record_bytes = max_record_bytes
        self.retry_ms: Optional[int] = None
        self.last_event_id: Optional[str] = None

    def feed(self, chunk: bytes) -> List[WireRecord]:
        records: List[WireRecord] = []
        if not chunk:
            return records

        self.buf.extend(chunk)
        while True:
            m = self.SEPARATOR.search(self.buf, self._scan_pos)
            if m is None:
                # bytes before this point hold no separator; a split one needs at most 3 of them
                self._scan_pos = max(0, len(self.buf) - 3)
                break
            raw = bytes(self.buf[: m.start()])
            del self.buf[: m.end()]
            self._scan_pos = 0
            record = self._parse_record(raw)
            if record is not None:
                records.append(record)

        if len(self.buf) > self.max_record_bytes:
            size = len(self.buf)
            self.buf.clear()
            self._scan_pos = 0
            logger.error(f"SSE parser: record exceeds {self.max_record_bytes} bytes (buffered={size})")
            raise FrameDecodeError(f"SSE record exceeds maximum size of {self.max_record_bytes} bytes")
        return records

    def finalize(self) -> List[WireRecord]:
        leftover = bytes(self.buf)
        self.buf.clear()
        self._scan_pos = 0
        if not leftover.strip():
            return []
        logger.warning(f"SSE parser finalize: stream ended mid-record ({len(leftover)} bytes buffered)")
        raise StreamTruncatedError(
            f"Stream ended with an incomplete SSE record ({len(leftover)} bytes without a terminating blank line)"
        )

    def _parse_record(self, raw: bytes) -> Optional[WireRecord]:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"SSE record is not valid UTF-8: {e}") from e

        event: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: List[str] = []
        saw_field = False

        for line in self.LINE_BREAK.split(text):
            if not line or line.startswith(":"):
                continue
            name, sep, value = line.partition(":")
            if sep and value.startswith(" "):
                value = value[1:]
            if name == "data":
                data_lines.append(value)
            elif name == "event":
                event = value or None
            elif name == "id":
                event_id = value or None
            elif name == "retry":
                if value.isdigit():
                    self.retry_ms = int(value)
            else:
                logger.error(f"SSE parser: malformed line {line[:80]!r}")
                raise FrameDecodeError(f"Malformed SSE line (expected 'data:', 'event:', 'id:' or 'retry:'): {line[:80]!r}")
            saw_field = True

        if not saw_field:
            # comments only: keep-alive
            return None
        if event_id is not None:
            self.last_event_id = event_id
        if not data_lines:
            if event is None and event_id is None:
                # a bare retry: directive
                return None
            raise FrameDecodeError(f"SSE record has no 'data:' line (event={event!r})")

        data = "\n".join(data_lines)
        if not data.strip():
            logger.debug(f"SSE parser: skipping record with empty data (event={event!r})")
            return None
        if data.strip() == DONE_SENTINEL:
            return None
        return WireRecord(event=event, data=data, event_id=event_id)


async def read_records(
    chunks: AsyncIterable[bytes],
    *,
    max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES,
    wire_tap: Optional[WireTap] = None,
    request_id: int = 0,
) -> AsyncIterator[WireRecord]:
    """Frame an async byte stream into WireRecords. Closing this closes ``chunks``."""
    parser = SseFrameParser(max_record_bytes=max_record_bytes)
    try:
        async for chunk in chunks:
            if wire_tap is not None:
                wire_tap.on_chunk(request_id, chunk)
            for record in parser.feed(chunk):
                if wire_tap is not None:
                    wire_tap.on_record(request_id, record)
                yield record
        for record in parser.finalize():
            yield record
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
