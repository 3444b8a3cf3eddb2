"""
Typed protocol events decoded from SSE records.

The label comes from the record's ``event:`` field, or from the payload's
``event_type`` when the server omits it. Unknown labels, and known labels
whose payload matches no shape this client understands, become
``Unrecognized`` instead of failing, so a newer server never breaks an older
client. Invalid JSON under a label this client does interpret is a
``ContentDecodeError``.
"""
import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional, Union

from interactions_client.core.errors import ContentDecodeError
from interactions_client.core.logging import logger
from interactions_client.core.types import EventType, InteractionStatus, parse_status
from interactions_client.protocol.content import ContentItem, decode_content
from interactions_client.protocol.parsers.sse import WireRecord
from interactions_client.protocol.transcript import Transcript


@dataclass(frozen=True)
class ContentDelta:
    item: ContentItem
    index: Optional[int] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class TurnComplete:
    transcript: Transcript
    event_id: Optional[str] = None


@dataclass(frozen=True)
class InteractionStarted:
    interaction_id: Optional[str]
    status: InteractionStatus
    event_id: Optional[str] = None


@dataclass(frozen=True)
class StatusUpdate:
    interaction_id: str
    status: InteractionStatus
    raw_status: Optional[str] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class ContentStart:
    index: int
    item: Optional[ContentItem] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class ContentStop:
    index: int
    event_id: Optional[str] = None


@dataclass(frozen=True)
class StreamError:
    message: str
    code: Optional[str] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    """A record this client does not interpret. ``raw`` is the payload text, verbatim."""

    label: Optional[str]
    raw: str
    event_id: Optional[str] = None


ProtocolEvent = Union[
    ContentDelta,
    TurnComplete,
    InteractionStarted,
    StatusUpdate,
    ContentStart,
    ContentStop,
    StreamError,
    Unrecognized,
]

_KNOWN_LABELS = {e.value for e in EventType}


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _interaction_body(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    inner = payload.get("interaction")
    if isinstance(inner, dict):
        return inner
    if any(k in payload for k in ("status", "id", "outputs")):
        return payload
    return None


def decode_event(record: WireRecord, *, strict: bool = False) -> ProtocolEvent:
    label = record.event
    try:
        payload = json.loads(record.data)
    except ValueError as e:
        if label is not None and label not in _KNOWN_LABELS:
            return Unrecognized(label=label, raw=record.data, event_id=record.event_id)
        logger.error(f"Event decoder: invalid JSON for event {label!r}: {record.data[:100]!r}")
        raise ContentDecodeError(f"Invalid JSON payload for event {label!r}: {e}") from e

    if label is None and isinstance(payload, dict) and isinstance(payload.get("event_type"), str):
        label = payload["event_type"]

    event_id = record.event_id
    if event_id is None and isinstance(payload, dict) and isinstance(payload.get("event_id"), str):
        event_id = payload["event_id"]

    unrecognized = Unrecognized(label=label, raw=record.data, event_id=event_id)
    if not isinstance(payload, dict):
        return unrecognized

    if label == EventType.CONTENT_DELTA:
        index = payload.get("index")
        index = index if _is_index(index) else None
        delta = payload.get("delta")
        if isinstance(delta, dict):
            return ContentDelta(item=decode_content(delta, strict=strict), index=index, event_id=event_id)
        if "type" in payload:
            return ContentDelta(item=decode_content(payload, strict=strict), index=index, event_id=event_id)
        return unrecognized

    if label == EventType.INTERACTION_COMPLETE:
        body = _interaction_body(payload)
        if body is None:
            return unrecognized
        return TurnComplete(transcript=Transcript.from_payload(body, strict=strict), event_id=event_id)

    if label == EventType.INTERACTION_START:
        body = _interaction_body(payload)
        if body is None:
            return unrecognized
        status, _ = parse_status(body.get("status") if isinstance(body.get("status"), str) else None)
        return InteractionStarted(interaction_id=body.get("id"), status=status, event_id=event_id)

    if label == EventType.STATUS_UPDATE:
        interaction_id = payload.get("interaction_id")
        raw_status = payload.get("status")
        if not isinstance(interaction_id, str) or not isinstance(raw_status, str):
            logger.debug("interaction.status_update missing interaction_id or status")
            return unrecognized
        status, raw = parse_status(raw_status)
        return StatusUpdate(interaction_id=interaction_id, status=status, raw_status=raw, event_id=event_id)

    if label == EventType.CONTENT_START:
        index = payload.get("index")
        if not _is_index(index):
            return unrecognized
        content = payload.get("content")
        item = decode_content(content, strict=strict) if isinstance(content, dict) else None
        return ContentStart(index=index, item=item, event_id=event_id)

    if label == EventType.CONTENT_STOP:
        index = payload.get("index")
        if not _is_index(index):
            return unrecognized
        return ContentStop(index=index, event_id=event_id)

    if label == EventType.ERROR:
        err = payload.get("error")
        if not isinstance(err, dict):
            err = payload
        message = err.get("message")
        code = err.get("code")
        return StreamError(
            message=message if isinstance(message, str) and message else "Unknown streaming error",
            code=str(code) if code is not None else None,
            event_id=event_id,
        )

    # unknown label: a delta object is still content
    delta = payload.get("delta")
    if isinstance(delta, dict):
        index = payload.get("index")
        return ContentDelta(
            item=decode_content(delta, strict=strict),
            index=index if _is_index(index) else None,
            event_id=event_id,
        )
    if isinstance(payload.get("interaction"), dict):
        logger.warning(
            f"Unknown event type '{label}' has an interaction field but is not "
            "'interaction.complete'; skipping"
        )
    return unrecognized


async def decode_events(
    records: AsyncIterable[WireRecord],
    *,
    strict: bool = False,
) -> AsyncIterator[ProtocolEvent]:
    """Decode records lazily. Closing this closes ``records``."""
    try:
        async for record in records:
            yield decode_event(record, strict=strict)
    finally:
        aclose = getattr(records, "aclose", None)
        if aclose is not None:
            await aclose()
