"""
Stream aggregator: turns a protocol event stream into live content items and
one final Transcript.

State machine: IDLE -> STREAMING -> COMPLETED | FAILED.

- Deltas merge by slot. The slot is the delta's ``index``; an index-less
  delta goes to the currently open item.
- A completion with a transient status (``in_progress`` or an unrecognised
  string) is not a failure. Streaming continues under the caller's
  ``status_timeout``; if the stream ends first, the poller is asked for the
  interaction until it reports a terminal status.
- Closing ``deltas()`` early closes the upstream event stream and leaves no
  transcript behind.
"""
import asyncio
import dataclasses
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from interactions_client.core.errors import (
    ApiReportedError,
    InteractionTimeoutError,
    MalformedResponseError,
    StreamTruncatedError,
)
from interactions_client.core.logging import logger
from interactions_client.core.types import AggregatorState
from interactions_client.protocol.content import (
    ContentItem,
    FunctionCall,
    Text,
    Thought,
    ThoughtSignature,
)
from interactions_client.protocol.parsers.events import (
    ContentDelta,
    ContentStart,
    ContentStop,
    InteractionStarted,
    ProtocolEvent,
    StatusUpdate,
    StreamError,
    TurnComplete,
    Unrecognized,
)
from interactions_client.protocol.transcript import Transcript

Poller = Callable[[str], Awaitable[Dict[str, Any]]]

_END = object()


def merge_fragment(existing: ContentItem, fragment: ContentItem, *, explicit_slot: bool = False) -> Optional[ContentItem]:
    """Merge ``fragment`` into ``existing`` or return None if it starts a new item."""
    if isinstance(existing, Text) and isinstance(fragment, Text):
        annotations = None
        if existing.annotations or fragment.annotations:
            annotations = list(existing.annotations or []) + list(fragment.annotations or [])
        return Text(text=_concat(existing.text, fragment.text), annotations=annotations)

    if isinstance(existing, Thought) and isinstance(fragment, Thought):
        return Thought(
            text=_concat(existing.text, fragment.text),
            signature=fragment.signature if fragment.signature is not None else existing.signature,
        )

    if isinstance(existing, Thought) and isinstance(fragment, ThoughtSignature):
        return dataclasses.replace(existing, signature=fragment.signature)

    if isinstance(existing, FunctionCall) and isinstance(fragment, FunctionCall):
        # a different call id is always a different call
        same_call = fragment.id is not None and fragment.id == existing.id
        continuation = explicit_slot and fragment.id is None
        if not (same_call or continuation):
            return None
        return FunctionCall(
            name=fragment.name or existing.name,
            args=fragment.args if fragment.args is not None else existing.args,
            id=fragment.id if fragment.id is not None else existing.id,
            thought_signature=(
                fragment.thought_signature if fragment.thought_signature is not None else existing.thought_signature
            ),
        )

    return None


def _concat(a: Optional[str], b: Optional[str]) -> Optional[str]:
    if a is None:
        return b
    if b is None:
        return a
    return a + b


class StreamAggregator:
    def __init__(
        self,
        events: AsyncIterable[ProtocolEvent],
        *,
        status_timeout: float,
        poller: Optional[Poller] = None,
        poll_interval: float = 1.0,
        strict: bool = False,
    ):
        if status_timeout is None or status_timeout < 0:
            raise ValueError("status_timeout must be a non-negative number of seconds")
        self._events = events
        self.status_timeout = status_timeout
        self.poller = poller
        self.poll_interval = poll_interval
        self.strict = strict
        self.state = AggregatorState.IDLE

        self._items: List[ContentItem] = []
        self._slot_pos: Dict[int, int] = {}
        self._open_pos: Optional[int] = None
        self._interaction_id: Optional[str] = None
        self._pending: Optional[Transcript] = None
        self._last_status: Optional[str] = None
        self._deadline: Optional[float] = None
        self._transcript: Optional[Transcript] = None

    @property
    def interaction_id(self) -> Optional[str]:
        return self._interaction_id

    @property
    def transcript(self) -> Transcript:
        if self._transcript is None:
            raise RuntimeError(f"Transcript is not available (aggregator state: {self.state})")
        return self._transcript

    async def collect(self) -> Transcript:
        async for _ in self.deltas():
            pass
        return self.transcript

    async def deltas(self) -> AsyncIterator[ContentItem]:
        if self.state is not AggregatorState.IDLE:
            raise RuntimeError("This stream has already been consumed")
        self.state = AggregatorState.STREAMING
        iterator = self._events.__aiter__()
        try:
            while self.state is AggregatorState.STREAMING:
                event = await self._next_event(iterator)
                if event is _END:
                    await self._finish_stream()
                    break
                for item in self._apply(event):
                    yield item
        except BaseException:
            if self.state is AggregatorState.STREAMING:
                self.state = AggregatorState.FAILED
            raise
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    # --- internals ---

    def _remaining(self) -> float:
        return self._deadline - asyncio.get_running_loop().time()

    def _timed_out(self) -> InteractionTimeoutError:
        self.state = AggregatorState.FAILED
        logger.warning(
            f"Interaction {self._interaction_id} still '{self._last_status}' after {self.status_timeout}s"
        )
        return InteractionTimeoutError(self.status_timeout, last_status=self._last_status)

    async def _next_event(self, iterator):
        if self._deadline is None:
            try:
                return await iterator.__anext__()
            except StopAsyncIteration:
                return _END

        remaining = self._remaining()
        if remaining <= 0:
            raise self._timed_out()
        try:
            return await asyncio.wait_for(iterator.__anext__(), remaining)
        except StopAsyncIteration:
            return _END
        except asyncio.TimeoutError:
            raise self._timed_out() from None

    def _apply(self, event: ProtocolEvent) -> List[ContentItem]:
        if isinstance(event, ContentDelta):
            return [self._merge(event.item, event.index)]

        if isinstance(event, ContentStart):
            self._slot_pos.pop(event.index, None)
            self._open_pos = None
            item = event.item
            if item is None or (isinstance(item, (Text, Thought)) and not item.text and not getattr(item, "signature", None)):
                return []
            return [self._merge(item, event.index)]

        if isinstance(event, ContentStop):
            pos = self._slot_pos.pop(event.index, None)
            if pos is not None and pos == self._open_pos:
                self._open_pos = None
            return []

        if isinstance(event, InteractionStarted):
            self._interaction_id = event.interaction_id or self._interaction_id
            return []

        if isinstance(event, StatusUpdate):
            self._interaction_id = event.interaction_id or self._interaction_id
            self._last_status = event.raw_status
            logger.debug(f"Interaction {event.interaction_id} status update: {event.raw_status}")
            return []

        if isinstance(event, TurnComplete):
            self._on_complete(event.transcript)
            return []

        if isinstance(event, StreamError):
            self.state = AggregatorState.FAILED
            logger.error(f"Stream error reported by server: {event.message} (code={event.code})")
            raise ApiReportedError(event.message, code=event.code, request_id=None)

        if isinstance(event, Unrecognized):
            logger.debug(f"Ignoring unrecognized stream event '{event.label}'")
            return []

        logger.debug(f"Ignoring unsupported event object {type(event).__name__}")
        return []

    def _merge(self, item: ContentItem, index: Optional[int]) -> ContentItem:
        pos = self._slot_pos.get(index) if index is not None else self._open_pos
        if pos is not None:
            merged = merge_fragment(self._items[pos], item, explicit_slot=index is not None)
            if merged is not None:
                self._items[pos] = merged
                self._open_pos = pos
                return item

        self._items.append(item)
        pos = len(self._items) - 1
        if index is not None:
            self._slot_pos[index] = pos
        self._open_pos = pos
        return item

    def _on_complete(self, completion: Transcript) -> None:
        self._interaction_id = completion.interaction_id or self._interaction_id
        self._last_status = completion.raw_status
        if completion.status.is_terminal:
            self._finalize(completion)
            return

        # transient or unrecognised status: keep going under the deadline
        self._pending = completion
        if self._deadline is None:
            self._deadline = asyncio.get_running_loop().time() + self.status_timeout
        logger.info(
            f"Interaction {self._interaction_id} completed with non-terminal status "
            f"'{completion.raw_status}'; continuing for up to {self.status_timeout}s"
        )

    def _finalize(self, completion: Transcript) -> None:
        items = tuple(self._items) if self._items else completion.items
        self._transcript = dataclasses.replace(
            completion,
            items=items,
            interaction_id=completion.interaction_id or self._interaction_id,
            usage=completion.usage if completion.usage is not None else (self._pending.usage if self._pending else None),
        )
        if completion.status.is_success:
            self.state = AggregatorState.COMPLETED
        else:
            self.state = AggregatorState.FAILED
            logger.warning(f"Interaction {self._transcript.interaction_id} ended with status '{completion.raw_status}'")

    async def _finish_stream(self) -> None:
        if self._pending is None:
            self.state = AggregatorState.FAILED
            logger.error("Stream ended without an interaction.complete event")
            raise StreamTruncatedError("Stream ended without an interaction.complete event")

        if self.poller is None:
            self.state = AggregatorState.FAILED
            raise StreamTruncatedError(
                f"Stream ended while interaction status was '{self._last_status}' and no poller is configured"
            )
        if self._interaction_id is None:
            self.state = AggregatorState.FAILED
            raise MalformedResponseError("Cannot poll for completion: the interaction has no id")

        await self._poll(self._interaction_id)

    async def _poll(self, interaction_id: str) -> None:
        while True:
            remaining = self._remaining()
            if remaining <= 0:
                raise self._timed_out()
            try:
                payload = await asyncio.wait_for(self.poller(interaction_id), remaining)
            except asyncio.TimeoutError:
                raise self._timed_out() from None

            polled = Transcript.from_payload(payload, strict=self.strict)
            self._last_status = polled.raw_status
            if polled.status.is_terminal:
                # polled outputs are authoritative once the interaction has settled
                if polled.items:
                    self._items = list(polled.items)
                self._finalize(polled)
                return

            logger.debug(f"Polled interaction {interaction_id}: status '{polled.raw_status}'")
            await asyncio.sleep(max(0.0, min(self.poll_interval, self._remaining())))
