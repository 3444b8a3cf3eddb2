import asyncio
from typing import Any, Dict, Optional

from interactions_client.core.errors import InteractionTimeoutError
from interactions_client.core.interfaces import Transport
from interactions_client.core.logging import logger
from interactions_client.protocol.aggregator import StreamAggregator
from interactions_client.protocol.diagnostics import NullWireTap, WireTap, next_request_id
from interactions_client.protocol.parsers.events import decode_events
from interactions_client.protocol.parsers.sse import DEFAULT_MAX_RECORD_BYTES, read_records
from interactions_client.protocol.schemas import InteractionRequest
from interactions_client.protocol.transcript import Transcript


class InteractionService:
    """Submits turns over a Transport and wires bytes -> records -> events -> aggregator."""

    def __init__(
        self,
        transport: Transport,
        *,
        wire_tap: Optional[WireTap] = None,
        strict: bool = False,
        max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES,
    ):
        self.transport = transport
        self.wire_tap = wire_tap or NullWireTap()
        self.strict = strict
        self.max_record_bytes = max_record_bytes

    def open_stream(
        self,
        request: InteractionRequest,
        *,
        status_timeout: float,
        poll_interval: float = 1.0,
    ) -> StreamAggregator:
        body = request.to_body()
        body["stream"] = True
        request_id = next_request_id()
        logger.info(
            f"Submitting interaction turn [REQ#{request_id}]: model={request.model}, "
            f"items={len(request.input)}, previous={request.previous_interaction_id}, "
            f"tools={len(request.tools or [])}"
        )
        chunks = self.transport.stream_interaction(body, request_id=request_id)
        records = read_records(
            chunks,
            max_record_bytes=self.max_record_bytes,
            wire_tap=self.wire_tap,
            request_id=request_id,
        )
        events = decode_events(records, strict=self.strict)
        return StreamAggregator(
            events,
            status_timeout=status_timeout,
            poller=self.get_interaction,
            poll_interval=poll_interval,
            strict=self.strict,
        )

    async def create(self, request: InteractionRequest, *, status_timeout: float) -> Transcript:
        return await self.open_stream(request, status_timeout=status_timeout).collect()

    async def get_interaction(self, interaction_id: str) -> Dict[str, Any]:
        return await self.transport.get_interaction(interaction_id)

    async def get_transcript(self, interaction_id: str) -> Transcript:
        return Transcript.from_payload(await self.get_interaction(interaction_id), strict=self.strict)

    async def wait_for_completion(
        self,
        interaction_id: str,
        *,
        timeout: float,
        poll_interval: float = 1.0,
    ) -> Transcript:
        """Poll until the interaction reaches a terminal status or ``timeout`` elapses."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_status: Any = None
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise InteractionTimeoutError(timeout, last_status=last_status)
            try:
                transcript = await asyncio.wait_for(self.get_transcript(interaction_id), remaining)
            except asyncio.TimeoutError:
                raise InteractionTimeoutError(timeout, last_status=last_status) from None
            if transcript.is_terminal:
                return transcript
            last_status = transcript.raw_status
            logger.debug(f"Interaction {interaction_id} still '{last_status}', polling again in {poll_interval}s")
            await asyncio.sleep(max(0.0, min(poll_interval, deadline - loop.time())))
