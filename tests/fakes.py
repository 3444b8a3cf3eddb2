"""
Test doubles for the transport layer.
"""
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from interactions_client.core.interfaces import Transport


def sse(event: Optional[str], data: Union[str, Dict[str, Any]]) -> bytes:
    """Build one SSE record."""
    payload = data if isinstance(data, str) else json.dumps(data, separators=(",", ":"))
    head = f"event: {event}\n" if event else ""
    return f"{head}data: {payload}\n\n".encode("utf-8")


def text_delta(text: str, index: Optional[int] = None) -> bytes:
    body: Dict[str, Any] = {"delta": {"type": "text", "text": text}}
    if index is not None:
        body["index"] = index
    return sse("content.delta", body)


def call_delta(call_id: str, name: str, args: Dict[str, Any], signature: Optional[str] = None) -> bytes:
    delta: Dict[str, Any] = {"type": "function_call", "id": call_id, "name": name, "arguments": args}
    if signature is not None:
        delta["thought_signature"] = signature
    return sse("content.delta", {"delta": delta})


def complete(interaction_id: Optional[str], status: str = "completed", **extra: Any) -> bytes:
    body: Dict[str, Any] = {"status": status, **extra}
    if interaction_id is not None:
        body["id"] = interaction_id
    return sse("interaction.complete", {"interaction": body})


Responder = Callable[[Dict[str, Any], int], Sequence[bytes]]


class ScriptedTransport(Transport):
    """
    Replays scripted SSE responses, one per submitted turn.
    ``responses`` is either a list of chunk lists or a callable (body, turn_number) -> chunks.
    """

    def __init__(
        self,
        responses: Union[List[Sequence[bytes]], Responder],
        interactions: Optional[List[Dict[str, Any]]] = None,
    ):
        self.responses = responses
        self.interactions = list(interactions or [])
        self.bodies: List[Dict[str, Any]] = []
        self.polled: List[str] = []
        self.closed_streams = 0
        self.closed = False

    async def stream_interaction(self, body, *, request_id=0):
        turn = len(self.bodies)
        self.bodies.append(body)
        if callable(self.responses):
            chunks = self.responses(body, turn)
        else:
            chunks = self.responses[turn]
        try:
            for chunk in chunks:
                yield chunk
        finally:
            self.closed_streams += 1

    async def get_interaction(self, interaction_id):
        self.polled.append(interaction_id)
        if len(self.interactions) > 1:
            return self.interactions.pop(0)
        return self.interactions[0]

    async def aclose(self):
        self.closed = True


async def chunks_of(data: bytes, size: int):
    for i in range(0, len(data), size):
        yield data[i : i + size]


async def aiter_list(items):
    for item in items:
        yield item
