"""
Conversation state carried between turns.

A follow-up turn names its predecessor with ``previous_interaction_id``; the
server keeps the history. The inheritance rules for the outbound request:

- ``system_instruction`` is sent only on an unlinked (first) turn
- ``tools`` are sent on every turn carrying user-authored content, and left
  off turns made only of function results
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from interactions_client.core.logging import logger
from interactions_client.core.types import InteractionStatus
from interactions_client.protocol.content import ContentItem, FunctionResult, Text, encode_content
from interactions_client.protocol.schemas import InteractionRequest
from interactions_client.protocol.transcript import Transcript


@dataclass(frozen=True)
class ConversationLink:
    previous_interaction_id: str


@dataclass(frozen=True)
class ConversationState:
    interaction_id: Optional[str]
    link: Optional[ConversationLink] = None
    thought_signatures: Tuple[str, ...] = field(default_factory=tuple)
    status: InteractionStatus = InteractionStatus.IN_PROGRESS

    @classmethod
    def from_transcript(cls, transcript: Transcript, link: Optional[ConversationLink] = None) -> "ConversationState":
        return cls(
            interaction_id=transcript.interaction_id,
            link=link,
            thought_signatures=tuple(transcript.thought_signatures()),
            status=transcript.status,
        )

    def next_link(self) -> Optional[ConversationLink]:
        if self.interaction_id is None:
            return None
        return ConversationLink(previous_interaction_id=self.interaction_id)


def _as_items(contents: Union[str, ContentItem, Iterable[Union[str, ContentItem]]]) -> List[ContentItem]:
    if isinstance(contents, str):
        return [Text(text=contents)]
    if not isinstance(contents, (list, tuple)) and hasattr(contents, "type"):
        return [contents]
    return [Text(text=c) if isinstance(c, str) else c for c in contents]


def has_user_content(items: Sequence[ContentItem]) -> bool:
    return any(not isinstance(i, FunctionResult) for i in items)


def build_turn(
    contents: Union[str, ContentItem, Iterable[Union[str, ContentItem]]],
    *,
    link: Optional[ConversationLink] = None,
    tools: Optional[List[Dict[str, Any]]] = None,
    system_instruction: Optional[str] = None,
    model: Optional[str] = None,
    generation_config: Optional[Dict[str, Any]] = None,
    stream: bool = True,
) -> InteractionRequest:
    """Build the outbound request for one turn."""
    items = _as_items(contents)

    if system_instruction is not None and link is not None:
        logger.debug(
            f"Dropping system_instruction on linked turn (previous_interaction_id={link.previous_interaction_id}); "
            "it is inherited from the first turn"
        )
        system_instruction = None

    send_tools = tools if tools and has_user_content(items) else None

    return InteractionRequest(
        model=model,
        input=[encode_content(i) for i in items],
        previous_interaction_id=link.previous_interaction_id if link is not None else None,
        tools=send_tools,
        system_instruction=system_instruction,
        generation_config=generation_config,
        stream=stream,
    )
