from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from interactions_client.core.errors import ContentDecodeError
from interactions_client.core.logging import logger
from interactions_client.core.types import InteractionStatus, parse_status
from interactions_client.protocol.content import (
    ContentItem,
    FunctionCall,
    FunctionResult,
    Text,
    Thought,
    ThoughtSignature,
    decode_content,
    encode_content,
)
from interactions_client.protocol.schemas import Usage


@dataclass(frozen=True)
class Transcript:
    """The model's reply for one turn, as an ordered list of content items."""

    items: Tuple[ContentItem, ...] = ()
    interaction_id: Optional[str] = None
    status: InteractionStatus = InteractionStatus.IN_PROGRESS
    raw_status: Optional[str] = None
    usage: Optional[Usage] = None
    previous_interaction_id: Optional[str] = None
    model: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def text(self) -> str:
        return "".join(i.text for i in self.items if isinstance(i, Text) and i.text)

    def function_calls(self) -> List[FunctionCall]:
        return [i for i in self.items if isinstance(i, FunctionCall)]

    def pending_function_calls(self) -> List[FunctionCall]:
        """Function calls with no result in the same transcript."""
        answered = {i.call_id for i in self.items if isinstance(i, FunctionResult)}
        return [c for c in self.function_calls() if c.id is None or c.id not in answered]

    def thought_signatures(self) -> List[str]:
        out: List[str] = []
        for item in self.items:
            if isinstance(item, ThoughtSignature):
                out.append(item.signature)
            elif isinstance(item, Thought) and item.signature is not None:
                out.append(item.signature)
            elif isinstance(item, FunctionCall) and item.thought_signature is not None:
                out.append(item.thought_signature)
        return out

    @property
    def has_function_calls(self) -> bool:
        return any(isinstance(i, FunctionCall) for i in self.items)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.interaction_id is not None:
            out["id"] = self.interaction_id
        if self.model is not None:
            out["model"] = self.model
        out["status"] = self.raw_status if self.raw_status is not None else self.status.value
        out["outputs"] = [encode_content(i) for i in self.items]
        if self.usage is not None:
            out["usage"] = self.usage.model_dump(exclude_none=True)
        if self.previous_interaction_id is not None:
            out["previous_interaction_id"] = self.previous_interaction_id
        return out

    @classmethod
    def from_payload(cls, obj: Any, *, strict: bool = False) -> "Transcript":
        """Decode an interaction object as returned by create/get."""
        if not isinstance(obj, dict):
            raise ContentDecodeError(f"Interaction must be a JSON object, got {type(obj).__name__}")

        outputs = obj.get("outputs")
        if outputs is None:
            outputs = obj.get("content")
        if outputs is None:
            outputs = []
        if not isinstance(outputs, list):
            raise ContentDecodeError("Interaction 'outputs' must be a list")

        raw = obj.get("status")
        if raw is not None and not isinstance(raw, str):
            raise ContentDecodeError("Interaction 'status' must be a string")
        status, raw_status = parse_status(raw)

        usage = None
        if isinstance(obj.get("usage"), dict):
            try:
                usage = Usage.model_validate(obj["usage"])
            except ValidationError as e:
                if strict:
                    raise ContentDecodeError(f"Interaction 'usage' is malformed: {e}") from e
                logger.warning(f"Ignoring malformed usage on interaction {obj.get('id')}: {e.error_count()} error(s)")

        known = {"id", "model", "status", "outputs", "content", "usage", "previous_interaction_id"}
        return cls(
            items=tuple(decode_content(o, strict=strict) for o in outputs),
            interaction_id=obj.get("id"),
            status=status,
            raw_status=raw_status,
            usage=usage,
            previous_interaction_id=obj.get("previous_interaction_id"),
            model=obj.get("model"),
            extra={k: v for k, v in obj.items() if k not in known},
        )
