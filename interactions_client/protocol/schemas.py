"""
Wire schema models for the interactions API.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Usage(BaseModel):
    """Token accounting reported on a completed interaction."""
    model_config = ConfigDict(extra="allow")

    total_input_tokens: Optional[int] = None
    total_output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    total_cached_tokens: Optional[int] = None
    total_reasoning_tokens: Optional[int] = None
    total_tool_use_tokens: Optional[int] = None


class InteractionRequest(BaseModel):
    """Request body for creating an interaction turn."""
    model: Optional[str] = None
    # encoded content items, see protocol.content.encode_content
    input: List[Dict[str, Any]] = Field(default_factory=list)
    previous_interaction_id: Optional[str] = None
    tools: Optional[List[Dict[str, Any]]] = None
    system_instruction: Optional[str] = None
    generation_config: Optional[Dict[str, Any]] = None
    stream: Optional[bool] = True
    store: Optional[bool] = None

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
