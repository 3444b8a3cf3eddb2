from interactions_client.core.capability_registry import CapabilityRegistry
from interactions_client.core.errors import (
    ApiReportedError,
    ConfigurationError,
    ContentDecodeError,
    FrameDecodeError,
    FunctionExecutionError,
    FunctionLookupError,
    InteractionsError,
    InteractionTimeoutError,
    LoopExceededError,
    MalformedResponseError,
    StreamTruncatedError,
    TransportError,
)
from interactions_client.core.factory import ClientFactory
from interactions_client.core.types import AggregatorState, InteractionStatus
from interactions_client.functions.base import BaseFunction, FunctionCapability, capability
from interactions_client.protocol.aggregator import StreamAggregator
from interactions_client.protocol.content import (
    FunctionCall,
    FunctionResult,
    Media,
    Text,
    Thought,
    ThoughtSignature,
    Unknown,
)
from interactions_client.protocol.conversation import ConversationLink, ConversationState, build_turn
from interactions_client.protocol.orchestration.orchestrator import OrchestrationResult, ToolOrchestrator
from interactions_client.protocol.service.interaction_service import InteractionService
from interactions_client.protocol.transcript import Transcript

__version__ = "0.1.0"
