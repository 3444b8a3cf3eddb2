"""
Bounded automatic function-calling loop.

Each round submits one turn, aggregates the reply and, while the model keeps
asking for functions, executes every call of the turn concurrently and sends
the results back as the next linked turn. ``max_iterations`` bounds the number
of rounds; reaching it with calls still pending raises LoopExceededError
without executing them.
"""
import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import anyio

from interactions_client.core.capability_registry import CapabilityRegistry
from interactions_client.core.errors import ConfigurationError, LoopExceededError, MalformedResponseError
from interactions_client.core.logging import logger
from interactions_client.protocol.content import ContentItem, FunctionCall
from interactions_client.protocol.conversation import ConversationLink, ConversationState, build_turn
from interactions_client.protocol.orchestration.function_runner import FunctionExecution, FunctionRunner
from interactions_client.protocol.service.interaction_service import InteractionService
from interactions_client.protocol.transcript import Transcript


@dataclass
class LoopState:
    iteration: int = 0
    link: Optional[ConversationLink] = None
    executions: List[FunctionExecution] = field(default_factory=list)
    last_transcript: Optional[Transcript] = None


@dataclass(frozen=True)
class OrchestrationResult:
    transcript: Transcript
    executions: List[FunctionExecution]
    iterations: int

    @property
    def state(self) -> ConversationState:
        return ConversationState.from_transcript(self.transcript)


@dataclass(frozen=True)
class DeltaReceived:
    item: ContentItem


@dataclass(frozen=True)
class ExecutingFunctions:
    transcript: Transcript
    calls: List[FunctionCall]


@dataclass(frozen=True)
class FunctionResultsReady:
    executions: List[FunctionExecution]


@dataclass(frozen=True)
class OrchestrationComplete:
    result: OrchestrationResult


OrchestrationEvent = Union[DeltaReceived, ExecutingFunctions, FunctionResultsReady, OrchestrationComplete]


class ToolOrchestrator:
    def __init__(
        self,
        service: InteractionService,
        registry: CapabilityRegistry,
        *,
        max_iterations: int,
        runner: Optional[FunctionRunner] = None,
    ):
        if max_iterations is None or max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be at least 1, got {max_iterations}")
        self.service = service
        self.registry = registry
        self.max_iterations = max_iterations
        self.runner = runner or FunctionRunner(registry)

    async def run(self, turn_contents: Any, *, status_timeout: float, **kwargs: Any) -> OrchestrationResult:
        """Drive the loop to completion and return the final result."""
        result: Optional[OrchestrationResult] = None
        async for event in self.stream(turn_contents, status_timeout=status_timeout, **kwargs):
            if isinstance(event, OrchestrationComplete):
                result = event.result
        if result is None:
            raise RuntimeError("Orchestration ended without a result")
        return result

    async def stream(
        self,
        turn_contents: Any,
        *,
        status_timeout: float,
        tools: Optional[List[Dict[str, Any]]] = None,
        system_instruction: Optional[str] = None,
        link: Optional[ConversationLink] = None,
        model: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[OrchestrationEvent]:
        if tools is None:
            tools = self.registry.declarations()

        state = LoopState(link=link)
        request = build_turn(
            turn_contents,
            link=link,
            tools=tools,
            system_instruction=system_instruction,
            model=model,
            generation_config=generation_config,
        )
        logger.info(f"Orchestration started: model={model}, max_iterations={self.max_iterations}, tools={len(tools)}")

        try:
            while True:
                state.iteration += 1
                logger.info(f"Function loop {state.iteration}/{self.max_iterations}")

                aggregator = self.service.open_stream(request, status_timeout=status_timeout)
                async with aclosing(aggregator.deltas()) as deltas:
                    async for item in deltas:
                        yield DeltaReceived(item)
                transcript = aggregator.transcript
                state.last_transcript = transcript

                calls = transcript.pending_function_calls()
                if not calls:
                    result = OrchestrationResult(transcript, list(state.executions), state.iteration)
                    logger.info(f"Orchestration complete: interaction={transcript.interaction_id}, iterations={state.iteration}")
                    yield OrchestrationComplete(result)
                    return

                if state.iteration >= self.max_iterations:
                    logger.warning(
                        f"Reached maximum function call loops ({self.max_iterations}) "
                        f"with {len(calls)} call(s) pending; the model may be stuck in a loop"
                    )
                    raise LoopExceededError(
                        self.max_iterations,
                        transcript=transcript,
                        executions=state.executions,
                        pending_calls=calls,
                    )

                state.link = self._link_for(transcript, calls)
                yield ExecutingFunctions(transcript, calls)

                executions = await self.runner.run_calls(calls)
                state.executions.extend(executions)
                yield FunctionResultsReady(executions)

                # results only: no tools, no system instruction
                request = build_turn(
                    [e.content for e in executions],
                    link=state.link,
                    model=model,
                    generation_config=generation_config,
                )
        except (anyio.get_cancelled_exc_class(), asyncio.CancelledError):
            logger.info(f"Orchestration cancelled at iteration {state.iteration}")
            raise

    @staticmethod
    def _link_for(transcript: Transcript, calls: Sequence[FunctionCall]) -> ConversationLink:
        for call in calls:
            if call.id is None:
                raise MalformedResponseError(
                    f"Function call '{call.name}' has no call_id; results cannot be matched to it"
                )
        if transcript.interaction_id is None:
            raise MalformedResponseError(
                "Response missing interaction id. Automatic function calling requires stored "
                "interactions to link the function results turn."
            )
        link = ConversationState.from_transcript(transcript).next_link()
        return link
