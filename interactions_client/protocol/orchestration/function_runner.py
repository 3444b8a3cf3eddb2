import asyncio
import time
from dataclasses import dataclass
from typing import Any, List, Sequence

from interactions_client.core.capability_registry import CapabilityRegistry
from interactions_client.core.errors import FunctionExecutionError, FunctionLookupError
from interactions_client.core.logging import logger
from interactions_client.protocol.content import (
    FunctionCall,
    FunctionResult,
    function_result_content,
    function_result_error,
)


@dataclass(frozen=True)
class FunctionExecution:
    name: str
    call_id: str
    result: Any
    is_error: bool
    duration: float
    content: FunctionResult


class FunctionRunner:
    """Execute the function calls of one turn concurrently, with a per-call timeout."""

    def __init__(self, registry: CapabilityRegistry, *, timeout: float = 30.0):
        self.registry = registry
        self.timeout = timeout

    async def run_calls(self, calls: Sequence[FunctionCall]) -> List[FunctionExecution]:
        # gather keeps call order; every call resolves to a result, never raises
        return list(await asyncio.gather(*(self.run_call(call) for call in calls)))

    async def run_call(self, call: FunctionCall) -> FunctionExecution:
        start = time.perf_counter()
        try:
            result = await self._invoke(call)
        except (FunctionLookupError, FunctionExecutionError) as e:
            duration = time.perf_counter() - start
            logger.warning(f"Function call {call.id} failed: {e}")
            content = function_result_error(call, str(e))
            return FunctionExecution(call.name, call.id, content.result, True, duration, content)

        duration = time.perf_counter() - start
        logger.info(f"Function '{call.name}' ({call.id}) executed in {duration * 1000:.1f}ms")
        content = function_result_content(call, result)
        return FunctionExecution(call.name, call.id, result, False, duration, content)

    async def _invoke(self, call: FunctionCall) -> Any:
        cap = self.registry.get(call.name)
        if cap is None:
            raise FunctionLookupError(call.name)

        args = call.args if call.args is not None else {}
        if not isinstance(args, dict):
            raise FunctionExecutionError(call.name, f"arguments must be a JSON object, got {type(args).__name__}")
        try:
            return await asyncio.wait_for(cap.invoke(args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise FunctionExecutionError(call.name, f"timed out after {self.timeout}s") from None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise FunctionExecutionError(call.name, f"{type(e).__name__}: {e}") from e
