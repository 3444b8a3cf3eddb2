"""Exception types raised by interactions_client."""

from __future__ import annotations

from typing import Any, List, Optional


class InteractionsError(Exception):
    """Base exception for the interactions client."""


class ConfigurationError(InteractionsError):
    """Raised when settings or the capability registry are invalid."""


class TransportError(InteractionsError):
    """Connection-level failure. Never retried inside the client."""


class FrameDecodeError(InteractionsError):
    """Malformed SSE record structure. Fatal to the current stream."""


class StreamTruncatedError(FrameDecodeError):
    """The byte stream ended mid-record or before the turn completed."""


class ContentDecodeError(InteractionsError):
    """Structurally invalid JSON inside a known shape."""


class MalformedResponseError(InteractionsError):
    """The server response violates a protocol contract the client relies on."""


class ApiReportedError(InteractionsError):
    """Error payload reported by the server, surfaced verbatim."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.request_id = request_id
        prefix = f"API error (HTTP {status_code})" if status_code is not None else "API error"
        if code:
            prefix = f"{prefix} [{code}]"
        super().__init__(f"{prefix}: {message}")

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class FunctionLookupError(InteractionsError):
    """A function call named a capability that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Function '{name}' is not available or not found.")


class FunctionExecutionError(InteractionsError):
    """A registered capability failed or timed out."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Function '{name}' failed: {reason}")


class LoopExceededError(InteractionsError):
    """The orchestration loop hit max_iterations with calls still pending."""

    def __init__(
        self,
        max_iterations: int,
        transcript: Any = None,
        executions: Optional[List[Any]] = None,
        pending_calls: Optional[List[Any]] = None,
    ):
        self.max_iterations = max_iterations
        self.transcript = transcript
        self.executions = list(executions or [])
        self.pending_calls = list(pending_calls or [])
        super().__init__(
            f"Reached maximum function call loops ({max_iterations}) "
            f"with {len(self.pending_calls)} call(s) still pending"
        )


class InteractionTimeoutError(InteractionsError, TimeoutError):
    """Wall-clock bound exceeded while waiting on a transient status."""

    def __init__(self, timeout: float, last_status: Optional[str] = None):
        self.timeout = timeout
        self.last_status = last_status
        detail = f" (last status: {last_status})" if last_status else ""
        super().__init__(f"Interaction did not reach a terminal status within {timeout}s{detail}")
