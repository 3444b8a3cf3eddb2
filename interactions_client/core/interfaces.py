from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict


class Transport(ABC):
    @abstractmethod
    def stream_interaction(self, body: Dict[str, Any], *, request_id: int = 0) -> AsyncIterator[bytes]:
        """Submit a turn and stream the raw SSE response bytes"""
        ...

    @abstractmethod
    async def get_interaction(self, interaction_id: str) -> Dict[str, Any]:
        """Fetch the current state of an interaction"""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...


class Capability(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def declaration(self) -> Dict[str, Any]:
        """JSON tool declaration: {"type": "function", "name", "description", "parameters"}"""
        ...

    @abstractmethod
    async def invoke(self, args: Dict[str, Any]) -> Any:
        ...
