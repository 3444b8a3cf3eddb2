import inspect
from importlib import import_module
from typing import Any, Dict, Optional, cast

from interactions_client.core.config import load_settings
from interactions_client.core.interfaces import Transport
from interactions_client.core.logging import configure_logging


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate the class if callable.
    Filters kwargs to match the constructor signature (unless **kwargs is accepted)."""
    module, cls = dotted.rsplit(".", 1)
    mod = import_module(module)
    obj = getattr(mod, cls)

    if isinstance(obj, type):
        sig = inspect.signature(obj.__init__)
        params = list(sig.parameters.values())
        if any(p.kind == p.VAR_KEYWORD for p in params):
            return obj(**kwargs)
        allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
        return obj(**{k: v for k, v in kwargs.items() if k in allowed})

    # plain callable or already-built object
    return obj


class ClientFactory:
    """Builds the transport, registry, service and orchestrator from settings."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_settings()
        self._transport: Transport | None = None
        self._registry = None
        configure_logging(self.config.get("logging", {}).get("level", "INFO"))

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name, {}) or {}

    def get_transport(self) -> Transport:
        if not self._transport:
            from interactions_client.transport.httpx_transport import HttpxTransport

            api = self._section("api")
            self._transport = HttpxTransport(
                base_url=api.get("base_url"),
                version=api.get("version", "v1beta"),
                api_key=api.get("api_key"),
                api_key_header=api.get("api_key_header", "X-Goog-Api-Key"),
                connect_timeout=float(api.get("connect_timeout_sec", 5.0)),
                read_timeout=float(api.get("read_timeout_sec", 120.0)),
                wire_tap=self.get_wire_tap(),
            )
        return self._transport

    def get_wire_tap(self):
        from interactions_client.protocol.diagnostics import LoggingWireTap, NullWireTap

        if self._section("diagnostics").get("wire_log"):
            return LoggingWireTap()
        return NullWireTap()

    def get_registry(self):
        if self._registry is None:
            from interactions_client.core.capability_registry import CapabilityRegistry

            functions_cfg = self._section("functions")
            self._registry = CapabilityRegistry.from_config(
                functions_cfg.get("registry", []) or [],
                functions_cfg.get("enabled", []) or [],
            )
        return self._registry

    def get_interaction_service(self):
        from interactions_client.protocol.service.interaction_service import InteractionService

        limits = self._section("limits")
        return InteractionService(
            self.get_transport(),
            wire_tap=self.get_wire_tap(),
            strict=bool(self._section("content").get("strict_unknown", False)),
            max_record_bytes=int(limits.get("max_record_bytes", 16 * 1024 * 1024)),
        )

    def get_orchestrator(self, max_iterations: Optional[int] = None):
        from interactions_client.protocol.orchestration.function_runner import FunctionRunner
        from interactions_client.protocol.orchestration.orchestrator import ToolOrchestrator

        limits = self._section("limits")
        registry = self.get_registry()
        runner = FunctionRunner(registry, timeout=float(limits.get("function_timeout_sec", 30)))
        return ToolOrchestrator(
            self.get_interaction_service(),
            registry,
            max_iterations=max_iterations if max_iterations is not None else int(limits.get("max_function_loops", 5)),
            runner=runner,
        )

    async def aclose(self) -> None:
        if self._transport is not None:
            await cast(Transport, self._transport).aclose()
            self._transport = None
