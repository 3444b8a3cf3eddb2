from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from interactions_client.core.errors import ConfigurationError
from interactions_client.core.factory import load
from interactions_client.core.interfaces import Capability
from interactions_client.core.logging import logger


class CapabilityRegistry:
    """Read-only name -> Capability lookup, populated once before orchestration starts."""

    def __init__(self, capabilities: Iterable[Capability] = ()):
        functions: Dict[str, Capability] = {}
        for cap in capabilities:
            if cap.name in functions:
                logger.warning(f"Duplicate function name '{cap.name}' registered; the last registration wins")
            functions[cap.name] = cap
        self._functions: Mapping[str, Capability] = MappingProxyType(functions)

    @classmethod
    def from_config(cls, registry_cfg: List[Dict[str, Any]], enabled: List[str]) -> "CapabilityRegistry":
        capabilities = []
        for fcfg in registry_cfg:
            name = fcfg.get("name")
            if name not in enabled:
                continue
            impl = fcfg.get("impl", "")
            args = fcfg.get("args", {}) or {}
            try:
                cap = load(impl, **args)
            except (ImportError, AttributeError, ValueError, TypeError) as e:
                raise ConfigurationError(f"Could not load function '{name}' from '{impl}': {e}") from e
            if not isinstance(cap, Capability):
                raise ConfigurationError(f"Function '{name}' ({impl}) is not a Capability")
            # registry name overrides the class default
            if hasattr(cap, "_registry_name"):
                cap._registry_name = name
            capabilities.append(cap)
        registry = cls(capabilities)
        logger.info(f"Capability registry loaded: {registry.names()}")
        return registry

    @property
    def functions(self) -> Mapping[str, Capability]:
        return self._functions

    def get(self, name: str) -> Optional[Capability]:
        return self._functions.get(name)

    def names(self) -> List[str]:
        return list(self._functions)

    def declarations(self) -> List[Dict[str, Any]]:
        return [cap.declaration for cap in self._functions.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"CapabilityRegistry({self.names()!r})"
