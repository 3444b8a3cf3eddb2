import asyncio
import inspect
import re
import typing
from abc import abstractmethod
from typing import Any, Callable, Dict, List, Optional, get_type_hints

from interactions_client.core.interfaces import Capability

# =============================
# Function Authoring Guidelines
# =============================
#
# To expose a function to the model:
# 1. Subclass BaseFunction and implement async run() with explicit, type-annotated arguments,
#    or decorate a plain (sync or async) function with @capability.
# 2. Use a Google-style docstring with an Args: section, e.g.:
#
#     async def run(self, timezone: str = "UTC") -> dict:
#         """
#         Get the current time for a timezone.
#         Args:
#             timezone: IANA timezone (e.g., Europe/Dublin, UTC). Defaults to UTC.
#         """
#
# 3. The declaration is generated from the signature and docstring.
# 4. The class docstring (or the function's first docstring paragraph) becomes the description.
#
# Arguments and return values must be JSON-serializable.

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def extract_param_descriptions(docstring: str) -> Dict[str, str]:
    """
    Parse the docstring for an Args: section and return a mapping of param name to description.
    Supports Google-style docstrings.
    """
    if not docstring:
        return {}
    param_desc = {}
    args_section = re.search(r"Args?:\s*(.*?)(?:^\s*(?:Returns?|Raises?):|\Z)", docstring, re.DOTALL | re.MULTILINE)
    if args_section:
        for line in args_section.group(1).splitlines():
            match = re.match(r"\s*(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)", line)
            if match:
                name, desc = match.groups()
                param_desc[name] = desc.strip()
    return param_desc


def summary_line(docstring: Optional[str]) -> str:
    """First paragraph of a docstring, without the Args/Returns sections."""
    if not docstring:
        return ""
    text = inspect.cleandoc(docstring)
    head = re.split(r"^\s*(?:Args?|Returns?|Raises?):", text, maxsplit=1, flags=re.MULTILINE)[0]
    return " ".join(head.split())


def json_schema_for(annotation: Any) -> Dict[str, Any]:
    origin = typing.get_origin(annotation)
    if origin is typing.Literal:
        values = list(typing.get_args(annotation))
        schema = json_schema_for(type(values[0])) if values else {"type": "string"}
        schema["enum"] = values
        return schema
    if origin is typing.Union:
        non_none = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(non_none) == 1:
            return json_schema_for(non_none[0])
        return {"type": "string"}
    if origin in (list, List):
        args = typing.get_args(annotation)
        schema: Dict[str, Any] = {"type": "array"}
        if args:
            schema["items"] = json_schema_for(args[0])
        return schema
    if origin is dict:
        return {"type": "object"}
    return {"type": _JSON_TYPES.get(annotation, "string")}


def build_declaration(name: str, description: str, parameters: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": {
            "type": "object",
            "properties": parameters,
            "required": required or [],
        },
    }


def declaration_from_callable(fn: Callable[..., Any], name: str, description: str) -> Dict[str, Any]:
    sig = inspect.signature(fn)
    hints = get_type_hints(fn)
    param_docs = extract_param_descriptions(inspect.getdoc(fn) or "")
    params: Dict[str, Any] = {}
    required: List[str] = []
    for pname, param in sig.parameters.items():
        if pname == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        schema = json_schema_for(hints.get(pname, str))
        schema["description"] = param_docs.get(pname, "")
        params[pname] = schema
        if param.default is inspect.Parameter.empty:
            required.append(pname)
    return build_declaration(name, description, params, required)


class BaseFunction(Capability):
    """Class-based capability. Subclasses implement run() with typed keyword arguments."""

    function_name: Optional[str] = None

    def __init__(self):
        self._registry_name: Optional[str] = None

    @property
    def name(self) -> str:
        # registry name, then class-level function_name, then class name
        return self._registry_name or self.function_name or self.__class__.__name__

    @property
    def description(self) -> str:
        return summary_line(self.__doc__)

    @property
    def declaration(self) -> Dict[str, Any]:
        return declaration_from_callable(self.run, self.name, self.description)

    async def invoke(self, args: Dict[str, Any]) -> Any:
        return await self.run(**(args or {}))

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Execute with the given arguments (the declaration matches this signature)."""
        raise NotImplementedError()


class FunctionCapability(Capability):
    """Wrap a plain function. Sync functions run in a worker thread."""

    def __init__(self, fn: Callable[..., Any], name: Optional[str] = None, description: Optional[str] = None):
        self.fn = fn
        self._name = name or fn.__name__
        self._description = description if description is not None else summary_line(fn.__doc__)
        self._declaration = declaration_from_callable(fn, self._name, self._description)

    @property
    def name(self) -> str:
        return self._name

    @property
    def declaration(self) -> Dict[str, Any]:
        return self._declaration

    async def invoke(self, args: Dict[str, Any]) -> Any:
        args = args or {}
        if inspect.iscoroutinefunction(self.fn):
            return await self.fn(**args)
        return await asyncio.to_thread(self.fn, **args)

    def __call__(self, *args, **kwargs):
        return self.fn(*args, **kwargs)

    def __repr__(self) -> str:
        return f"FunctionCapability({self._name!r})"


def capability(fn: Optional[Callable[..., Any]] = None, *, name: Optional[str] = None, description: Optional[str] = None):
    """Decorator: ``@capability`` or ``@capability(name=..., description=...)``."""
    def wrap(f: Callable[..., Any]) -> FunctionCapability:
        return FunctionCapability(f, name=name, description=description)

    if fn is not None:
        return wrap(fn)
    return wrap
