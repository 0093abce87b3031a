"""
Local tool registry for Coworker.

This module provides a decorator to register tools, derives a JSON Schema for each tool from its
signature, and exposes the registry to the catalog through :class:`LocalTools`.

Tools are plain or ``async`` functions taking keyword arguments and returning text.  A tool that
declares a ``ctx`` parameter receives the run's :class:`~coworker.core.capability.ToolContext`;
``ctx`` never appears in the advertised schema.
"""

import asyncio
import inspect
import logging
import types
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from coworker.core.capability import ToolContext
from coworker.core.errors import (
    ToolExecutionFailure,
    ToolNotFound,
)
from coworker.core.schema import ToolDefinition

logger = logging.getLogger(__name__)

CONTEXT_PARAM = "ctx"


@dataclass(frozen=True)
class RegisteredTool:
    """A registered handler and the definition advertised for it."""

    fn: Callable[..., Any]
    definition: ToolDefinition

    @property
    def wants_context(self) -> bool:
        return CONTEXT_PARAM in inspect.signature(self.fn).parameters


TOOL_REGISTRY: Dict[str, RegisteredTool] = {}
"""Global registry of local tool functions."""


def register_tool(
    name: str,
    description: str | None = None,
    params: Mapping[str, str] | None = None,
    registry: Dict[str, RegisteredTool] | None = None,
) -> Callable:
    """
    Register a tool function with the given name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("my_tool", params={"arg1": "What arg1 means"})
        def my_tool_function(arg1: str, arg2: int = 0) -> str:
            ...

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique within *registry*.
    description: str, optional
        Text shown to the model; defaults to the function's docstring.
    params: Mapping[str, str], optional
        Per-parameter descriptions added to the generated schema.
    registry: dict, optional
        Target registry; defaults to :data:`TOOL_REGISTRY`.

    Raises
    ------
    ValueError
        If a function with the same name is already registered.
    """
    target = TOOL_REGISTRY if registry is None else registry
    if name in target:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: Callable) -> Callable:
        doc = description if description is not None else inspect.getdoc(fn) or ""
        target[name] = RegisteredTool(
            fn=fn,
            definition=ToolDefinition(
                name=name, description=doc, input_schema=build_input_schema(fn, params or {})
            ),
        )
        return fn

    return wrapper


# ---------------------------------------------------------------------------
# Schema generation
# ---------------------------------------------------------------------------
_JSON_TYPES: Dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _json_type(hint: Any) -> str | None:
    origin = get_origin(hint)
    if origin in (Union, types.UnionType):
        non_null = [arg for arg in get_args(hint) if arg is not type(None)]
        return _json_type(non_null[0]) if len(non_null) == 1 else None
    return _JSON_TYPES.get(origin or hint)


def build_input_schema(fn: Callable, param_docs: Mapping[str, str]) -> Dict[str, Any]:
    """Derive an object JSON Schema from *fn*'s signature and type hints."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for param_name, param in sig.parameters.items():
        if param_name == CONTEXT_PARAM:
            continue
        prop: Dict[str, Any] = {}
        json_type = _json_type(type_hints.get(param_name, Any))
        if json_type:
            prop["type"] = json_type
        if param_name in param_docs:
            prop["description"] = param_docs[param_name]
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
        elif param.default is not None:
            prop["default"] = param.default
        properties[param_name] = prop

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


# ---------------------------------------------------------------------------
# Provider adapter
# ---------------------------------------------------------------------------
class LocalTools:
    """:class:`~coworker.core.capability.ToolProvider` over an in-process registry."""

    source = "local"

    def __init__(self, registry: Dict[str, RegisteredTool] | None = None):
        self._registry = TOOL_REGISTRY if registry is None else registry

    def list_tools(self) -> List[ToolDefinition]:
        return [tool.definition for tool in self._registry.values()]

    async def invoke(self, name: str, args: Dict[str, Any], ctx: ToolContext) -> str:
        tool = self._registry.get(name)
        if tool is None:
            raise ToolNotFound(name)

        kwargs = {k: v for k, v in args.items() if k != CONTEXT_PARAM}
        if tool.wants_context:
            kwargs[CONTEXT_PARAM] = ctx
        try:
            inspect.signature(tool.fn).bind(**kwargs)
        except TypeError as exc:
            # Argument mismatch: give the model a clean message.
            raise ToolExecutionFailure(f"Invalid arguments for tool '{name}': {exc}") from exc

        logger.debug("Executing tool '%s' with args=%s", name, args)
        try:
            if inspect.iscoroutinefunction(tool.fn):
                result = await tool.fn(**kwargs)
            else:
                result = await asyncio.to_thread(tool.fn, **kwargs)
        except ToolExecutionFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionFailure(f"Tool '{name}' raised an error: {exc}") from exc

        return result if isinstance(result, str) else str(result)


# Handler modules register themselves on import.
from coworker.tools import (  # noqa: E402,F401  pylint: disable=wrong-import-position
    docker,
    files,
    shell,
)
