"""
Tool Router - registration, validation and dispatch of tool calls.

The registry is fixed at construction. Every call goes through the same
pipeline:
- look up the tool (unknown name -> METHOD_NOT_FOUND)
- validate and coerce arguments (missing or uncoercible -> INVALID_PARAMS)
- execute (any uncaught fault -> INTERNAL_ERROR)

Range clamping of bounded parameters is left to each tool.
"""

import math
import time
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .. import __version__
from ..util.logging import logger
from .models import (
    ErrorCode,
    ParameterType,
    Tool,
    ToolDefinition,
    ToolFailure,
    ToolInvocationRequest,
    ToolInvocationResponse,
    ToolParameterSpec,
    ToolResult,
    ToolSuccess,
)

METHOD_LIST_TOOLS = "tools/list"
METHOD_CALL_TOOL = "tools/call"

# Integer arguments must fit a signed 64-bit SQLite column
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class InvalidParamsError(ValueError):
    """Raised when tool arguments fail validation."""


def _parse_number(value: Any) -> Optional[Union[int, float]]:
    """Exact int for integral input, finite float otherwise, None if not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_argument(spec: ToolParameterSpec, value: Any) -> Any:
    """Coerce a raw argument to the parameter's declared type or raise InvalidParamsError."""
    kind = spec.type

    if kind == ParameterType.STRING:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return str(value)
            except ValueError:
                # int above the interpreter's digit limit for str()
                pass

    elif kind == ParameterType.INTEGER:
        number = _parse_number(value)
        if number is not None and INT64_MIN <= int(number) <= INT64_MAX:
            return int(number)

    elif kind == ParameterType.NUMBER:
        number = _parse_number(value)
        if number is not None:
            try:
                return float(number)
            except OverflowError:
                pass

    elif kind == ParameterType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        if isinstance(value, int) and value in (0, 1):
            return bool(value)

    elif kind == ParameterType.OBJECT:
        if isinstance(value, dict):
            return value

    elif kind == ParameterType.ARRAY:
        if isinstance(value, (list, tuple)):
            return list(value)

    raise InvalidParamsError(
        f"Parameter '{spec.name}' must be of type {kind.value}, got {type(value).__name__}"
    )


class ToolRouter:
    """
    Immutable name -> tool registry with a uniform request/response contract.
    The router never lets a tool fault escape to its caller.
    """

    def __init__(self, tools: Iterable[Tool], server_name: str = "VectorText Tool Server"):
        registry: Dict[str, Tool] = {}
        for tool in tools:
            # Validates parameter names are unique
            tool.to_definition()
            if tool.name in registry:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            registry[tool.name] = tool

        self._tools: Mapping[str, Tool] = MappingProxyType(registry)
        self.server_name = server_name
        logger.info(f"ToolRouter initialized with {len(registry)} tools: {sorted(registry)}")

    @property
    def tools(self) -> Mapping[str, Tool]:
        return self._tools

    def list_tools(self) -> List[ToolDefinition]:
        """Capability listing for every registered tool."""
        return [tool.to_definition() for tool in self._tools.values()]

    def validate_arguments(self, tool: Tool, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Apply defaults, check required parameters and coerce types."""
        missing = [
            spec.name for spec in tool.parameters
            if spec.required and not spec.has_default and arguments.get(spec.name) is None
        ]
        if missing:
            raise InvalidParamsError(f"Missing required parameters: {', '.join(missing)}")

        validated = {}
        for spec in tool.parameters:
            value = arguments.get(spec.name)
            if value is None:
                if spec.has_default:
                    validated[spec.name] = spec.default
                continue
            validated[spec.name] = coerce_argument(spec, value)

        unknown = set(arguments) - {spec.name for spec in tool.parameters}
        if unknown:
            logger.debug(f"Ignoring unknown arguments for {tool.name}: {sorted(unknown)}")

        return validated

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Execute a tool by name. Always returns a ToolResult."""
        arguments = {} if arguments is None else arguments
        start = time.monotonic()

        result = await self._dispatch(name, arguments)

        logger.log_tool_call(
            name,
            arguments if isinstance(arguments, dict) else {},
            result.success,
            execution_time=time.monotonic() - start,
            error=None if result.success else result.error,
        )
        return result

    async def invoke(self, request: ToolInvocationRequest) -> ToolInvocationResponse:
        """Typed request in, typed response out."""
        result = await self.call_tool(request.tool_name, request.arguments)
        return ToolInvocationResponse.from_result(result)

    async def handle_request(self, payload: Any) -> Dict[str, Any]:
        """Handle a JSON-RPC 2.0 style envelope for tools/list or tools/call."""
        request_id = payload.get("id") if isinstance(payload, dict) else None

        if not isinstance(payload, dict) or not isinstance(payload.get("method"), str):
            return _rpc_error(request_id, ErrorCode.INVALID_REQUEST, "Invalid request")

        method = payload["method"]
        if method == METHOD_LIST_TOOLS:
            return _rpc_result(request_id, {
                "tools": [definition.model_dump(mode="json") for definition in self.list_tools()]
            })

        if method == METHOD_CALL_TOOL:
            params = payload.get("params")
            if not isinstance(params, dict):
                return _rpc_error(request_id, ErrorCode.INVALID_PARAMS, "Missing params")
            tool_name = params.get("name")
            if not isinstance(tool_name, str):
                return _rpc_error(request_id, ErrorCode.INVALID_PARAMS, "Missing tool name")

            result = await self.call_tool(tool_name, params.get("arguments") or {})
            if isinstance(result, ToolSuccess):
                return _rpc_result(request_id, result.data)
            return _rpc_error(request_id, result.code, result.message)

        return _rpc_error(request_id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")

    def get_server_info(self) -> Dict[str, Any]:
        return {
            "name": self.server_name,
            "version": __version__,
            "tools": list(self._tools),
            "methods": [METHOD_LIST_TOOLS, METHOD_CALL_TOOL],
        }

    def health_check(self) -> bool:
        """Check if tool router is operational."""
        return bool(self._tools) and all(callable(getattr(t, "execute", None)) for t in self._tools.values())

    async def _dispatch(self, name: str, arguments: Any) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolFailure(ErrorCode.METHOD_NOT_FOUND, f"Tool not found: {name}")

        if not isinstance(arguments, dict):
            return ToolFailure(ErrorCode.INVALID_PARAMS, "Arguments must be an object")

        try:
            validated = self.validate_arguments(tool, arguments)
        except InvalidParamsError as e:
            return ToolFailure(ErrorCode.INVALID_PARAMS, str(e))

        try:
            result = await tool.execute(validated)
        except Exception as e:
            logger.exception(f"Tool execution failed: {name}")
            return ToolFailure(ErrorCode.INTERNAL_ERROR, f"Tool execution failed: {e}")

        if not isinstance(result, (ToolSuccess, ToolFailure)):
            return ToolFailure(
                ErrorCode.INTERNAL_ERROR,
                f"Tool returned an invalid result: {type(result).__name__}",
            )
        return result


def _rpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: ErrorCode, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code.rpc_code, "message": message, "data": {"category": code.value}},
    }
