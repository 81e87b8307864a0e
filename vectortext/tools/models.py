"""
Tool calling models.

Mirrors JSON-RPC 2.0 error categories without any transport: a request
names a tool and its arguments, a response carries either data or an error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ErrorCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    METHOD_NOT_FOUND = "METHOD_NOT_FOUND"
    INVALID_PARAMS = "INVALID_PARAMS"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def rpc_code(self) -> int:
        """JSON-RPC 2.0 numeric error code."""
        return _RPC_CODES[self]


_RPC_CODES = {
    ErrorCode.INVALID_REQUEST: -32600,
    ErrorCode.METHOD_NOT_FOUND: -32601,
    ErrorCode.INVALID_PARAMS: -32602,
    ErrorCode.INTERNAL_ERROR: -32603,
}


class ParameterType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class ToolParameterSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ParameterType
    description: str
    required: bool = False
    default: Any = None

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('parameter name cannot be empty')
        return v

    @property
    def has_default(self) -> bool:
        return self.default is not None


class ToolDefinition(BaseModel):
    """Capability listing entry for one tool."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: List[ToolParameterSpec]

    @field_validator('parameters')
    @classmethod
    def parameter_names_must_be_unique(cls, v):
        names = [p.name for p in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f'duplicate parameter names: {duplicates}')
        return v


@dataclass(frozen=True)
class ToolSuccess:
    data: Dict[str, Any] = field(default_factory=dict)

    success = True


@dataclass(frozen=True)
class ToolFailure:
    code: ErrorCode
    message: str

    success = False

    @property
    def error(self) -> str:
        return f"{self.code.value}: {self.message}"


ToolResult = Union[ToolSuccess, ToolFailure]


class ToolInvocationRequest(BaseModel):
    tool_name: str
    arguments: Dict[str, Any] = {}


class ToolInvocationResponse(BaseModel):
    """Exactly one of `data` and `error` is set."""

    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @model_validator(mode='after')
    def exactly_one_outcome(self):
        if self.success and (self.data is None or self.error is not None):
            raise ValueError('successful response must carry data and no error')
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError('failed response must carry an error and no data')
        return self

    @classmethod
    def from_result(cls, result: ToolResult) -> "ToolInvocationResponse":
        if isinstance(result, ToolSuccess):
            return cls(success=True, data=result.data)
        return cls(success=False, error=result.error, error_code=result.code)


class Tool(ABC):
    """A named, parameterized operation the router can dispatch to."""

    name: str = ""
    description: str = ""
    parameters: List[ToolParameterSpec] = []

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        """Run the tool with validated arguments."""
        pass

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=list(self.parameters),
        )
