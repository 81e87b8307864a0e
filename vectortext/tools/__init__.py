"""
Tool registry and dispatcher over the retrieval engine and message store.
"""

from .message_tools import (
    GetIndexStatusTool,
    GetThreadSummaryTool,
    ListMessagesTool,
    ListThreadsTool,
    SearchMessagesTool,
    build_default_router,
)
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
from .router import InvalidParamsError, ToolRouter, coerce_argument

__all__ = [
    'GetIndexStatusTool',
    'GetThreadSummaryTool',
    'ListMessagesTool',
    'ListThreadsTool',
    'SearchMessagesTool',
    'build_default_router',
    'ErrorCode',
    'ParameterType',
    'Tool',
    'ToolDefinition',
    'ToolFailure',
    'ToolInvocationRequest',
    'ToolInvocationResponse',
    'ToolParameterSpec',
    'ToolResult',
    'ToolSuccess',
    'InvalidParamsError',
    'ToolRouter',
    'coerce_argument',
]
