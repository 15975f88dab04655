from .registry import ToolRegistry, build_tool, tool
from .parser import ToolCallExtraction, ToolCallParser, bind_arguments
from .runtime import ToolRuntime

__all__ = [
    "ToolCallExtraction",
    "ToolCallParser",
    "ToolRegistry",
    "ToolRuntime",
    "bind_arguments",
    "build_tool",
    "tool",
]
