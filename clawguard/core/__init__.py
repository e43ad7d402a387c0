"""
Core building blocks: command sandbox and tool contract.
"""

from .sandbox import (
    ALLOWED_COMMANDS,
    BLOCKED_PATTERNS,
    CommandSandbox,
    get_sandbox,
    is_command_allowed,
    safe_exec,
)
from .tools import NoInput, Tool, ToolExecutor

__all__ = [
    "ALLOWED_COMMANDS",
    "BLOCKED_PATTERNS",
    "CommandSandbox",
    "get_sandbox",
    "is_command_allowed",
    "safe_exec",
    "NoInput",
    "Tool",
    "ToolExecutor",
]
