from orchestrator.backends.base import (
    AgentBackend,
    AgentResult,
    CommandLineBackend,
    InvocationRegistry,
)
from orchestrator.backends.claude import ClaudeCodeBackend
from orchestrator.backends.codex import CodexBackend

__all__ = [
    "AgentBackend",
    "AgentResult",
    "ClaudeCodeBackend",
    "CodexBackend",
    "CommandLineBackend",
    "InvocationRegistry",
]
