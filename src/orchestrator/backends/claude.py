from __future__ import annotations

from orchestrator.backends.base import BackendEventHook, CommandLineBackend, InvocationRegistry

DEFAULT_ALLOWED_TOOLS = ["Read", "Write", "Edit", "Glob", "Grep", "Bash"]


class ClaudeCodeBackend(CommandLineBackend):
    name = "claude"
    default_binary = "claude"
    prompt_via_stdin = True

    def __init__(
        self,
        binary: str | None = None,
        *,
        allowed_tools: list[str] | None = None,
        skip_permissions: bool = False,
        registry: InvocationRegistry | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        super().__init__(binary, registry=registry, event_hook=event_hook)
        self.allowed_tools = list(allowed_tools or DEFAULT_ALLOWED_TOOLS)
        self.skip_permissions = skip_permissions

    def build_command(self, prompt: str) -> list[str]:
        # prompt is written to stdin so long prompts stay out of argv
        _ = prompt
        command = [
            self.binary,
            "-p",
            "--output-format",
            "text",
            "--allowedTools",
            ",".join(self.allowed_tools),
        ]
        if self.skip_permissions:
            command.append("--dangerously-skip-permissions")
        return command
