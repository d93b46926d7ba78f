from __future__ import annotations

from orchestrator.backends.base import BackendEventHook, CommandLineBackend, InvocationRegistry


class CodexBackend(CommandLineBackend):
    name = "codex"
    default_binary = "codex"
    prompt_via_stdin = False

    def __init__(
        self,
        binary: str | None = None,
        *,
        skip_permissions: bool = False,
        registry: InvocationRegistry | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        super().__init__(binary, registry=registry, event_hook=event_hook)
        self.skip_permissions = skip_permissions

    def build_command(self, prompt: str) -> list[str]:
        command = [self.binary, "exec", "--skip-git-repo-check"]
        if self.skip_permissions:
            command.append("--dangerously-bypass-approvals-and-sandbox")
        else:
            command.extend(["--sandbox", "workspace-write"])
        command.append(prompt)
        return command
