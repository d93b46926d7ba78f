import asyncio
import sys
from pathlib import Path
from typing import Any

from orchestrator.backends import (
    AgentResult,
    ClaudeCodeBackend,
    CodexBackend,
    CommandLineBackend,
    InvocationRegistry,
)
from orchestrator.backends.base import TIMEOUT_ERROR


class PythonScriptBackend(CommandLineBackend):
    name = "python"

    def __init__(self, script: str, **kwargs: Any) -> None:
        super().__init__(sys.executable, **kwargs)
        self.script = script

    def build_command(self, prompt: str) -> list[str]:
        _ = prompt
        return [self.binary, "-c", self.script]


def _invoke(backend: CommandLineBackend, cwd: Path, timeout: float = 10.0) -> AgentResult:
    return asyncio.run(
        backend.invoke("developer", "build it", working_directory=cwd, timeout_seconds=timeout)
    )


def test_claude_command_shape() -> None:
    backend = ClaudeCodeBackend(allowed_tools=["Read", "Write"])
    assert backend.build_command("prompt") == [
        "claude",
        "-p",
        "--output-format",
        "text",
        "--allowedTools",
        "Read,Write",
    ]

    permissive = ClaudeCodeBackend("/opt/claude", skip_permissions=True)
    command = permissive.build_command("prompt")
    assert command[0] == "/opt/claude"
    assert command[-1] == "--dangerously-skip-permissions"
    assert "prompt" not in command


def test_codex_command_passes_prompt_as_argument() -> None:
    sandboxed = CodexBackend().build_command("do the thing")
    assert sandboxed == [
        "codex",
        "exec",
        "--skip-git-repo-check",
        "--sandbox",
        "workspace-write",
        "do the thing",
    ]

    permissive = CodexBackend(skip_permissions=True).build_command("do the thing")
    assert "--dangerously-bypass-approvals-and-sandbox" in permissive
    assert "--sandbox" not in permissive


def test_prompt_is_written_to_stdin_and_output_captured(tmp_path: Path) -> None:
    events: list[dict[str, Any]] = []
    backend = PythonScriptBackend(
        "import os, sys; print(sys.stdin.read().upper()); print(os.getcwd(), file=sys.stderr)",
        event_hook=events.append,
    )

    result = _invoke(backend, tmp_path)

    assert result.succeeded is True
    assert result.exit_code == 0
    assert result.stdout.strip() == "BUILD IT"
    assert Path(result.stderr.strip()).resolve() == tmp_path.resolve()
    assert [event["event"] for event in events] == ["agent_start", "agent_exit"]


def test_nonzero_exit_is_a_failed_result(tmp_path: Path) -> None:
    backend = PythonScriptBackend("import sys; sys.stderr.write('boom'); sys.exit(3)")

    result = _invoke(backend, tmp_path)

    assert result.succeeded is False
    assert result.exit_code == 3
    assert result.timed_out is False
    assert "boom" in result.failure_reason()


def test_timeout_kills_process_and_reports(tmp_path: Path) -> None:
    registry = InvocationRegistry()
    backend = PythonScriptBackend("import time; time.sleep(30)", registry=registry)

    result = _invoke(backend, tmp_path, timeout=0.5)

    assert result.succeeded is False
    assert result.timed_out is True
    assert result.exit_code == -1
    assert result.error == TIMEOUT_ERROR
    assert registry.active == 0


def test_missing_binary_is_reported_without_raising(tmp_path: Path) -> None:
    backend = ClaudeCodeBackend("definitely-not-an-installed-agent-cli")

    result = _invoke(backend, tmp_path)

    assert result.succeeded is False
    assert result.exit_code is None
    assert "binary not found" in (result.error or "")


def test_registry_terminates_running_processes(tmp_path: Path) -> None:
    registry = InvocationRegistry()
    backend = PythonScriptBackend("import time; time.sleep(30)", registry=registry)

    async def _scenario() -> tuple[int, AgentResult]:
        invocation = asyncio.create_task(
            backend.invoke("developer", "x", working_directory=tmp_path, timeout_seconds=30)
        )
        while registry.active == 0:
            await asyncio.sleep(0.05)
        terminated = registry.terminate_all()
        return terminated, await invocation

    terminated, result = asyncio.run(_scenario())

    assert terminated == 1
    assert result.succeeded is False
    assert result.timed_out is False
    assert registry.active == 0


def test_ready_check_runs_version_command(tmp_path: Path) -> None:
    assert asyncio.run(PythonScriptBackend("pass").check_ready()) is None

    missing = ClaudeCodeBackend(str(tmp_path / "claude"))
    problem = asyncio.run(missing.check_ready())
    assert problem is not None
    assert "claude CLI is not installed" in problem

    broken = tmp_path / "codex"
    broken.write_text("#!/bin/sh\necho 'login required' >&2\nexit 3\n", encoding="utf-8")
    broken.chmod(0o755)
    problem = asyncio.run(CodexBackend(str(broken)).check_ready())
    assert problem == "codex CLI --version exited with code 3: login required"
