from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Agent execution timed out"
TERMINATE_GRACE_SECONDS = 5.0
READY_CHECK_TIMEOUT_SECONDS = 10.0

BackendEventHook = Callable[[dict[str, Any]], None]


@dataclass(slots=True)
class AgentResult:
    succeeded: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    error: str | None = None

    def failure_reason(self) -> str:
        if self.succeeded:
            return ""
        if self.error:
            return self.error
        detail = self.stderr.strip().splitlines()[-1] if self.stderr.strip() else ""
        reason = f"exit code {self.exit_code}"
        return f"{reason}: {detail}" if detail else reason


class InvocationRegistry:
    """Live agent processes, so shutdown can terminate every in-flight call."""

    def __init__(self) -> None:
        self._processes: dict[int, asyncio.subprocess.Process] = {}

    def register(self, process: asyncio.subprocess.Process) -> None:
        self._processes[process.pid] = process

    def unregister(self, process: asyncio.subprocess.Process) -> None:
        self._processes.pop(process.pid, None)

    @property
    def active(self) -> int:
        return sum(1 for process in self._processes.values() if process.returncode is None)

    def terminate_all(self) -> int:
        terminated = 0
        for process in list(self._processes.values()):
            if process.returncode is not None:
                continue
            try:
                process.terminate()
                terminated += 1
            except ProcessLookupError:
                pass
        self._processes.clear()
        if terminated:
            logger.info("Terminated %d running agent process(es)", terminated)
        return terminated


class AgentBackend(ABC):
    @abstractmethod
    async def invoke(
        self,
        role: str,
        prompt: str,
        *,
        working_directory: Path,
        timeout_seconds: float,
    ) -> AgentResult:
        """Run one agent invocation to completion and report its outcome."""

    async def check_ready(self) -> str | None:
        """Return a description of why the backend cannot run, or None."""
        return None


async def _stop_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


class CommandLineBackend(AgentBackend):
    """Runs an assistant CLI as a child process, one process per invocation."""

    name = "cli"
    default_binary = ""
    prompt_via_stdin = True

    def __init__(
        self,
        binary: str | None = None,
        *,
        registry: InvocationRegistry | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.binary = binary or self.default_binary
        self.registry = registry or InvocationRegistry()
        self.event_hook = event_hook

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    async def check_ready(self) -> str | None:
        if shutil.which(self.binary) is None:
            return f"{self.name} CLI is not installed or not in PATH: {self.binary}"
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return f"{self.name} CLI could not be started: {exc}"
        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=READY_CHECK_TIMEOUT_SECONDS
            )
        except TimeoutError:
            await _stop_process(process)
            return f"{self.name} CLI did not answer --version in time"
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            message = f"{self.name} CLI --version exited with code {process.returncode}"
            return f"{message}: {detail}" if detail else message
        return None

    @abstractmethod
    def build_command(self, prompt: str) -> list[str]:
        """Return argv for one invocation."""

    async def invoke(
        self,
        role: str,
        prompt: str,
        *,
        working_directory: Path,
        timeout_seconds: float,
    ) -> AgentResult:
        command = self.build_command(prompt)
        stdin = asyncio.subprocess.PIPE if self.prompt_via_stdin else asyncio.subprocess.DEVNULL
        self._emit({"event": "agent_start", "backend": self.name, "role": role})
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(working_directory),
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            message = f"{self.name} binary not found: {self.binary}"
            logger.error(message)
            return AgentResult(succeeded=False, exit_code=None, error=message)

        self.registry.register(process)
        stdin_data = prompt.encode("utf-8") if self.prompt_via_stdin else None
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_data), timeout=timeout_seconds
            )
        except TimeoutError:
            await _stop_process(process)
            logger.warning("%s agent timed out after %.0fs", role, timeout_seconds)
            self._emit({"event": "agent_timeout", "backend": self.name, "role": role})
            return AgentResult(
                succeeded=False,
                exit_code=-1,
                timed_out=True,
                error=TIMEOUT_ERROR,
            )
        except asyncio.CancelledError:
            await _stop_process(process)
            raise
        finally:
            self.registry.unregister(process)

        result = AgentResult(
            succeeded=process.returncode == 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode,
        )
        self._emit(
            {
                "event": "agent_exit",
                "backend": self.name,
                "role": role,
                "exit_code": process.returncode,
            }
        )
        return result
