from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from orchestrator.backends.base import AgentBackend, AgentResult
from orchestrator.config import OrchestratorConfig
from orchestrator.state.json_store import JsonStateStore, utcnow_iso
from orchestrator.state.queue import Task

logger = logging.getLogger(__name__)

PROMPTS_DIRNAME = "prompts"


@dataclass(slots=True)
class SpecialistResponse:
    role: str
    prompt: str
    result: AgentResult

    @property
    def succeeded(self) -> bool:
        return self.result.succeeded

    @property
    def content(self) -> str:
        return self.result.stdout.strip()


class SpecialistAgent:
    role: str = "specialist"
    prompt_file: str | None = None
    fallback_prompt: str = "You are a software specialist."

    def __init__(
        self,
        backend: AgentBackend,
        config: OrchestratorConfig,
        state: JsonStateStore,
    ) -> None:
        self.backend = backend
        self.config = config
        self.state = state
        self.role_template = self._load_role_template()

    @property
    def project_root(self) -> Path:
        return self.state.project_root

    @property
    def timeout_seconds(self) -> float:
        return self.config.timeouts.for_role(self.role)

    def _load_role_template(self) -> str:
        if not self.prompt_file:
            return self.fallback_prompt.strip()
        override = self.state.root / PROMPTS_DIRNAME / self.prompt_file
        try:
            content = override.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, IsADirectoryError):
            return self.fallback_prompt.strip()
        return content or self.fallback_prompt.strip()

    def _task_section(self, task: Task) -> str:
        lines = [
            "## Task",
            f"- ID: {task.id}",
            f"- Title: {task.title}",
            f"- Priority: {task.priority}",
            f"- Description: {task.description or '(none)'}",
        ]
        if task.acceptance_criteria:
            lines.append("- Acceptance criteria:")
            lines.extend(f"  - {item}" for item in task.acceptance_criteria)
        if task.reference_files:
            lines.append("- Reference files:")
            lines.extend(f"  - {item}" for item in task.reference_files)
        target = task.targets.get(self.config.project.platform)
        if target is not None:
            lines.append(f"- Target path: {target.target_path}")
            if target.required_files:
                lines.append("- Required files: " + ", ".join(target.required_files))
        return "\n".join(lines)

    def _project_section(self) -> str:
        project = self.config.project
        goals = ", ".join(project.goals) if project.goals else "(none)"
        return "\n".join(
            [
                "## Project Context",
                f"- Project: {project.name}",
                f"- Path: {self.project_root}",
                f"- Platform: {project.platform}",
                f"- Scope: {project.scope or '(unspecified)'}",
                f"- Goals: {goals}",
            ]
        )

    def _output_section(self, path: Path, message: dict[str, Any], closing: str) -> str:
        document = {"messages": [message], "last_read": None}
        return "\n".join(
            [
                "## REQUIRED OUTPUT",
                "",
                f"You MUST write the following JSON to: {path}",
                "",
                json.dumps(document, ensure_ascii=False, indent=2),
                "",
                closing,
            ]
        )

    def _message_header(self, task: Task, kind: str) -> dict[str, Any]:
        return {
            "type": kind,
            "task_id": task.id,
            "platform": self.config.project.platform,
            "timestamp": utcnow_iso(),
        }

    def compose(self, *sections: str) -> str:
        return "\n\n".join([self.role_template, "---", *[item for item in sections if item]])

    async def run(self, prompt: str) -> SpecialistResponse:
        logger.debug("Invoking %s (%d prompt chars)", self.role, len(prompt))
        result = await self.backend.invoke(
            self.role,
            prompt,
            working_directory=self.project_root,
            timeout_seconds=self.timeout_seconds,
        )
        if not result.succeeded:
            logger.warning("%s invocation failed: %s", self.role, result.failure_reason())
        return SpecialistResponse(role=self.role, prompt=prompt, result=result)
