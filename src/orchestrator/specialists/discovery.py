from __future__ import annotations

import json
import logging
from typing import Any

from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.json_store import OrchestratorStateError
from orchestrator.state.queue import Task, TaskDraft

logger = logging.getLogger(__name__)

MAX_DISCOVERED_TASKS = 5
PLATFORM_DIRECTORIES = {
    "web": ["src/", "app/", "pages/", "components/", "styles/"],
    "ios": ["Sources/", "*.xcodeproj", "Resources/"],
    "android": ["app/src/main/java/", "app/src/main/kotlin/", "app/src/main/res/"],
    "custom": ["./"],
}


class DiscoveryAgent(SpecialistAgent):
    role = "discovery"
    prompt_file = "discovery.md"
    fallback_prompt = """
# Discovery Role

You are a Discovery Agent. Scan the project, compare what exists with
the development scope and goals, and propose well-defined tasks for
the missing functionality. Avoid duplicating existing tasks.
""".strip()

    def build_prompt(self, existing: list[Task]) -> str:
        summary = (
            "\n".join(f"- {task.id}: {task.title} ({task.status})" for task in existing)
            or "No existing tasks."
        )
        directories = "\n".join(
            f"- {item}"
            for item in PLATFORM_DIRECTORIES.get(self.config.project.platform, ["./"])
        )
        inbox = {
            "tasks": [
                {
                    "type": "feature_implementation",
                    "priority": "high|medium|low",
                    "title": "Short imperative title",
                    "description": "What to build and why",
                    "acceptance_criteria": ["criterion"],
                }
            ]
        }
        instructions = "\n".join(
            [
                "## Your Task",
                "1. Analyze the project structure to understand what exists.",
                "2. Review the development scope and goals.",
                "3. Identify features or functionality that are missing.",
                f"4. Create at most {MAX_DISCOVERED_TASKS} new tasks.",
                "",
                "## Directories to Analyze",
                directories,
                "",
                "## REQUIRED OUTPUT",
                "",
                f"Write the following JSON to: {self.state.path_for('discovery')}",
                "",
                json.dumps(inbox, ensure_ascii=False, indent=2),
            ]
        )
        return self.compose(
            self._project_section(),
            f"## Existing Tasks\n{summary}",
            instructions,
        )

    def collect_drafts(self) -> list[TaskDraft]:
        """Parse and clear the discovery inbox; invalid entries are skipped."""
        try:
            payload: Any = self.state.get_json("discovery", default={"tasks": []})
        except OrchestratorStateError as exc:
            logger.warning("Discarding unreadable discovery inbox: %s", exc)
            payload = {"tasks": []}
        self.state.delete("discovery")
        raw_tasks = payload.get("tasks", []) if isinstance(payload, dict) else payload
        if not isinstance(raw_tasks, list):
            logger.warning("Discovery inbox did not contain a task list")
            return []
        drafts: list[TaskDraft] = []
        for item in raw_tasks[:MAX_DISCOVERED_TASKS]:
            if not isinstance(item, dict):
                logger.warning("Skipping discovered task that is not an object: %r", item)
                continue
            try:
                drafts.append(TaskDraft.from_dict(item))
            except OrchestratorStateError as exc:
                logger.warning("Skipping invalid discovered task: %s", exc)
        return drafts
