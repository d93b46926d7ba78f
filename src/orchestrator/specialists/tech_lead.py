from __future__ import annotations

import json

from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.messages import DesignSpecification, PlanningDocument
from orchestrator.state.queue import Task


class TechLeadAgent(SpecialistAgent):
    role = "tech_lead"
    prompt_file = "tech-lead.md"
    fallback_prompt = """
# Tech Lead Role

You are the Tech Lead. Decide the architecture for the task, name the
files the developer must create, and write precise implementation
instructions that apply the design tokens exactly.
""".strip()

    def build_prompt(
        self,
        task: Task,
        plan: PlanningDocument,
        design: DesignSpecification,
    ) -> str:
        message = {
            **self._message_header(task, "task_assignment"),
            "title": task.title,
            "instructions": "Step-by-step implementation instructions",
            "files_to_create": ["path/to/file"],
            "architecture": "Short description of the structure",
            "api_endpoints": [],
        }
        inputs = "\n".join(
            [
                "## Planning Document",
                "```json",
                json.dumps(plan.to_dict(), ensure_ascii=False, indent=2),
                "```",
                "",
                "## Design Specification",
                "```json",
                json.dumps(design.to_dict(), ensure_ascii=False, indent=2),
                "```",
            ]
        )
        return self.compose(
            self._task_section(task),
            self._project_section(),
            inputs,
            self._output_section(
                self.state.path_for("to-developer"),
                message,
                "Write the task assignment JSON file now.",
            ),
        )
