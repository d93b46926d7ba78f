from __future__ import annotations

import json

from orchestrator.design.tokens import default_tokens
from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.messages import PlanningDocument
from orchestrator.state.queue import Task

PLATFORM_GUIDELINES = {
    "web": "Follow responsive layout practice, WCAG AA contrast and CSS custom properties "
    "for every token.",
    "ios": "Follow the Human Interface Guidelines: SF Pro typography, 44pt touch targets "
    "and dynamic type.",
    "android": "Follow Material Design 3: dynamic color roles, 48dp touch targets and "
    "Roboto typography.",
    "custom": "Follow the conventions already present in the project.",
}


class DesignerAgent(SpecialistAgent):
    role = "designer"
    prompt_file = "designer.md"
    fallback_prompt = """
# Designer Role

You are a UI/UX Designer. Turn the planning document into a design
specification: a complete design token set (colors, typography, spacing,
border radius, shadows) and component specifications that reference
those tokens by name.
""".strip()

    def build_prompt(self, task: Task, plan: PlanningDocument) -> str:
        platform = self.config.project.platform
        message = {
            **self._message_header(task, "design_specification"),
            "design_tokens": default_tokens(platform).to_dict(),
            "component_specs": [
                {
                    "name": "Component",
                    "description": "What it renders",
                    "used_tokens": ["primary", "md"],
                    "figma_node_id": None,
                }
            ],
            "figma_reference": None,
        }
        planning = "\n".join(
            [
                "## Planning Document",
                "```json",
                json.dumps(plan.to_dict(), ensure_ascii=False, indent=2),
                "```",
            ]
        )
        guidelines = f"## Platform Guidelines\n{PLATFORM_GUIDELINES.get(platform, '')}"
        return self.compose(
            self._task_section(task),
            self._project_section(),
            planning,
            guidelines,
            self._output_section(
                self.state.path_for("to-tech-lead"),
                message,
                "Replace the example token values with your design and write the JSON file now.",
            ),
        )
