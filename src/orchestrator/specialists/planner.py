from __future__ import annotations

from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.queue import Task


class PlannerAgent(SpecialistAgent):
    role = "planner"
    prompt_file = "planner.md"
    fallback_prompt = """
# Planner Role

You are a Product Planner. Define the product vision for the task,
break it into concrete features with acceptance criteria, and map the
user flows that exercise them. Keep scope realistic and document
assumptions.
""".strip()

    def build_prompt(self, task: Task) -> str:
        message = {
            **self._message_header(task, "planning_document"),
            "product_vision": "1-2 sentence vision statement",
            "core_features": [
                {
                    "name": "Feature",
                    "description": "What it does",
                    "priority": "high|medium|low",
                    "acceptance_criteria": ["criterion"],
                }
            ],
            "user_flows": [
                {
                    "name": "Flow",
                    "description": "Purpose",
                    "steps": [{"step": 1, "action": "User action", "expected_result": "Result"}],
                }
            ],
            "requirements": ["Technical requirement"],
        }
        return self.compose(
            self._task_section(task),
            self._project_section(),
            self._output_section(
                self.state.path_for("to-designer"),
                message,
                "Analyze the task and write the planning document JSON file now.",
            ),
        )
