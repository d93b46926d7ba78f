from __future__ import annotations

import json

from orchestrator.design.tokens import DesignTokenSet
from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.messages import TaskAssignment
from orchestrator.state.queue import Task


class DeveloperAgent(SpecialistAgent):
    role = "developer"
    prompt_file = "developer.md"
    fallback_prompt = """
# Developer Role

You are the Developer. Implement the assignment in the project, use the
design tokens verbatim as CSS custom properties or platform resources,
run the project's build, and report honestly whether it passed.
""".strip()

    def build_prompt(
        self,
        task: Task,
        assignment: TaskAssignment,
        tokens: DesignTokenSet | None = None,
    ) -> str:
        message = {
            **self._message_header(task, "completion_report"),
            "status": "awaiting_review",
            "summary": "What was implemented",
            "files_created": ["path/to/new/file"],
            "files_modified": ["path/to/changed/file"],
            "build_result": {
                "status": "success|failed|not_applicable|not_verified",
                "command": "build command that was run",
                "errors": [],
                "output": "tail of the build output",
            },
        }
        sections = [
            self._task_section(task),
            self._project_section(),
            "\n".join(
                [
                    f"## Assignment: {assignment.title or task.title}",
                    assignment.instructions,
                    "",
                    "Files to create: " + (", ".join(assignment.files_to_create) or "(none)"),
                    f"Architecture: {assignment.architecture or '(unspecified)'}",
                ]
            ),
        ]
        if tokens is not None and not tokens.is_empty():
            sections.append(
                "\n".join(
                    [
                        "## Design Tokens",
                        "```json",
                        json.dumps(tokens.to_dict(), ensure_ascii=False, indent=2),
                        "```",
                    ]
                )
            )
        sections.append(
            self._output_section(
                self.state.path_for("to-team-lead"),
                message,
                "Implement the assignment, verify the build, then write the report JSON file.",
            )
        )
        return self.compose(*sections)
