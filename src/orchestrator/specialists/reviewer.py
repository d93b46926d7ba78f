from __future__ import annotations

import json
import re
from dataclasses import dataclass

from orchestrator.specialists.base import SpecialistAgent
from orchestrator.state.messages import CompletionReport
from orchestrator.state.queue import Task

APPROVAL_TOKEN = "approve"
REJECT_PATTERN = re.compile(r"REJECT:\s*(.+)", re.IGNORECASE)
DEFAULT_REJECTION = "Review failed"


@dataclass(slots=True)
class ReviewVerdict:
    approved: bool
    reason: str | None = None


def parse_review_output(text: str) -> ReviewVerdict:
    """Read an approve/reject decision out of free-form review text.

    Any case-insensitive occurrence of ``approve`` counts as approval.
    Otherwise the first ``REJECT: <reason>`` line supplies the reason.
    """
    if APPROVAL_TOKEN in text.lower():
        return ReviewVerdict(approved=True)
    match = REJECT_PATTERN.search(text)
    reason = match.group(1).strip() if match else ""
    return ReviewVerdict(approved=False, reason=reason or DEFAULT_REJECTION)


class ReviewerAgent(SpecialistAgent):
    role = "review"
    prompt_file = "reviewer.md"
    fallback_prompt = """
# Review Role

You are the Tech Lead reviewing a developer's work. Inspect the files
that were created or modified, check them against the assignment and
acceptance criteria, and confirm the design tokens were applied.
""".strip()

    def build_prompt(self, task: Task, report: CompletionReport) -> str:
        details = "\n".join(
            [
                "## Completion Report",
                "```json",
                json.dumps(report.to_dict(), ensure_ascii=False, indent=2),
                "```",
            ]
        )
        decision = "\n".join(
            [
                "## Required Output",
                "",
                "After your review, output ONE of these lines:",
                "- `APPROVE: Task completed successfully`",
                "- `REJECT: [specific reason for rejection]`",
                "",
                "Your review decision:",
            ]
        )
        return self.compose(self._task_section(task), self._project_section(), details, decision)
