"""Drive one task through plan, design, assignment, build, review and verification.

Each phase clears the mailbox it is about to fill, invokes one specialist and
reads the message that specialist was asked to write. Phase failures become
``PipelineOutcome`` values; the current-task pointer and every mailbox are
released when the run ends, whichever way it ends.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, TypeVar

from orchestrator.config import OrchestratorConfig
from orchestrator.design.comparator import ComparisonOptions, Discrepancy, compare_tokens
from orchestrator.design.extractor import extract_tokens
from orchestrator.design.tokens import DesignTokenSet
from orchestrator.logs import DevelopmentLog, TaskLogEntry
from orchestrator.specialists import (
    DesignerAgent,
    DeveloperAgent,
    PlannerAgent,
    ReviewerAgent,
    TechLeadAgent,
    parse_review_output,
)
from orchestrator.specialists.base import SpecialistAgent, SpecialistResponse
from orchestrator.state.json_store import OrchestratorStateError
from orchestrator.state.messages import (
    MAILBOXES,
    CompletionReport,
    DesignSpecification,
    DesignVerification,
    Mailbox,
    MessageChannel,
    MessageKind,
    PipelineMessage,
    PlanningDocument,
    TaskAssignment,
)
from orchestrator.state.queue import Task, TaskNotFoundError, TaskStore
from orchestrator.state.status import StatusStore

logger = logging.getLogger(__name__)

PipelineState = Literal[
    "planning",
    "designing",
    "tech_lead_assigning",
    "implementing",
    "reviewing",
    "verifying",
    "done",
    "aborted",
]
Phase = Literal["planner", "designer", "tech_lead", "developer", "review", "verification"]

PHASE_COUNT = 6
NO_REPORT_REASON = "No completion report found"
BUILD_FAILED_REASON = "Build verification failed"
NO_ASSIGNMENT_REASON = "No instructions found from Tech Lead"

PHASE_BY_STATE: dict[str, Phase] = {
    "planning": "planner",
    "designing": "designer",
    "tech_lead_assigning": "tech_lead",
    "implementing": "developer",
    "reviewing": "review",
    "verifying": "verification",
}

TokenExtractor = Callable[[Path], DesignTokenSet]
MessageT = TypeVar("MessageT", bound=PipelineMessage)


class PhaseAborted(Exception):
    """Ends a pipeline run at ``phase``; ``rejected`` marks a review rejection."""

    def __init__(self, phase: Phase, reason: str, *, rejected: bool = False) -> None:
        super().__init__(f"{phase}: {reason}")
        self.phase = phase
        self.reason = reason
        self.rejected = rejected


@dataclass(slots=True)
class VerificationResult:
    verified: bool
    match_percentage: int
    total_checked: int = 0
    discrepancies: list[Discrepancy] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class PipelineOutcome:
    task_id: str
    state: PipelineState
    phase: Phase | None = None
    reason: str | None = None
    rejected: bool = False
    verification: VerificationResult | None = None
    history: list[PipelineState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == "done"


@dataclass(slots=True)
class PipelineSpecialists:
    planner: PlannerAgent
    designer: DesignerAgent
    tech_lead: TechLeadAgent
    developer: DeveloperAgent
    reviewer: ReviewerAgent


class PipelineController:
    def __init__(
        self,
        tasks: TaskStore,
        channel: MessageChannel,
        specialists: PipelineSpecialists,
        config: OrchestratorConfig,
        *,
        status: StatusStore | None = None,
        devlog: DevelopmentLog | None = None,
        token_extractor: TokenExtractor | None = None,
    ) -> None:
        self.tasks = tasks
        self.channel = channel
        self.specialists = specialists
        self.config = config
        self.status = status
        self.devlog = devlog
        self.token_extractor = token_extractor or self._default_extractor

    def _default_extractor(self, root: Path) -> DesignTokenSet:
        return extract_tokens(root, parse_tailwind=self.config.verification.parse_tailwind)

    @property
    def project_root(self) -> Path:
        return self.channel.state.project_root

    async def run(self, task_id: str) -> PipelineOutcome:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        if task.status not in ("pending", "in_progress"):
            return PipelineOutcome(
                task_id=task_id,
                state="aborted",
                reason=f"Task {task_id} is not runnable (status {task.status})",
            )

        history: list[PipelineState] = []
        logger.info("Processing %s: %s", task.id, task.title)
        self.tasks.set_current(task_id)
        try:
            if task.status != "in_progress":
                task = self.tasks.set_status(task_id, "in_progress")

            history.append("planning")
            plan = await self._planning(task)
            history.append("designing")
            design = await self._designing(task, plan)
            history.append("tech_lead_assigning")
            await self._assigning(task, plan, design)
            history.append("implementing")
            report = await self._implementing(task, design)
            history.append("reviewing")
            await self._reviewing(task, report)
            history.append("verifying")
            verification = self._verifying(task, design)

            self.tasks.complete(task_id)
            history.append("done")
            self._log_outcome(task, report, approved=True)
            logger.info(
                "%s completed (design match %d%%)", task_id, verification.match_percentage
            )
            return PipelineOutcome(
                task_id=task_id,
                state="done",
                verification=verification,
                history=history,
            )
        except PhaseAborted as exc:
            history.append("aborted")
            if exc.rejected:
                self.tasks.reject(task_id, exc.reason)
                self._log_outcome(
                    task, self._completion_report(task), approved=False, reason=exc.reason
                )
                logger.warning("%s rejected: %s", task_id, exc.reason)
            else:
                logger.error("%s aborted in %s phase: %s", task_id, exc.phase, exc.reason)
            return PipelineOutcome(
                task_id=task_id,
                state="aborted",
                phase=exc.phase,
                reason=exc.reason,
                rejected=exc.rejected,
                history=history,
            )
        except OrchestratorStateError:
            raise
        except Exception as exc:
            phase = PHASE_BY_STATE.get(history[-1], "planner") if history else "planner"
            history.append("aborted")
            logger.exception("%s aborted by an unexpected error in %s phase", task_id, phase)
            return PipelineOutcome(
                task_id=task_id,
                state="aborted",
                phase=phase,
                reason=str(exc) or type(exc).__name__,
                history=history,
            )
        finally:
            self.tasks.set_current(None)
            self.channel.clear_all(MAILBOXES)

    async def _invoke(
        self, phase: Phase, number: int, agent: SpecialistAgent, task: Task, prompt: str
    ) -> SpecialistResponse:
        logger.info("[Phase %d/%d] %s: %s", number, PHASE_COUNT, phase, task.id)
        self._set_agent(agent.role, "running", task.id)
        response = await agent.run(prompt)
        self._set_agent(agent.role, "succeeded" if response.succeeded else "failed", task.id)
        return response

    def _require(
        self,
        phase: Phase,
        mailbox: Mailbox,
        task: Task,
        kind: MessageKind,
        message_type: type[MessageT],
    ) -> MessageT:
        try:
            message = self.channel.find(mailbox, task.id, kind)
        except OrchestratorStateError as exc:
            raise PhaseAborted(phase, f"Unreadable {kind}: {exc}") from exc
        if not isinstance(message, message_type):
            raise PhaseAborted(phase, f"No {kind} found for {task.id}")
        return message

    async def _planning(self, task: Task) -> PlanningDocument:
        self.channel.clear("to-designer")
        agent = self.specialists.planner
        response = await self._invoke("planner", 1, agent, task, agent.build_prompt(task))
        if not response.succeeded:
            raise PhaseAborted("planner", response.result.failure_reason())
        return self._require("planner", "to-designer", task, "planning_document", PlanningDocument)

    async def _designing(self, task: Task, plan: PlanningDocument) -> DesignSpecification:
        self.channel.clear("to-tech-lead")
        agent = self.specialists.designer
        response = await self._invoke("designer", 2, agent, task, agent.build_prompt(task, plan))
        if not response.succeeded:
            raise PhaseAborted("designer", response.result.failure_reason())
        design = self._require(
            "designer", "to-tech-lead", task, "design_specification", DesignSpecification
        )
        self.channel.state.set_json(
            "design_tokens", {"task_id": task.id, "tokens": design.design_tokens.to_dict()}
        )
        return design

    async def _assigning(
        self, task: Task, plan: PlanningDocument, design: DesignSpecification
    ) -> None:
        self.channel.clear("to-developer")
        agent = self.specialists.tech_lead
        prompt = agent.build_prompt(task, plan, design)
        response = await self._invoke("tech_lead", 3, agent, task, prompt)
        if not response.succeeded:
            raise PhaseAborted("tech_lead", response.result.failure_reason())

    async def _implementing(
        self, task: Task, design: DesignSpecification
    ) -> CompletionReport | None:
        try:
            assignment = self.channel.find("to-developer", task.id, "task_assignment")
        except OrchestratorStateError as exc:
            raise PhaseAborted("developer", f"Unreadable task_assignment: {exc}") from exc
        if not isinstance(assignment, TaskAssignment):
            raise PhaseAborted("developer", NO_ASSIGNMENT_REASON)

        self.channel.clear("to-team-lead")
        agent = self.specialists.developer
        prompt = agent.build_prompt(task, assignment, design.design_tokens)
        response = await self._invoke("developer", 4, agent, task, prompt)
        if not response.succeeded:
            raise PhaseAborted("developer", response.result.failure_reason())
        self.tasks.set_status(task.id, "awaiting_review")
        return self._completion_report(task)

    def _completion_report(self, task: Task) -> CompletionReport | None:
        try:
            message = self.channel.find("to-team-lead", task.id, "completion_report")
        except OrchestratorStateError as exc:
            logger.warning("Unreadable completion report for %s: %s", task.id, exc)
            return None
        return message if isinstance(message, CompletionReport) else None

    async def _reviewing(self, task: Task, report: CompletionReport | None) -> None:
        if report is None:
            raise PhaseAborted("review", NO_REPORT_REASON, rejected=True)
        if report.build_result.status == "failed":
            raise PhaseAborted("review", BUILD_FAILED_REASON, rejected=True)

        agent = self.specialists.reviewer
        response = await self._invoke("review", 5, agent, task, agent.build_prompt(task, report))
        verdict = parse_review_output(response.result.stdout)
        if not verdict.approved:
            raise PhaseAborted("review", verdict.reason or "Review failed", rejected=True)

    def _verifying(self, task: Task, design: DesignSpecification) -> VerificationResult:
        logger.info("[Phase %d/%d] verification: %s", PHASE_COUNT, PHASE_COUNT, task.id)
        if not self.config.verification.enabled:
            return VerificationResult(verified=True, match_percentage=100)
        options = ComparisonOptions(
            color_tolerance=self.config.verification.color_tolerance,
            spacing_tolerance=self.config.verification.spacing_tolerance,
            min_match_percentage=self.config.verification.min_match_percentage,
        )
        try:
            extracted = self.token_extractor(self.project_root)
            result = compare_tokens(design.design_tokens, extracted, options)
            report = DesignVerification.from_comparison(
                task.id, self.config.project.platform, result
            )
            self.channel.state.set_json("verification", report.to_dict())
        except Exception as exc:
            logger.exception("Design verification failed for %s; continuing", task.id)
            return VerificationResult(verified=True, match_percentage=0, error=str(exc))

        if not result.verified:
            logger.warning(
                "%s design match %d%% is below %d%% (%d discrepancies)",
                task.id,
                result.match_percentage,
                options.min_match_percentage,
                len(result.discrepancies),
            )
        return VerificationResult(
            verified=result.verified,
            match_percentage=result.match_percentage,
            total_checked=result.total_checked,
            discrepancies=list(result.discrepancies),
        )

    def _set_agent(self, role: str, state: str, task_id: str) -> None:
        if self.status is not None:
            self.status.set_agent(role, state, task_id)  # type: ignore[arg-type]

    def _log_outcome(
        self,
        task: Task,
        report: CompletionReport | None,
        *,
        approved: bool,
        reason: str | None = None,
    ) -> None:
        if self.devlog is None:
            return
        self.devlog.append(
            TaskLogEntry(
                task_id=task.id,
                title=task.title,
                platform=self.config.project.platform,
                priority=task.priority,
                summary=report.summary if report else "",
                review_status="approved" if approved else "rejected",
                build_status=report.build_result.status if report else "not_verified",
                files_created=list(report.files_created) if report else [],
                files_modified=list(report.files_modified) if report else [],
                rejection_reason=reason,
            )
        )
