"""Typed pipeline messages and the file-backed mailboxes that relay them.

Agents write mailbox files themselves, so every reader accepts both the
snake_case keys written here and the camelCase keys some agents emit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal

from orchestrator.design.comparator import ComparisonResult, Discrepancy, comparison_summary
from orchestrator.design.tokens import DesignTokenSet
from orchestrator.state.json_store import JsonStateStore, OrchestratorStateError, utcnow_iso

Mailbox = Literal["to-designer", "to-tech-lead", "to-developer", "to-team-lead"]
MessageKind = Literal[
    "planning_document",
    "design_specification",
    "task_assignment",
    "completion_report",
    "design_verification",
]
BuildStatus = Literal["success", "failed", "not_applicable", "not_verified"]

MAILBOXES: tuple[Mailbox, ...] = ("to-designer", "to-tech-lead", "to-developer", "to-team-lead")
BUILD_STATUSES: tuple[str, ...] = ("success", "failed", "not_applicable", "not_verified")


class MessageFormatError(OrchestratorStateError, ValueError):
    """Raised when mailbox content does not describe a valid message."""


def _get(data: Mapping[str, Any], key: str, camel: str | None = None, default: Any = None) -> Any:
    if key in data:
        return data[key]
    if camel is not None and camel in data:
        return data[camel]
    return default


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MessageFormatError(f"Expected a list, got {type(value).__name__}")
    return [str(item) for item in value]


def _dict_list(value: Any) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MessageFormatError(f"Expected a list, got {type(value).__name__}")
    return [item for item in value if isinstance(item, Mapping)]


@dataclass(slots=True)
class FeatureDefinition:
    name: str
    description: str = ""
    priority: str = "medium"
    acceptance_criteria: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FlowStep:
    step: int
    action: str
    expected_result: str = ""


@dataclass(slots=True)
class UserFlow:
    name: str
    description: str = ""
    steps: list[FlowStep] = field(default_factory=list)


@dataclass(slots=True)
class ComponentSpec:
    name: str
    description: str = ""
    used_tokens: list[str] = field(default_factory=list)
    figma_node_id: str | None = None


@dataclass(slots=True)
class BuildResult:
    status: BuildStatus = "not_verified"
    command: str | None = None
    errors: list[str] = field(default_factory=list)
    output: str | None = None


@dataclass(slots=True)
class PipelineMessage:
    kind: ClassVar[str] = "message"

    task_id: str
    platform: str = "web"
    timestamp: str = field(default_factory=utcnow_iso)

    def _payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "task_id": self.task_id,
            "platform": self.platform,
            "timestamp": self.timestamp,
            **self._payload(),
        }

    @staticmethod
    def _envelope(data: Mapping[str, Any]) -> dict[str, Any]:
        task_id = _get(data, "task_id", "taskId")
        if not task_id:
            raise MessageFormatError("Message is missing task_id.")
        return {
            "task_id": str(task_id),
            "platform": str(_get(data, "platform", default="web")),
            "timestamp": str(_get(data, "timestamp", default="") or utcnow_iso()),
        }


@dataclass(slots=True)
class PlanningDocument(PipelineMessage):
    kind: ClassVar[str] = "planning_document"

    product_vision: str = ""
    core_features: list[FeatureDefinition] = field(default_factory=list)
    user_flows: list[UserFlow] = field(default_factory=list)
    requirements: list[str] = field(default_factory=list)

    def _payload(self) -> dict[str, Any]:
        return {
            "product_vision": self.product_vision,
            "core_features": [
                {
                    "name": feature.name,
                    "description": feature.description,
                    "priority": feature.priority,
                    "acceptance_criteria": list(feature.acceptance_criteria),
                }
                for feature in self.core_features
            ],
            "user_flows": [
                {
                    "name": flow.name,
                    "description": flow.description,
                    "steps": [
                        {
                            "step": step.step,
                            "action": step.action,
                            "expected_result": step.expected_result,
                        }
                        for step in flow.steps
                    ],
                }
                for flow in self.user_flows
            ],
            "requirements": list(self.requirements),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlanningDocument:
        features = [
            FeatureDefinition(
                name=str(item.get("name", "")),
                description=str(item.get("description", "")),
                priority=str(item.get("priority", "medium")),
                acceptance_criteria=_str_list(
                    _get(item, "acceptance_criteria", "acceptanceCriteria")
                ),
            )
            for item in _dict_list(_get(data, "core_features", "coreFeatures"))
        ]
        flows = [
            UserFlow(
                name=str(item.get("name", "")),
                description=str(item.get("description", "")),
                steps=[
                    FlowStep(
                        step=int(step.get("step", index + 1)),
                        action=str(step.get("action", "")),
                        expected_result=str(_get(step, "expected_result", "expectedResult", "")),
                    )
                    for index, step in enumerate(_dict_list(item.get("steps")))
                ],
            )
            for item in _dict_list(_get(data, "user_flows", "userFlows"))
        ]
        return cls(
            **cls._envelope(data),
            product_vision=str(_get(data, "product_vision", "productVision", "")),
            core_features=features,
            user_flows=flows,
            requirements=_str_list(data.get("requirements")),
        )


@dataclass(slots=True)
class DesignSpecification(PipelineMessage):
    kind: ClassVar[str] = "design_specification"

    design_tokens: DesignTokenSet = field(default_factory=DesignTokenSet)
    component_specs: list[ComponentSpec] = field(default_factory=list)
    figma_reference: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "design_tokens": self.design_tokens.to_dict(),
            "component_specs": [
                {
                    "name": spec.name,
                    "description": spec.description,
                    "used_tokens": list(spec.used_tokens),
                    "figma_node_id": spec.figma_node_id,
                }
                for spec in self.component_specs
            ],
            "figma_reference": self.figma_reference,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DesignSpecification:
        tokens = _get(data, "design_tokens", "designTokens")
        if tokens is not None and not isinstance(tokens, Mapping):
            raise MessageFormatError("design_tokens must be an object.")
        specs = [
            ComponentSpec(
                name=str(item.get("name", "")),
                description=str(item.get("description", "")),
                used_tokens=_str_list(_get(item, "used_tokens", "usedTokens")),
                figma_node_id=_get(item, "figma_node_id", "figmaNodeId"),
            )
            for item in _dict_list(_get(data, "component_specs", "componentSpecs"))
        ]
        return cls(
            **cls._envelope(data),
            design_tokens=DesignTokenSet.from_dict(tokens),
            component_specs=specs,
            figma_reference=_get(data, "figma_reference", "figmaReference"),
        )


@dataclass(slots=True)
class TaskAssignment(PipelineMessage):
    kind: ClassVar[str] = "task_assignment"

    title: str = ""
    instructions: str = ""
    files_to_create: list[str] = field(default_factory=list)
    architecture: str | None = None
    api_endpoints: list[str] = field(default_factory=list)

    def _payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "instructions": self.instructions,
            "files_to_create": list(self.files_to_create),
            "architecture": self.architecture,
            "api_endpoints": list(self.api_endpoints),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskAssignment:
        return cls(
            **cls._envelope(data),
            title=str(data.get("title", "")),
            instructions=str(data.get("instructions", "")),
            files_to_create=_str_list(_get(data, "files_to_create", "filesToCreate")),
            architecture=data.get("architecture"),
            api_endpoints=_str_list(_get(data, "api_endpoints", "apiEndpoints")),
        )


@dataclass(slots=True)
class CompletionReport(PipelineMessage):
    kind: ClassVar[str] = "completion_report"

    status: str = "awaiting_review"
    summary: str = ""
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    build_result: BuildResult = field(default_factory=BuildResult)

    def _payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "summary": self.summary,
            "files_created": list(self.files_created),
            "files_modified": list(self.files_modified),
            "build_result": {
                "status": self.build_result.status,
                "command": self.build_result.command,
                "errors": list(self.build_result.errors),
                "output": self.build_result.output,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompletionReport:
        raw_build = _get(data, "build_result", "buildResult") or {}
        if not isinstance(raw_build, Mapping):
            raise MessageFormatError("build_result must be an object.")
        build_status = str(raw_build.get("status", "not_verified"))
        if build_status not in BUILD_STATUSES:
            raise MessageFormatError(f"Unsupported build status: {build_status}")
        return cls(
            **cls._envelope(data),
            status=str(data.get("status", "awaiting_review")),
            summary=str(data.get("summary", "")),
            files_created=_str_list(_get(data, "files_created", "filesCreated")),
            files_modified=_str_list(_get(data, "files_modified", "filesModified")),
            build_result=BuildResult(
                status=build_status,  # type: ignore[arg-type]
                command=raw_build.get("command"),
                errors=_str_list(raw_build.get("errors")),
                output=raw_build.get("output"),
            ),
        )


@dataclass(slots=True)
class DesignVerification(PipelineMessage):
    kind: ClassVar[str] = "design_verification"

    verified: bool = True
    match_percentage: int = 0
    total_checked: int = 0
    discrepancies: list[Discrepancy] = field(default_factory=list)
    summary: str = ""

    @classmethod
    def from_comparison(
        cls, task_id: str, platform: str, result: ComparisonResult
    ) -> DesignVerification:
        return cls(
            task_id=task_id,
            platform=platform,
            verified=result.verified,
            match_percentage=result.match_percentage,
            total_checked=result.total_checked,
            discrepancies=list(result.discrepancies),
            summary=comparison_summary(result),
        )

    def _payload(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "match_percentage": self.match_percentage,
            "total_checked": self.total_checked,
            "discrepancies": [item.to_dict() for item in self.discrepancies],
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DesignVerification:
        discrepancies = [
            Discrepancy(
                category=str(item.get("category", "")),
                token_name=str(_get(item, "token_name", "tokenName", "")),
                expected_value=str(_get(item, "expected_value", "expectedValue", "")),
                actual_value=str(_get(item, "actual_value", "actualValue", "")),
                difference=str(item.get("difference", "")),
                severity=str(item.get("severity", "warning")),  # type: ignore[arg-type]
            )
            for item in _dict_list(data.get("discrepancies"))
        ]
        return cls(
            **cls._envelope(data),
            verified=bool(data.get("verified", True)),
            match_percentage=int(_get(data, "match_percentage", "matchPercentage", 0)),
            total_checked=int(_get(data, "total_checked", "totalChecked", 0)),
            discrepancies=discrepancies,
            summary=str(data.get("summary", "")),
        )


MESSAGE_TYPES: dict[str, type[PipelineMessage]] = {
    PlanningDocument.kind: PlanningDocument,
    DesignSpecification.kind: DesignSpecification,
    TaskAssignment.kind: TaskAssignment,
    CompletionReport.kind: CompletionReport,
    DesignVerification.kind: DesignVerification,
}


def message_from_dict(data: Any) -> PipelineMessage:
    if not isinstance(data, Mapping):
        raise MessageFormatError(f"Message must be an object, got {type(data).__name__}")
    kind = data.get("type")
    message_type = MESSAGE_TYPES.get(str(kind))
    if message_type is None:
        raise MessageFormatError(f"Unknown message type: {kind!r}")
    try:
        return message_type.from_dict(data)  # type: ignore[attr-defined]
    except (TypeError, ValueError, AttributeError) as exc:
        if isinstance(exc, MessageFormatError):
            raise
        raise MessageFormatError(f"Malformed {kind} message: {exc}") from exc


def _empty_mailbox() -> dict[str, Any]:
    return {"messages": [], "last_read": None}


class MessageChannel:
    """The four mailboxes that carry one task's output from phase to phase."""

    def __init__(self, state: JsonStateStore) -> None:
        self.state = state

    @staticmethod
    def _validate(mailbox: str) -> None:
        if mailbox not in MAILBOXES:
            raise MessageFormatError(f"Unknown mailbox: {mailbox}")

    def path_for(self, mailbox: Mailbox) -> Path:
        self._validate(mailbox)
        return self.state.path_for(mailbox)

    def initialize(self) -> None:
        for mailbox in MAILBOXES:
            if not self.path_for(mailbox).exists():
                self.clear(mailbox)

    def clear(self, mailbox: Mailbox) -> None:
        self._validate(mailbox)
        self.state.set_json(mailbox, {"messages": [], "last_read": utcnow_iso()})

    def clear_all(self, mailboxes: Iterable[Mailbox] | None = None) -> None:
        for mailbox in mailboxes or MAILBOXES:
            self.clear(mailbox)

    def _raw_messages(self, mailbox: Mailbox) -> list[Any]:
        self._validate(mailbox)
        payload = self.state.get_json(mailbox, default=_empty_mailbox())
        if not isinstance(payload, Mapping):
            raise MessageFormatError(f"Mailbox {mailbox} does not hold an object.")
        messages = payload.get("messages", [])
        if not isinstance(messages, list):
            raise MessageFormatError(f"Mailbox {mailbox} messages must be a list.")
        return messages

    def read(self, mailbox: Mailbox) -> list[PipelineMessage]:
        return [message_from_dict(item) for item in self._raw_messages(mailbox)]

    def last_read(self, mailbox: Mailbox) -> str | None:
        self._validate(mailbox)
        payload = self.state.get_json(mailbox, default=_empty_mailbox())
        if isinstance(payload, Mapping):
            value = payload.get("last_read", payload.get("lastRead"))
            return str(value) if value else None
        return None

    def write(self, mailbox: Mailbox, message: PipelineMessage) -> None:
        self._validate(mailbox)
        if not isinstance(message, PipelineMessage) or not message.task_id:
            raise MessageFormatError("Only messages with a task_id can be written.")
        serialized = message.to_dict()

        def _append(payload: Any) -> dict[str, Any]:
            mailbox_data = dict(payload) if isinstance(payload, Mapping) else _empty_mailbox()
            messages = mailbox_data.get("messages")
            if not isinstance(messages, list):
                messages = []
            mailbox_data["messages"] = [*messages, serialized]
            mailbox_data.setdefault("last_read", None)
            return mailbox_data

        self.state.update_json(mailbox, _append, default=_empty_mailbox())

    def find(self, mailbox: Mailbox, task_id: str, kind: MessageKind) -> PipelineMessage | None:
        """Return the first message of ``kind`` for ``task_id``.

        Entries belonging to other tasks or kinds are skipped without parsing
        beyond their tag, so a malformed message for another task cannot hide
        the one being looked up.
        """
        for item in self._raw_messages(mailbox):
            if not isinstance(item, Mapping):
                continue
            if item.get("type") != kind:
                continue
            if str(_get(item, "task_id", "taskId", "")) != task_id:
                continue
            return message_from_dict(item)
        return None
