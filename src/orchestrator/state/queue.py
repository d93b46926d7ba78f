from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from typing import Any, Literal

from orchestrator.state.json_store import JsonStateStore, OrchestratorStateError, utcnow_iso

logger = logging.getLogger(__name__)

TaskStatus = Literal["pending", "in_progress", "awaiting_review", "completed", "rejected"]
TaskPriority = Literal["high", "medium", "low"]

TASK_STATUSES: tuple[str, ...] = (
    "pending",
    "in_progress",
    "awaiting_review",
    "completed",
    "rejected",
)
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}
TASK_ID_PATTERN = re.compile(r"^task-(\d+)$")
QUEUE_VERSION = "1.0"
_IMMUTABLE_FIELDS = {"id", "created_at"}


class TaskNotFoundError(OrchestratorStateError):
    """Raised when a task id is not in the active queue."""


@dataclass(slots=True)
class PlatformTarget:
    target_path: str
    required_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TaskDraft:
    title: str
    description: str = ""
    type: str = "feature_implementation"
    priority: TaskPriority = "medium"
    acceptance_criteria: list[str] | None = None
    reference_files: list[str] | None = None
    targets: dict[str, PlatformTarget] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskDraft:
        title = str(data.get("title") or "").strip()
        if not title:
            raise OrchestratorStateError("Task draft is missing a title.")
        priority = str(data.get("priority") or "medium")
        if priority not in PRIORITY_RANK:
            raise OrchestratorStateError(f"Unsupported task priority: {priority}")
        return cls(
            title=title,
            description=str(data.get("description") or ""),
            type=str(data.get("type") or "feature_implementation"),
            priority=priority,  # type: ignore[arg-type]
            acceptance_criteria=_optional_str_list(
                data.get("acceptance_criteria", data.get("acceptanceCriteria"))
            ),
            reference_files=_optional_str_list(
                data.get("reference_files", data.get("referenceFiles"))
            ),
            targets=_targets_from_dict(data.get("targets")),
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str = ""
    type: str = "feature_implementation"
    priority: TaskPriority = "medium"
    status: TaskStatus = "pending"
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)
    rejection_reason: str | None = None
    acceptance_criteria: list[str] | None = None
    reference_files: list[str] | None = None
    targets: dict[str, PlatformTarget] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "targets": {
                platform: {
                    "target_path": target.target_path,
                    "required_files": list(target.required_files),
                }
                for platform, target in self.targets.items()
            },
        }
        if self.rejection_reason is not None:
            payload["rejection_reason"] = self.rejection_reason
        if self.acceptance_criteria is not None:
            payload["acceptance_criteria"] = list(self.acceptance_criteria)
        if self.reference_files is not None:
            payload["reference_files"] = list(self.reference_files)
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        status = str(data.get("status") or "pending")
        if status not in TASK_STATUSES:
            raise OrchestratorStateError(f"Unsupported task status: {status}")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            type=str(data.get("type") or "feature_implementation"),
            priority=str(data.get("priority") or "medium"),  # type: ignore[arg-type]
            status=status,  # type: ignore[arg-type]
            created_at=str(data.get("created_at") or utcnow_iso()),
            updated_at=str(data.get("updated_at") or data.get("created_at") or utcnow_iso()),
            rejection_reason=data.get("rejection_reason"),
            acceptance_criteria=_optional_str_list(data.get("acceptance_criteria")),
            reference_files=_optional_str_list(data.get("reference_files")),
            targets=_targets_from_dict(data.get("targets")),
        )


@dataclass(slots=True)
class QueueStats:
    pending: int
    in_progress: int
    awaiting_review: int
    completed: int
    rejected: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "in_progress": self.in_progress,
            "awaiting_review": self.awaiting_review,
            "completed": self.completed,
            "rejected": self.rejected,
            "total": self.total,
        }


def _optional_str_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise OrchestratorStateError(f"Expected a list of strings, got {type(value).__name__}")
    return [str(item) for item in value]


def _targets_from_dict(value: Any) -> dict[str, PlatformTarget]:
    if not isinstance(value, dict):
        return {}
    targets: dict[str, PlatformTarget] = {}
    for platform, raw in value.items():
        if not isinstance(raw, dict):
            continue
        targets[str(platform)] = PlatformTarget(
            target_path=str(raw.get("target_path", raw.get("targetPath", ""))),
            required_files=[
                str(item) for item in raw.get("required_files", raw.get("requiredFiles", []))
            ],
        )
    return targets


def _empty_queue() -> dict[str, Any]:
    return {"tasks": [], "completed": [], "current": None, "version": QUEUE_VERSION}


def _next_id(queue: dict[str, Any]) -> int:
    highest = 0
    for item in [*queue.get("tasks", []), *queue.get("completed", [])]:
        match = TASK_ID_PATTERN.match(str(item.get("id", "")))
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


def _by_priority(tasks: Iterable[Task]) -> list[Task]:
    # sorted() is stable, so equal priority and timestamp keep queue order
    return sorted(tasks, key=lambda task: (-PRIORITY_RANK.get(task.priority, 0), task.created_at))


class TaskStore:
    """Durable task queue: active tasks, archived completions and the current pointer."""

    NAMESPACE = "queue"

    def __init__(self, state: JsonStateStore) -> None:
        self.state = state

    def _load(self) -> dict[str, Any]:
        payload = self.state.get_json(self.NAMESPACE, default=_empty_queue())
        if not isinstance(payload, dict):
            return _empty_queue()
        payload.setdefault("tasks", [])
        payload.setdefault("completed", [])
        payload.setdefault("current", None)
        payload.setdefault("version", QUEUE_VERSION)
        return payload

    def _mutate(self, mutator) -> Any:
        result: dict[str, Any] = {}

        def _updater(payload: Any) -> dict[str, Any]:
            queue = payload if isinstance(payload, dict) else _empty_queue()
            for key, value in _empty_queue().items():
                queue.setdefault(key, value)
            result["value"] = mutator(queue)
            return queue

        self.state.update_json(self.NAMESPACE, _updater, default=_empty_queue())
        return result.get("value")

    @staticmethod
    def _active_index(queue: dict[str, Any], task_id: str) -> int:
        for index, item in enumerate(queue["tasks"]):
            if item.get("id") == task_id:
                return index
        raise TaskNotFoundError(f"Task not found: {task_id}")

    def initialize(self) -> None:
        if not self.state.path_for(self.NAMESPACE).exists():
            self.state.set_json(self.NAMESPACE, _empty_queue())

    def add(self, draft: TaskDraft) -> Task:
        return self.add_many([draft])[0]

    def add_many(self, drafts: Iterable[TaskDraft]) -> list[Task]:
        drafts = list(drafts)

        def _add(queue: dict[str, Any]) -> list[Task]:
            next_number = _next_id(queue)
            created: list[Task] = []
            for offset, draft in enumerate(drafts):
                now = utcnow_iso()
                task = Task(
                    id=f"task-{next_number + offset:03d}",
                    title=draft.title,
                    description=draft.description,
                    type=draft.type,
                    priority=draft.priority,
                    status="pending",
                    created_at=now,
                    updated_at=now,
                    acceptance_criteria=draft.acceptance_criteria,
                    reference_files=draft.reference_files,
                    targets=dict(draft.targets),
                )
                queue["tasks"].append(task.to_dict())
                created.append(task)
            return created

        created = self._mutate(_add)
        for task in created:
            logger.info("Added %s: %s", task.id, task.title)
        return created

    def get(self, task_id: str) -> Task | None:
        queue = self._load()
        for item in [*queue["tasks"], *queue["completed"]]:
            if item.get("id") == task_id:
                return Task.from_dict(item)
        return None

    def update(self, task_id: str, **changes: Any) -> Task:
        known = {item.name for item in fields(Task)}
        for name in changes:
            if name in _IMMUTABLE_FIELDS:
                raise OrchestratorStateError(f"Task field is immutable: {name}")
            if name not in known:
                raise OrchestratorStateError(f"Unknown task field: {name}")
        status = changes.get("status")
        if status is not None and status not in TASK_STATUSES:
            raise OrchestratorStateError(f"Unsupported task status: {status}")

        def _update(queue: dict[str, Any]) -> Task:
            index = self._active_index(queue, task_id)
            task = Task.from_dict(queue["tasks"][index])
            for name, value in changes.items():
                setattr(task, name, value)
            if task.status != "rejected":
                task.rejection_reason = None
            task.updated_at = utcnow_iso()
            queue["tasks"][index] = task.to_dict()
            return task

        return self._mutate(_update)

    def set_status(self, task_id: str, status: TaskStatus) -> Task:
        return self.update(task_id, status=status)

    def set_current(self, task_id: str | None) -> None:
        def _set(queue: dict[str, Any]) -> None:
            if task_id is not None and not any(
                item.get("id") == task_id for item in queue["tasks"]
            ):
                logger.debug("Ignoring current-task pointer for inactive task %s", task_id)
                return
            queue["current"] = task_id

        self._mutate(_set)

    def current(self) -> str | None:
        return self._load().get("current")

    def complete(self, task_id: str) -> Task:
        def _complete(queue: dict[str, Any]) -> Task:
            index = self._active_index(queue, task_id)
            task = Task.from_dict(queue["tasks"].pop(index))
            task.status = "completed"
            task.rejection_reason = None
            task.updated_at = utcnow_iso()
            queue["completed"].append(task.to_dict())
            if queue.get("current") == task_id:
                queue["current"] = None
            return task

        return self._mutate(_complete)

    def reject(self, task_id: str, reason: str) -> Task:
        return self.update(task_id, status="rejected", rejection_reason=reason)

    def reset(self, task_id: str) -> Task:
        return self.update(task_id, status="pending", rejection_reason=None)

    def active(self) -> list[Task]:
        return [Task.from_dict(item) for item in self._load()["tasks"]]

    def completed(self) -> list[Task]:
        return [Task.from_dict(item) for item in self._load()["completed"]]

    def _with_status(self, status: TaskStatus) -> list[Task]:
        return [task for task in self.active() if task.status == status]

    def pending(self) -> list[Task]:
        return self._with_status("pending")

    def in_progress(self) -> list[Task]:
        return self._with_status("in_progress")

    def awaiting_review(self) -> list[Task]:
        return self._with_status("awaiting_review")

    def rejected(self) -> list[Task]:
        return self._with_status("rejected")

    def pending_by_priority(self) -> list[Task]:
        return _by_priority(self.pending())

    def next_pending(self) -> Task | None:
        ordered = self.pending_by_priority()
        return ordered[0] if ordered else None

    def has_tasks_to_process(self) -> bool:
        return any(task.status in ("pending", "in_progress") for task in self.active())

    def stats(self) -> QueueStats:
        queue = self._load()
        active = [Task.from_dict(item) for item in queue["tasks"]]
        return QueueStats(
            pending=sum(1 for task in active if task.status == "pending"),
            in_progress=sum(1 for task in active if task.status == "in_progress"),
            awaiting_review=sum(1 for task in active if task.status == "awaiting_review"),
            completed=len(queue["completed"]),
            rejected=sum(1 for task in active if task.status == "rejected"),
            total=len(active) + len(queue["completed"]),
        )
