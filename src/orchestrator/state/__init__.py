from orchestrator.state.json_store import JsonStateStore, OrchestratorStateError
from orchestrator.state.messages import MAILBOXES, MessageChannel, MessageFormatError
from orchestrator.state.queue import Task, TaskDraft, TaskNotFoundError, TaskStore
from orchestrator.state.status import CycleStats, StatusStore

__all__ = [
    "CycleStats",
    "JsonStateStore",
    "MAILBOXES",
    "MessageChannel",
    "MessageFormatError",
    "OrchestratorStateError",
    "StatusStore",
    "Task",
    "TaskDraft",
    "TaskNotFoundError",
    "TaskStore",
]
