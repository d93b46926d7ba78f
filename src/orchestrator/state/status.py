from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Literal

from orchestrator.state.json_store import JsonStateStore, utcnow_iso

AgentState = Literal["idle", "running", "succeeded", "failed"]


@dataclass(slots=True)
class CycleStats:
    number: int
    completed: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "completed": self.completed,
            "failed": self.failed,
            "remaining": self.remaining,
        }


def _empty_status() -> dict[str, Any]:
    return {
        "orchestrator": {"running": False, "pid": None, "started_at": None, "stopped_at": None},
        "agents": {},
        "last_cycle": None,
    }


class StatusStore:
    """Run-level status shared with the ``status`` and ``stop`` commands."""

    NAMESPACE = "status"

    def __init__(self, state: JsonStateStore) -> None:
        self.state = state

    def _update(self, mutate) -> None:
        def _updater(payload: Any) -> dict[str, Any]:
            status = payload if isinstance(payload, dict) else _empty_status()
            for key, value in _empty_status().items():
                status.setdefault(key, value)
            mutate(status)
            return status

        self.state.update_json(self.NAMESPACE, _updater, default=_empty_status())

    def initialize(self) -> None:
        if not self.state.path_for(self.NAMESPACE).exists():
            self.state.set_json(self.NAMESPACE, _empty_status())

    def read(self) -> dict[str, Any]:
        payload = self.state.get_json(self.NAMESPACE, default=_empty_status())
        return payload if isinstance(payload, dict) else _empty_status()

    def mark_running(self, pid: int | None = None) -> None:
        def _mutate(status: dict[str, Any]) -> None:
            status["orchestrator"] = {
                "running": True,
                "pid": os.getpid() if pid is None else pid,
                "started_at": utcnow_iso(),
                "stopped_at": None,
            }

        self._update(_mutate)

    def mark_stopped(self) -> None:
        def _mutate(status: dict[str, Any]) -> None:
            orchestrator = dict(status.get("orchestrator") or {})
            orchestrator["running"] = False
            orchestrator["pid"] = None
            orchestrator["stopped_at"] = utcnow_iso()
            status["orchestrator"] = orchestrator

        self._update(_mutate)

    def is_running(self) -> bool:
        return bool((self.read().get("orchestrator") or {}).get("running"))

    def set_agent(self, role: str, state: AgentState, task_id: str | None = None) -> None:
        def _mutate(status: dict[str, Any]) -> None:
            status["agents"][role] = {
                "status": state,
                "task_id": task_id,
                "updated_at": utcnow_iso(),
            }

        self._update(_mutate)

    def record_cycle(self, stats: CycleStats) -> None:
        def _mutate(status: dict[str, Any]) -> None:
            status["last_cycle"] = {**stats.to_dict(), "finished_at": utcnow_iso()}

        self._update(_mutate)

    def last_cycle(self) -> CycleStats | None:
        raw = self.read().get("last_cycle")
        if not isinstance(raw, dict):
            return None
        return CycleStats(
            number=int(raw.get("number", 0)),
            completed=int(raw.get("completed", 0)),
            failed=int(raw.get("failed", 0)),
            remaining=int(raw.get("remaining", 0)),
        )
