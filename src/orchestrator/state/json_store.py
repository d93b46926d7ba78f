from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_DIRNAME = ".orchestrator"


class OrchestratorStateError(RuntimeError):
    """Raised when shared-state operations fail."""


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


class JsonStateStore:
    """Flat JSON files under ``.orchestrator/`` with a revisioned envelope.

    Files written by external agents (mailboxes) are plain payloads without the
    envelope; they are read as revision 1 and wrapped on the next write.
    """

    NAMESPACES = {
        "queue": "state/queue.json",
        "status": "state/status.json",
        "design_tokens": "state/design_tokens.json",
        "verification": "state/verification.json",
        "to-designer": "messages/to-designer.json",
        "to-tech-lead": "messages/to-tech-lead.json",
        "to-developer": "messages/to-developer.json",
        "to-team-lead": "messages/to-team-lead.json",
        "discovery": "discovery/tasks.json",
    }
    RAW_NAMESPACES = {"to-designer", "to-tech-lead", "to-developer", "to-team-lead", "discovery"}
    SCHEMA_VERSION = 1

    _gates: dict[Path, threading.RLock] = {}
    _gates_guard = threading.Lock()

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root.resolve()
        self.root = self.project_root / STATE_DIRNAME
        self.root.mkdir(parents=True, exist_ok=True)
        self.lock_file = self.root / ".lock"
        with self._gates_guard:
            self._gate = self._gates.setdefault(self.root, threading.RLock())

    @staticmethod
    def _validate_namespace(namespace: str) -> None:
        if namespace not in JsonStateStore.NAMESPACES:
            raise OrchestratorStateError(f"Unsupported namespace: {namespace}")

    def path_for(self, namespace: str) -> Path:
        self._validate_namespace(namespace)
        return self.root / self.NAMESPACES[namespace]

    @contextmanager
    def _state_lock(self, timeout_seconds: float = 3.0) -> Iterator[None]:
        with self._gate:
            start = time.monotonic()
            while True:
                try:
                    fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                    os.write(fd, str(os.getpid()).encode("utf-8"))
                    os.close(fd)
                    break
                except FileExistsError as exc:
                    if time.monotonic() - start > timeout_seconds:
                        if self._reclaim_stale_lock():
                            start = time.monotonic()
                            continue
                        raise OrchestratorStateError("Timed out waiting for state lock.") from exc
                    time.sleep(0.02)

            try:
                yield
            finally:
                try:
                    self.lock_file.unlink()
                except FileNotFoundError:
                    pass

    def _reclaim_stale_lock(self) -> bool:
        """Remove a lock file left behind by a process that no longer exists."""
        try:
            owner = int(self.lock_file.read_text(encoding="utf-8").strip())
        except FileNotFoundError:
            return True
        except ValueError:
            return False
        if owner == os.getpid() or pid_alive(owner):
            return False
        logger.warning("Removing stale state lock held by dead process %d", owner)
        self.lock_file.unlink(missing_ok=True)
        return True

    def _read_raw_json(self, namespace: str) -> Any:
        path = self.path_for(namespace)
        if not path.exists():
            return None
        content = path.read_text(encoding="utf-8").strip()
        if not content:
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise OrchestratorStateError(f"Corrupt state file {path}: {exc}") from exc

    def _write_raw_json(self, namespace: str, payload: Any) -> None:
        path = self.path_for(namespace)
        path.parent.mkdir(parents=True, exist_ok=True)
        serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(serialized + "\n", encoding="utf-8")
        os.replace(tmp_path, path)

    def _normalize_envelope(self, raw_payload: Any, default: Any) -> dict[str, Any]:
        if (
            isinstance(raw_payload, dict)
            and "schema_version" in raw_payload
            and "data" in raw_payload
            and "revision" in raw_payload
        ):
            return {
                "schema_version": int(raw_payload.get("schema_version") or self.SCHEMA_VERSION),
                "revision": int(raw_payload.get("revision") or 1),
                "updated_at": raw_payload.get("updated_at") or utcnow_iso(),
                "data": raw_payload.get("data", default),
            }

        data = default if raw_payload is None else raw_payload
        return {
            "schema_version": self.SCHEMA_VERSION,
            "revision": 1 if raw_payload is not None else 0,
            "updated_at": utcnow_iso(),
            "data": data,
        }

    def get_envelope(self, namespace: str, default: Any | None = None) -> dict[str, Any]:
        default_value = {} if default is None else default
        raw = self._read_raw_json(namespace)
        return self._normalize_envelope(raw, default_value)

    def get_json(self, namespace: str, default: Any | None = None) -> Any:
        return self.get_envelope(namespace, default=default).get("data")

    def _write_locked(self, namespace: str, data: Any, expected_revision: int | None) -> None:
        if namespace in self.RAW_NAMESPACES and expected_revision is None:
            # agent-written, so never parsed before an overwrite
            self._write_raw_json(namespace, data)
            return
        current = self.get_envelope(namespace, default={})
        current_revision = int(current.get("revision", 0))
        if expected_revision is not None and expected_revision != current_revision:
            raise OrchestratorStateError(
                f"Concurrent state update detected for namespace '{namespace}'."
            )
        if namespace in self.RAW_NAMESPACES:
            self._write_raw_json(namespace, data)
            return
        self._write_raw_json(
            namespace,
            {
                "schema_version": self.SCHEMA_VERSION,
                "revision": current_revision + 1,
                "updated_at": utcnow_iso(),
                "data": data,
            },
        )

    def set_json(self, namespace: str, data: Any, expected_revision: int | None = None) -> None:
        with self._state_lock():
            self._write_locked(namespace, data, expected_revision)

    def update_json(
        self,
        namespace: str,
        updater: Callable[[Any], Any],
        default: Any | None = None,
    ) -> Any:
        """Read-modify-write ``namespace`` under the state lock."""
        default_value = {} if default is None else default
        with self._state_lock():
            current = self.get_envelope(namespace, default=default_value)
            updated = updater(current.get("data", default_value))
            self._write_locked(namespace, updated, int(current.get("revision", 0)))
            return updated

    def delete(self, namespace: str) -> None:
        with self._state_lock():
            try:
                self.path_for(namespace).unlink()
            except FileNotFoundError:
                pass
