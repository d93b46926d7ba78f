import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from orchestrator.state import CycleStats, JsonStateStore, OrchestratorStateError, StatusStore


def test_state_store_roundtrip(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    payload = {"task_id": "task-001", "tokens": {"colors": {"primary": "#3B82F6"}}}
    store.set_json("design_tokens", payload)

    assert store.get_json("design_tokens") == payload
    assert store.path_for("design_tokens") == tmp_path.resolve() / ".orchestrator" / "state" / (
        "design_tokens.json"
    )
    assert not store.lock_file.exists()


def test_state_schema_wraps_legacy_payload(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    local_path = tmp_path / ".orchestrator" / "state" / "status.json"
    local_path.parent.mkdir(parents=True, exist_ok=True)
    local_path.write_text(json.dumps({"legacy": True}), encoding="utf-8")

    assert store.get_envelope("status")["revision"] == 1
    assert store.get_json("status") == {"legacy": True}

    store.set_json("status", {"legacy": False})
    on_disk = json.loads(local_path.read_text(encoding="utf-8"))
    assert on_disk["schema_version"] == JsonStateStore.SCHEMA_VERSION
    assert on_disk["revision"] == 2
    assert on_disk["data"] == {"legacy": False}


def test_mailbox_namespaces_are_written_without_envelope(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    store.set_json("to-designer", {"messages": [], "last_read": None})

    on_disk = json.loads(store.path_for("to-designer").read_text(encoding="utf-8"))
    assert on_disk == {"messages": [], "last_read": None}


def test_update_json_increments_revision(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    store.set_json("verification", {"count": 1})
    first_revision = store.get_envelope("verification")["revision"]

    store.update_json(
        "verification", lambda payload: {"count": payload["count"] + 1}, default={"count": 0}
    )
    second_revision = store.get_envelope("verification")["revision"]

    assert store.get_json("verification")["count"] == 2
    assert second_revision == first_revision + 1


def test_stale_expected_revision_is_rejected(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    store.set_json("verification", {"count": 1})
    stale = store.get_envelope("verification")["revision"]
    store.set_json("verification", {"count": 2})

    with pytest.raises(OrchestratorStateError, match="Concurrent"):
        store.set_json("verification", {"count": 3}, expected_revision=stale)
    assert store.get_json("verification") == {"count": 2}


def test_corrupt_state_file_raises(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    path = store.path_for("queue")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(OrchestratorStateError, match="Corrupt"):
        store.get_json("queue")


def test_corrupt_mailbox_is_overwritten(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    path = store.path_for("to-team-lead")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('{"messages": [', encoding="utf-8")

    store.set_json("to-team-lead", {"messages": [], "last_read": None})

    assert store.get_json("to-team-lead") == {"messages": [], "last_read": None}


def test_unknown_namespace_is_rejected(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)

    with pytest.raises(OrchestratorStateError, match="Unsupported namespace"):
        store.set_json("context", {})


def test_held_lock_times_out(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    store.lock_file.write_text(str(os.getpid()), encoding="utf-8")

    with pytest.raises(OrchestratorStateError, match="state lock"):
        with store._state_lock(timeout_seconds=0.05):
            pass


def test_lock_left_by_dead_process_is_reclaimed(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    finished = subprocess.run(
        [sys.executable, "-c", "import os; print(os.getpid())"],
        capture_output=True,
        text=True,
        check=True,
    )
    store.lock_file.write_text(finished.stdout.strip(), encoding="utf-8")

    with store._state_lock(timeout_seconds=0.05):
        assert store.lock_file.read_text(encoding="utf-8") == str(os.getpid())
    assert not store.lock_file.exists()


def test_delete_removes_namespace_file(tmp_path: Path) -> None:
    store = JsonStateStore(tmp_path)
    store.set_json("discovery", {"tasks": []})
    store.delete("discovery")
    store.delete("discovery")

    assert not store.path_for("discovery").exists()
    assert store.get_json("discovery", default={"tasks": []}) == {"tasks": []}


def test_status_store_tracks_run_agents_and_cycles(tmp_path: Path) -> None:
    status = StatusStore(JsonStateStore(tmp_path))
    status.initialize()
    assert status.is_running() is False

    status.mark_running(pid=4242)
    status.set_agent("planner", "running", "task-001")
    status.record_cycle(CycleStats(number=1, completed=2, failed=1, remaining=0))

    snapshot = status.read()
    assert snapshot["orchestrator"]["running"] is True
    assert snapshot["orchestrator"]["pid"] == 4242
    assert snapshot["agents"]["planner"]["status"] == "running"
    assert snapshot["agents"]["planner"]["task_id"] == "task-001"
    assert status.last_cycle() == CycleStats(number=1, completed=2, failed=1, remaining=0)

    status.mark_stopped()
    assert status.is_running() is False
    assert status.read()["orchestrator"]["stopped_at"] is not None
