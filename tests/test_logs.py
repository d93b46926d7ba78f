import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from orchestrator.logs import (
    DEVLOG_HEADER,
    LOGGER_NAME,
    DevelopmentLog,
    TaskLogEntry,
    configure_logging,
)


def _entry(task_id: str = "task-001", **overrides) -> TaskLogEntry:
    values = {
        "task_id": task_id,
        "title": "Login screen",
        "platform": "web",
        "priority": "high",
        "summary": "Added the login form",
        "review_status": "approved",
        "build_status": "success",
        "files_created": ["src/Login.tsx"],
    }
    values.update(overrides)
    return TaskLogEntry(**values)


def test_entry_render_layout() -> None:
    rendered = _entry().render(now=datetime(2026, 3, 4, 5, 6, tzinfo=UTC))

    assert "## [2026-03-04 05:06] Task Completed: Login screen" in rendered
    assert "**Task ID:** task-001" in rendered
    assert "**Platform:** WEB" in rendered
    assert "**Created:**\n- src/Login.tsx" in rendered
    assert "**Modified:**" not in rendered
    assert "### Review Status\nApproved" in rendered
    assert "- Reason:" not in rendered
    assert rendered.rstrip().endswith("---")


def test_rejected_entry_includes_reason() -> None:
    rendered = _entry(
        review_status="rejected", build_status="failed", rejection_reason="Build broke"
    ).render()

    assert "Task Rejected: Login screen" in rendered
    assert "- Status: failed" in rendered
    assert "Rejected\n- Reason: Build broke" in rendered


def test_development_log_filters_and_tails(tmp_path: Path) -> None:
    devlog = DevelopmentLog(tmp_path / "logs" / "log.md")
    devlog.initialize()
    assert devlog.path.read_text(encoding="utf-8") == DEVLOG_HEADER
    assert devlog.read_entries() == []

    for number in range(1, 4):
        devlog.append(_entry(f"task-00{number}", title=f"Task {number}"))

    entries = devlog.read_entries()
    assert len(entries) == 3
    assert all(entry.startswith("## [") for entry in entries)
    assert "Task 3" in devlog.read_entries(tail=1)[0]
    assert devlog.read_entries(tail=0) == []
    [only] = devlog.read_entries(task_id="task-002")
    assert "Task 2" in only


def test_development_log_rotates_when_large(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("orchestrator.logs.MAX_DEVLOG_BYTES", 200)
    devlog = DevelopmentLog(tmp_path / "log.md")
    devlog.append(_entry("task-001", summary="x" * 300))

    devlog.append(_entry("task-002"))

    rotated = [path for path in tmp_path.iterdir() if path.name.startswith("log-")]
    assert len(rotated) == 1
    assert "task-001" in rotated[0].read_text(encoding="utf-8")
    current = devlog.path.read_text(encoding="utf-8")
    assert f"Rotated from: {rotated[0].name}" in current
    assert [entry for entry in devlog.read_entries() if "task-001" in entry] == []
    assert len(devlog.read_entries(task_id="task-002")) == 1


def test_configure_logging_writes_json_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "orchestrator.log"
    logger = logging.getLogger(LOGGER_NAME)
    try:
        configure_logging("DEBUG", log_file)
        logging.getLogger(f"{LOGGER_NAME}.pipeline").debug("Processing %s", "task-001")
        for handler in logger.handlers:
            handler.flush()

        [line] = log_file.read_text(encoding="utf-8").splitlines()
        record = json.loads(line)
        assert record["level"] == "DEBUG"
        assert record["logger"] == "orchestrator.pipeline"
        assert record["message"] == "Processing task-001"
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
