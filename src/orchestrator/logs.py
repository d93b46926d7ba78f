"""Process logging setup and the Markdown development log."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

LOGGER_NAME = "orchestrator"
DEVLOG_HEADER = "# Development Log\n\n---\n"
MAX_DEVLOG_BYTES = 100 * 1024

ReviewStatus = Literal["approved", "rejected"]


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for the file handler."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: str | int = logging.INFO, log_file: Path | None = None) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)


@dataclass(slots=True)
class TaskLogEntry:
    task_id: str
    title: str
    platform: str
    priority: str
    summary: str
    review_status: ReviewStatus
    build_status: str = "not_verified"
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    rejection_reason: str | None = None

    def render(self, now: datetime | None = None) -> str:
        stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M")
        outcome = "Completed" if self.review_status == "approved" else "Rejected"
        lines = [
            "",
            f"## [{stamp}] Task {outcome}: {self.title}",
            "",
            f"**Task ID:** {self.task_id}",
            f"**Platform:** {self.platform.upper()}",
            f"**Priority:** {self.priority}",
            "",
            "### Summary",
            self.summary or "(no summary)",
            "",
        ]
        if self.files_created or self.files_modified:
            lines.append("### Files")
            if self.files_created:
                lines.append("**Created:**")
                lines.extend(f"- {path}" for path in self.files_created)
            if self.files_modified:
                lines.append("**Modified:**")
                lines.extend(f"- {path}" for path in self.files_modified)
            lines.append("")
        lines.extend(
            [
                "### Build Verification",
                f"- Status: {self.build_status}",
                "",
                "### Review Status",
                self.review_status.capitalize(),
            ]
        )
        if self.rejection_reason:
            lines.append(f"- Reason: {self.rejection_reason}")
        lines.extend(["", "---", ""])
        return "\n".join(lines)


class DevelopmentLog:
    """Append-only Markdown history of finished tasks, rotated at 100KB."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text(DEVLOG_HEADER, encoding="utf-8")

    def _rotate_if_needed(self) -> None:
        if not self.path.exists() or self.path.stat().st_size < MAX_DEVLOG_BYTES:
            return
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        rotated = self.path.with_name(f"{self.path.stem}-{stamp}{self.path.suffix}")
        self.path.rename(rotated)
        self.path.write_text(
            f"# Development Log\n\nRotated from: {rotated.name}\n\n---\n", encoding="utf-8"
        )

    def append(self, entry: TaskLogEntry) -> None:
        self.initialize()
        self._rotate_if_needed()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(entry.render())

    def read_entries(self, task_id: str | None = None, tail: int | None = None) -> list[str]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        entries = [
            "## " + chunk.strip()
            for chunk in text.split("\n## ")[1:]
            if chunk.strip()
        ]
        if task_id is not None:
            marker = f"**Task ID:** {task_id}"
            entries = [entry for entry in entries if marker in entry]
        if tail is not None and tail >= 0:
            entries = entries[-tail:] if tail else []
        return entries
