import json
from pathlib import Path

from click.testing import CliRunner

from orchestrator.backends.base import AgentBackend, AgentResult
from orchestrator.cli import cli
from orchestrator.config import load_config, save_config

OUTPUT_MARKER = "You MUST write the following JSON to: "


class FakeBackend(AgentBackend):
    """Writes the example document each prompt asks for, then approves the review."""

    def __init__(self) -> None:
        self.roles: list[str] = []

    async def invoke(
        self,
        role: str,
        prompt: str,
        *,
        working_directory: Path,
        timeout_seconds: float,
    ) -> AgentResult:
        _ = working_directory, timeout_seconds
        self.roles.append(role)
        if role == "review":
            return AgentResult(succeeded=True, stdout="APPROVE: looks good", exit_code=0)
        if OUTPUT_MARKER in prompt:
            tail = prompt.split(OUTPUT_MARKER, 1)[1]
            path_line, body = tail.split("\n", 1)
            document, _ = json.JSONDecoder().raw_decode(body[body.index("{") :])
            for message in document["messages"]:
                if message["type"] == "completion_report":
                    message["build_result"]["status"] = "success"
            target = Path(path_line.strip())
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(document), encoding="utf-8")
        return AgentResult(succeeded=True, stdout="done", exit_code=0)


def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr("orchestrator.cli.configure_logging", lambda *args, **kwargs: None)


def test_init_creates_config_and_state(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "package.json").write_text('{"name": "storefront"}', encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    result = runner.invoke(cli, ["init", "--platform", "ios"])

    assert result.exit_code == 0, result.output
    config = load_config(tmp_path / "orchestrator.toml")
    assert config.project.name == "storefront"
    assert config.project.platform == "ios"
    root = tmp_path / ".orchestrator"
    assert (root / "state" / "queue.json").exists()
    assert (root / "state" / "status.json").exists()
    assert (root / "messages" / "to-team-lead.json").exists()
    assert (root / "logs" / "log.md").read_text(encoding="utf-8").startswith("# Development Log")
    assert (root / "prompts").is_dir()

    again = runner.invoke(cli, ["init"])
    assert again.exit_code == 0
    assert load_config(tmp_path / "orchestrator.toml").project.platform == "ios"


def test_task_commands_manage_queue(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0

    added = runner.invoke(
        cli, ["task", "add", "Login screen", "--priority", "high", "--criteria", "Email login"]
    )
    assert added.exit_code == 0
    assert "Added task-001: Login screen (high)" in added.output
    assert runner.invoke(cli, ["task", "add", "Footer", "--priority", "low"]).exit_code == 0

    listed = runner.invoke(cli, ["task", "list"])
    assert "task-001" in listed.output
    assert "task-002" in listed.output

    status = runner.invoke(cli, ["status"])
    assert status.exit_code == 0
    payload = json.loads(status.output)
    assert payload["queue"]["pending"] == 2
    assert payload["current"] is None
    assert [task["id"] for task in payload["tasks"]] == ["task-001", "task-002"]

    dry_run = runner.invoke(cli, ["start", "--dry-run", "--max-tasks", "1"])
    assert dry_run.exit_code == 0
    batch = json.loads(dry_run.output)["next_batch"]
    assert [task["id"] for task in batch] == ["task-001"]

    missing = runner.invoke(cli, ["task", "reset", "task-404"])
    assert missing.exit_code != 0
    assert "task-404" in missing.output


def test_start_runs_pipeline_and_records_history(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _quiet_logging(monkeypatch)
    backend = FakeBackend()
    monkeypatch.setattr("orchestrator.cli._build_backend", lambda config, registry: backend)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    assert runner.invoke(cli, ["task", "add", "Login screen"]).exit_code == 0

    started = runner.invoke(cli, ["start", "--scope", "Auth", "--goals", "login, signup"])

    assert started.exit_code == 0, started.output
    assert "Queue: 1 completed, 0 pending" in started.output
    assert backend.roles == ["planner", "designer", "tech_lead", "developer", "review"]
    assert not (tmp_path / ".orchestrator" / "orchestrator.pid").exists()
    assert load_config(tmp_path / "orchestrator.toml").project.goals == ["login", "signup"]

    status = json.loads(runner.invoke(cli, ["status"]).output)
    assert status["orchestrator"]["running"] is False
    assert status["last_cycle"]["completed"] == 1
    assert status["queue"]["completed"] == 1

    logs = runner.invoke(cli, ["logs", "--task", "task-001"])
    assert logs.exit_code == 0
    assert "Task Completed: Login screen" in logs.output

    resumed = runner.invoke(cli, ["resume"])
    assert "Nothing to resume." in resumed.output


def test_logs_and_stop_without_history(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0

    logs = runner.invoke(cli, ["logs"])
    assert logs.exit_code == 0
    assert "No log entries." in logs.output

    stopped = runner.invoke(cli, ["stop"])
    assert stopped.exit_code == 0
    assert "Orchestrator is not running." in stopped.output


def test_invalid_config_is_reported(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "orchestrator.toml").write_text('[backend]\nprimary = "gpt"\n', encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(cli, ["status"])

    assert result.exit_code != 0
    assert "Unsupported backend" in result.output


def test_start_refuses_when_backend_cli_is_missing(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _quiet_logging(monkeypatch)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    assert runner.invoke(cli, ["task", "add", "Login screen"]).exit_code == 0
    config = load_config(tmp_path / "orchestrator.toml")
    config.backend.binary = str(tmp_path / "no-such-claude")
    save_config(tmp_path / "orchestrator.toml", config)

    started = runner.invoke(cli, ["start"])

    assert started.exit_code != 0
    assert "claude CLI is not installed or not in PATH" in started.output
    assert not (tmp_path / ".orchestrator" / "orchestrator.pid").exists()
    status = json.loads(runner.invoke(cli, ["status"]).output)
    assert status["queue"]["pending"] == 1
    assert status["orchestrator"]["running"] is False
