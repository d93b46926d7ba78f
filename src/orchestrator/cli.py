from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path

import click

from orchestrator.backends import AgentBackend, ClaudeCodeBackend, CodexBackend, InvocationRegistry
from orchestrator.config import (
    CONFIG_FILENAME,
    PLATFORMS,
    ConfigError,
    OrchestratorConfig,
    load_config,
    save_config,
)
from orchestrator.logs import DevelopmentLog, configure_logging
from orchestrator.pipeline import PipelineController, PipelineSpecialists
from orchestrator.scheduler import CycleScheduler
from orchestrator.specialists import (
    DesignerAgent,
    DeveloperAgent,
    DiscoveryAgent,
    PlannerAgent,
    ReviewerAgent,
    TechLeadAgent,
)
from orchestrator.state import (
    JsonStateStore,
    MessageChannel,
    OrchestratorStateError,
    StatusStore,
    TaskDraft,
    TaskStore,
)
from orchestrator.state.json_store import pid_alive

logger = logging.getLogger(__name__)

PID_FILENAME = "orchestrator.pid"
DEVLOG_PATH = Path("logs") / "log.md"


@dataclass(slots=True)
class Runtime:
    project_root: Path
    config_path: Path
    config: OrchestratorConfig
    state: JsonStateStore
    tasks: TaskStore
    channel: MessageChannel
    status: StatusStore
    devlog: DevelopmentLog
    registry: InvocationRegistry

    @property
    def pid_file(self) -> Path:
        return self.state.root / PID_FILENAME


def _resolve_config_path(project_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = project_root / config_path
    return config_path.resolve()


def _build_backend(config: OrchestratorConfig, registry: InvocationRegistry) -> AgentBackend:
    binary = config.backend.binary or None
    if config.backend.primary == "codex":
        return CodexBackend(
            binary,
            skip_permissions=config.backend.skip_permissions,
            registry=registry,
        )
    return ClaudeCodeBackend(
        binary,
        allowed_tools=config.backend.allowed_tools,
        skip_permissions=config.backend.skip_permissions,
        registry=registry,
    )


def _load_runtime(project_root: Path, config_path: Path) -> Runtime:
    try:
        config = load_config(config_path)
        state = JsonStateStore(project_root)
    except (ConfigError, OrchestratorStateError) as exc:
        raise click.ClickException(str(exc)) from exc
    return Runtime(
        project_root=project_root,
        config_path=config_path,
        config=config,
        state=state,
        tasks=TaskStore(state),
        channel=MessageChannel(state),
        status=StatusStore(state),
        devlog=DevelopmentLog(state.root / DEVLOG_PATH),
        registry=InvocationRegistry(),
    )


def _build_scheduler(runtime: Runtime, backend: AgentBackend) -> CycleScheduler:
    config, state = runtime.config, runtime.state
    specialists = PipelineSpecialists(
        planner=PlannerAgent(backend, config, state),
        designer=DesignerAgent(backend, config, state),
        tech_lead=TechLeadAgent(backend, config, state),
        developer=DeveloperAgent(backend, config, state),
        reviewer=ReviewerAgent(backend, config, state),
    )
    controller = PipelineController(
        runtime.tasks,
        runtime.channel,
        specialists,
        config,
        status=runtime.status,
        devlog=runtime.devlog,
    )
    return CycleScheduler(
        runtime.tasks,
        controller,
        config,
        runtime.status,
        discovery=DiscoveryAgent(backend, config, state),
    )


def _configure_logging(runtime: Runtime) -> None:
    log_file = Path(runtime.config.logging.file)
    if not log_file.is_absolute():
        log_file = runtime.state.root / log_file
    configure_logging(runtime.config.logging.level.upper(), log_file)


def _read_pid(pid_file: Path) -> int | None:
    try:
        return int(pid_file.read_text(encoding="utf-8").strip())
    except (FileNotFoundError, ValueError):
        return None


def _detect_project_name(project_root: Path) -> str:
    package_json = project_root / "package.json"
    if package_json.exists():
        try:
            name = json.loads(package_json.read_text(encoding="utf-8")).get("name")
        except json.JSONDecodeError:
            name = None
        if isinstance(name, str) and name.strip():
            return name.strip()
    pyproject = project_root / "pyproject.toml"
    if pyproject.exists():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError:
            data = {}
        name = data.get("project", {}).get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return project_root.name


async def _serve(runtime: Runtime, scheduler: CycleScheduler) -> None:
    loop = asyncio.get_running_loop()

    def _shutdown() -> None:
        scheduler.request_stop()
        runtime.registry.terminate_all()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _shutdown)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handler for %s unavailable on this platform", signum)
    try:
        await scheduler.run()
    finally:
        runtime.registry.terminate_all()


def _run_scheduler(runtime: Runtime) -> None:
    pid = _read_pid(runtime.pid_file)
    if pid is not None and pid != os.getpid() and pid_alive(pid):
        raise click.ClickException(f"Orchestrator is already running (pid {pid}).")

    backend = _build_backend(runtime.config, runtime.registry)
    problem = asyncio.run(backend.check_ready())
    if problem is not None:
        raise click.ClickException(problem)

    _configure_logging(runtime)
    scheduler = _build_scheduler(runtime, backend)
    runtime.pid_file.write_text(str(os.getpid()), encoding="utf-8")
    try:
        asyncio.run(_serve(runtime, scheduler))
    except OrchestratorStateError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        runtime.pid_file.unlink(missing_ok=True)

    stats = runtime.tasks.stats()
    click.echo(
        f"Queue: {stats.completed} completed, {stats.pending} pending, "
        f"{stats.in_progress} in progress, {stats.rejected} rejected"
    )


@click.group()
def cli() -> None:
    """Multi-agent pipeline orchestrator."""


@cli.command("init")
@click.argument(
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    required=False,
)
@click.option("--platform", type=click.Choice(PLATFORMS), default=None)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing config.")
def init_command(directory: Path, platform: str | None, force: bool) -> None:
    project_root = directory.resolve()
    project_root.mkdir(parents=True, exist_ok=True)
    config_path = project_root / CONFIG_FILENAME
    if config_path.exists() and not force:
        try:
            config = load_config(config_path)
        except ConfigError as exc:
            raise click.ClickException(str(exc)) from exc
    else:
        config = OrchestratorConfig.default()
        config.project.name = _detect_project_name(project_root)
    if platform:
        config.project.platform = platform  # type: ignore[assignment]
    save_config(config_path, config)

    runtime = _load_runtime(project_root, config_path)
    runtime.tasks.initialize()
    runtime.status.initialize()
    runtime.channel.initialize()
    runtime.devlog.initialize()
    (runtime.state.root / "prompts").mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized orchestrator in {project_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Platform: {config.project.platform}")


@cli.command("start")
@click.option("--scope", default=None, help="Development scope description.")
@click.option("--goals", default=None, help="Comma-separated development goals.")
@click.option("--max-tasks", type=click.IntRange(min=1), default=None)
@click.option("--platform", type=click.Choice(PLATFORMS), default=None)
@click.option("--continuous", is_flag=True, default=False)
@click.option("--dry-run", is_flag=True, default=False, help="Show the next batch and exit.")
@click.option("--skip-permissions", is_flag=True, default=False)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def start_command(
    scope: str | None,
    goals: str | None,
    max_tasks: int | None,
    platform: str | None,
    continuous: bool,
    dry_run: bool,
    skip_permissions: bool,
    config_value: str,
) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    config = runtime.config
    if scope is not None:
        config.project.scope = scope
    if goals is not None:
        config.project.goals = [item.strip() for item in goals.split(",") if item.strip()]
    if max_tasks is not None:
        config.workflow.max_tasks_per_cycle = max_tasks
    if platform:
        config.project.platform = platform  # type: ignore[assignment]
    if continuous:
        config.workflow.continuous = True
    if skip_permissions:
        config.backend.skip_permissions = True

    if dry_run:
        backend = _build_backend(runtime.config, runtime.registry)
        batch = _build_scheduler(runtime, backend).select_batch()
        payload = {
            "platform": config.project.platform,
            "max_tasks_per_cycle": config.workflow.max_tasks_per_cycle,
            "continuous": config.workflow.continuous,
            "next_batch": [
                {"id": task.id, "title": task.title, "priority": task.priority}
                for task in batch
            ],
        }
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    save_config(runtime.config_path, config)
    _run_scheduler(runtime)


@cli.command("resume")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def resume_command(config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    if not runtime.tasks.has_tasks_to_process():
        click.echo("Nothing to resume.")
        return
    _run_scheduler(runtime)


@cli.command("stop")
@click.option("--timeout", "timeout_seconds", type=float, default=10.0, show_default=True)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def stop_command(timeout_seconds: float, config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    pid = _read_pid(runtime.pid_file)
    if pid is None or not pid_alive(pid):
        runtime.pid_file.unlink(missing_ok=True)
        runtime.status.mark_stopped()
        click.echo("Orchestrator is not running.")
        return

    os.kill(pid, signal.SIGTERM)
    deadline = time.monotonic() + timeout_seconds
    while pid_alive(pid) and time.monotonic() < deadline:
        time.sleep(0.2)
    if pid_alive(pid):
        os.kill(pid, signal.SIGKILL)
        click.echo(f"Killed orchestrator process {pid}.")
    else:
        click.echo(f"Stopped orchestrator process {pid}.")
    runtime.pid_file.unlink(missing_ok=True)
    runtime.status.mark_stopped()


@cli.command("status")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def status_command(config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    status = runtime.status.read()
    payload = {
        "project": runtime.config.project.name,
        "platform": runtime.config.project.platform,
        "orchestrator": status.get("orchestrator"),
        "agents": status.get("agents", {}),
        "last_cycle": status.get("last_cycle"),
        "queue": runtime.tasks.stats().to_dict(),
        "current": runtime.tasks.current(),
        "tasks": [
            {
                "id": task.id,
                "title": task.title,
                "priority": task.priority,
                "status": task.status,
                "rejection_reason": task.rejection_reason,
            }
            for task in runtime.tasks.active()
        ],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("logs")
@click.option("--tail", type=click.IntRange(min=0), default=10, show_default=True)
@click.option("--task", "task_id", default=None, help="Only entries for this task id.")
@click.option("--follow", is_flag=True, default=False)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def logs_command(tail: int, task_id: str | None, follow: bool, config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    entries = runtime.devlog.read_entries(task_id=task_id, tail=tail)
    if not entries and not follow:
        click.echo("No log entries.")
        return
    for entry in entries:
        click.echo(entry)
        click.echo("")
    if not follow:
        return

    path = runtime.devlog.path
    offset = path.stat().st_size if path.exists() else 0
    try:
        while True:
            time.sleep(1.0)
            if not path.exists():
                continue
            size = path.stat().st_size
            if size < offset:
                offset = 0
            if size > offset:
                with path.open("r", encoding="utf-8") as handle:
                    handle.seek(offset)
                    click.echo(handle.read(), nl=False)
                offset = size
    except KeyboardInterrupt:
        return


@cli.group("task")
def task_group() -> None:
    """Manage the task queue."""


@task_group.command("add")
@click.argument("title")
@click.option("--description", default="")
@click.option(
    "--priority", type=click.Choice(["high", "medium", "low"]), default="medium", show_default=True
)
@click.option("--type", "task_type", default="feature_implementation", show_default=True)
@click.option("--criteria", multiple=True, help="Acceptance criterion; repeatable.")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def task_add_command(
    title: str,
    description: str,
    priority: str,
    task_type: str,
    criteria: tuple[str, ...],
    config_value: str,
) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    task = runtime.tasks.add(
        TaskDraft(
            title=title,
            description=description,
            type=task_type,
            priority=priority,  # type: ignore[arg-type]
            acceptance_criteria=list(criteria) or None,
        )
    )
    click.echo(f"Added {task.id}: {task.title} ({task.priority})")


@task_group.command("reset")
@click.argument("task_id")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def task_reset_command(task_id: str, config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    try:
        task = runtime.tasks.reset(task_id)
    except OrchestratorStateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Reset {task.id} to {task.status}")


@task_group.command("list")
@click.option("--all", "include_completed", is_flag=True, default=False)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def task_list_command(include_completed: bool, config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    tasks = runtime.tasks.active()
    if include_completed:
        tasks.extend(runtime.tasks.completed())
    if not tasks:
        click.echo("No tasks.")
        return
    for task in tasks:
        click.echo(f"{task.id} {task.status:<15} {task.priority:<6} {task.title}")
