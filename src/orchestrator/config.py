from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

BackendName = Literal["claude", "codex"]
Platform = Literal["android", "ios", "web", "custom"]
RoleName = Literal["planner", "designer", "tech_lead", "developer", "review", "discovery"]

PLATFORMS: tuple[str, ...] = ("android", "ios", "web", "custom")
CONFIG_FILENAME = "orchestrator.toml"


class ConfigError(ValueError):
    """Raised when the project configuration cannot be loaded."""


@dataclass(slots=True)
class ProjectConfig:
    name: str = "my-project"
    scope: str = ""
    goals: list[str] = field(default_factory=list)
    platform: Platform = "web"


@dataclass(slots=True)
class WorkflowConfig:
    max_tasks_per_cycle: int = 10
    continuous: bool = False
    discovery_enabled: bool = True
    cycle_delay_seconds: float = 5.0
    idle_wait_seconds: float = 30.0


@dataclass(slots=True)
class BackendConfig:
    primary: BackendName = "claude"
    binary: str = ""
    skip_permissions: bool = False
    allowed_tools: list[str] = field(
        default_factory=lambda: ["Read", "Write", "Edit", "Glob", "Grep", "Bash"]
    )


@dataclass(slots=True)
class TimeoutsConfig:
    planner: float = 300.0
    designer: float = 300.0
    tech_lead: float = 300.0
    developer: float = 900.0
    review: float = 180.0
    discovery: float = 300.0

    def for_role(self, role: str) -> float:
        if role not in {item.name for item in fields(self)}:
            raise ConfigError(f"No timeout configured for role: {role}")
        return float(getattr(self, role))


@dataclass(slots=True)
class VerificationConfig:
    enabled: bool = True
    color_tolerance: float = 5.0
    spacing_tolerance: float = 2.0
    min_match_percentage: int = 90
    parse_tailwind: bool = True


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    file: str = "logs/orchestrator.log"


@dataclass(slots=True)
class OrchestratorConfig:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> OrchestratorConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrchestratorConfig:
        try:
            config = cls(
                project=ProjectConfig(**data.get("project", {})),
                workflow=WorkflowConfig(**data.get("workflow", {})),
                backend=BackendConfig(**data.get("backend", {})),
                timeouts=TimeoutsConfig(**data.get("timeouts", {})),
                verification=VerificationConfig(**data.get("verification", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        if config.project.platform not in PLATFORMS:
            raise ConfigError(f"Unsupported platform: {config.project.platform}")
        if config.backend.primary not in ("claude", "codex"):
            raise ConfigError(f"Unsupported backend: {config.backend.primary}")
        if config.workflow.max_tasks_per_cycle < 1:
            raise ConfigError("workflow.max_tasks_per_cycle must be at least 1")
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": {
                "name": self.project.name,
                "scope": self.project.scope,
                "goals": list(self.project.goals),
                "platform": self.project.platform,
            },
            "workflow": {
                "max_tasks_per_cycle": self.workflow.max_tasks_per_cycle,
                "continuous": self.workflow.continuous,
                "discovery_enabled": self.workflow.discovery_enabled,
                "cycle_delay_seconds": self.workflow.cycle_delay_seconds,
                "idle_wait_seconds": self.workflow.idle_wait_seconds,
            },
            "backend": {
                "primary": self.backend.primary,
                "binary": self.backend.binary,
                "skip_permissions": self.backend.skip_permissions,
                "allowed_tools": list(self.backend.allowed_tools),
            },
            "timeouts": {
                "planner": self.timeouts.planner,
                "designer": self.timeouts.designer,
                "tech_lead": self.timeouts.tech_lead,
                "developer": self.timeouts.developer,
                "review": self.timeouts.review,
                "discovery": self.timeouts.discovery,
            },
            "verification": {
                "enabled": self.verification.enabled,
                "color_tolerance": self.verification.color_tolerance,
                "spacing_tolerance": self.verification.spacing_tolerance,
                "min_match_percentage": self.verification.min_match_percentage,
                "parse_tailwind": self.verification.parse_tailwind,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0")
        return rendered + "0" if rendered.endswith(".") else rendered
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: OrchestratorConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["project", "workflow", "backend", "timeouts", "verification", "logging"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> OrchestratorConfig:
    if not path.exists():
        return OrchestratorConfig.default()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    return OrchestratorConfig.from_dict(data)


def save_config(path: Path, config: OrchestratorConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps_toml(config), encoding="utf-8")
