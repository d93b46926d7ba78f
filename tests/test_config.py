import tomllib
from pathlib import Path

import pytest

from orchestrator import __version__
from orchestrator.config import (
    ConfigError,
    OrchestratorConfig,
    dumps_toml,
    load_config,
    save_config,
)


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "orchestrator.toml"
    config = OrchestratorConfig.default()
    config.project.name = "shop-app"
    config.project.scope = "Checkout flow"
    config.project.goals = ["cart", "payments"]
    config.project.platform = "ios"
    config.backend.primary = "codex"
    config.backend.skip_permissions = True
    config.workflow.max_tasks_per_cycle = 3
    config.workflow.continuous = True
    config.timeouts.developer = 1200.0
    config.verification.color_tolerance = 7.5
    config.verification.min_match_percentage = 80

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.project.name == "shop-app"
    assert loaded.project.scope == "Checkout flow"
    assert loaded.project.goals == ["cart", "payments"]
    assert loaded.project.platform == "ios"
    assert loaded.backend.primary == "codex"
    assert loaded.backend.skip_permissions is True
    assert loaded.workflow.max_tasks_per_cycle == 3
    assert loaded.workflow.continuous is True
    assert loaded.timeouts.developer == 1200.0
    assert loaded.verification.color_tolerance == 7.5
    assert loaded.verification.min_match_percentage == 80
    assert loaded.logging.level == "INFO"


def test_toml_dump_contains_every_section() -> None:
    rendered = dumps_toml(OrchestratorConfig.default())

    for section in ("project", "workflow", "backend", "timeouts", "verification", "logging"):
        assert f"[{section}]" in rendered
    assert "max_tasks_per_cycle = 10" in rendered
    assert "developer = 900.0" in rendered
    assert 'allowed_tools = ["Read", "Write", "Edit", "Glob", "Grep", "Bash"]' in rendered
    assert tomllib.loads(rendered)["timeouts"]["review"] == 180.0


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml")

    assert loaded == OrchestratorConfig.default()


def test_invalid_config_values_raise_config_error(tmp_path: Path) -> None:
    config_path = tmp_path / "orchestrator.toml"

    config_path.write_text('[project]\nplatform = "desktop"\n', encoding="utf-8")
    with pytest.raises(ConfigError, match="platform"):
        load_config(config_path)

    config_path.write_text("[workflow]\nmax_tasks_per_cycle = 0\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="max_tasks_per_cycle"):
        load_config(config_path)

    config_path.write_text("[workflow]\nunknown_key = 1\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(config_path)

    config_path.write_text("[project\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Could not parse"):
        load_config(config_path)


def test_timeouts_resolve_by_role() -> None:
    timeouts = OrchestratorConfig.default().timeouts

    assert timeouts.for_role("developer") == 900.0
    assert timeouts.for_role("review") == 180.0
    with pytest.raises(ConfigError):
        timeouts.for_role("janitor")


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
