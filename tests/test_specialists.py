import asyncio
import json
from pathlib import Path

from orchestrator.backends.base import AgentBackend, AgentResult
from orchestrator.config import OrchestratorConfig
from orchestrator.design import DesignTokenSet
from orchestrator.specialists import (
    DesignerAgent,
    DeveloperAgent,
    DiscoveryAgent,
    PlannerAgent,
    ReviewerAgent,
    TechLeadAgent,
    parse_review_output,
)
from orchestrator.state import JsonStateStore, Task
from orchestrator.state.messages import (
    CompletionReport,
    DesignSpecification,
    PlanningDocument,
    TaskAssignment,
)


class RecordingBackend(AgentBackend):
    def __init__(self, stdout: str = "done") -> None:
        self.stdout = stdout
        self.calls: list[tuple[str, str, Path, float]] = []

    async def invoke(
        self,
        role: str,
        prompt: str,
        *,
        working_directory: Path,
        timeout_seconds: float,
    ) -> AgentResult:
        self.calls.append((role, prompt, working_directory, timeout_seconds))
        return AgentResult(succeeded=True, stdout=self.stdout, exit_code=0)


def _task() -> Task:
    return Task(
        id="task-007",
        title="Checkout page",
        description="Collect shipping and payment details",
        priority="high",
        acceptance_criteria=["Validates card number"],
    )


def _setup(tmp_path: Path) -> tuple[RecordingBackend, OrchestratorConfig, JsonStateStore]:
    config = OrchestratorConfig.default()
    config.project.name = "shop"
    config.project.scope = "E-commerce storefront"
    config.project.goals = ["checkout"]
    return RecordingBackend(), config, JsonStateStore(tmp_path)


def _required_output(prompt: str) -> dict:
    block = prompt.split("## REQUIRED OUTPUT", 1)[1]
    start = block.index("{")
    document, _ = json.JSONDecoder().raw_decode(block[start:])
    return document


def test_planner_prompt_names_mailbox_and_message_shape(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    prompt = PlannerAgent(backend, config, state).build_prompt(_task())

    assert "# Planner Role" in prompt
    assert "- ID: task-007" in prompt
    assert "  - Validates card number" in prompt
    assert "- Scope: E-commerce storefront" in prompt
    assert str(state.path_for("to-designer")) in prompt
    message = _required_output(prompt)["messages"][0]
    assert message["type"] == "planning_document"
    assert message["task_id"] == "task-007"


def test_designer_prompt_includes_plan_and_platform_defaults(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    config.project.platform = "ios"
    plan = PlanningDocument(task_id="task-007", product_vision="Fast checkout")

    prompt = DesignerAgent(backend, config, state).build_prompt(_task(), plan)

    assert "Fast checkout" in prompt
    assert "Human Interface Guidelines" in prompt
    assert str(state.path_for("to-tech-lead")) in prompt
    message = _required_output(prompt)["messages"][0]
    assert message["type"] == "design_specification"
    assert message["design_tokens"]["colors"]["primary"] == "#007AFF"


def test_tech_lead_and_developer_prompts_chain_messages(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    plan = PlanningDocument(task_id="task-007")
    design = DesignSpecification(
        task_id="task-007", design_tokens=DesignTokenSet(colors={"primary": "#3B82F6"})
    )

    lead_prompt = TechLeadAgent(backend, config, state).build_prompt(_task(), plan, design)
    assert "## Design Specification" in lead_prompt
    assert str(state.path_for("to-developer")) in lead_prompt
    assert _required_output(lead_prompt)["messages"][0]["type"] == "task_assignment"

    assignment = TaskAssignment(
        task_id="task-007",
        title="Build checkout",
        instructions="Create the form",
        files_to_create=["src/Checkout.tsx"],
    )
    dev_prompt = DeveloperAgent(backend, config, state).build_prompt(
        _task(), assignment, design.design_tokens
    )
    assert "## Assignment: Build checkout" in dev_prompt
    assert "Files to create: src/Checkout.tsx" in dev_prompt
    assert '"primary": "#3B82F6"' in dev_prompt
    assert str(state.path_for("to-team-lead")) in dev_prompt
    assert _required_output(dev_prompt)["messages"][0]["type"] == "completion_report"

    bare_prompt = DeveloperAgent(backend, config, state).build_prompt(_task(), assignment)
    assert "## Design Tokens" not in bare_prompt


def test_role_template_override_from_prompts_directory(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    prompts = state.root / "prompts"
    prompts.mkdir(parents=True)
    (prompts / "tech-lead.md").write_text("# House Tech Lead\nUse hexagonal layout.\n")

    agent = TechLeadAgent(backend, config, state)

    assert agent.role_template.startswith("# House Tech Lead")
    assert PlannerAgent(backend, config, state).role_template.startswith("# Planner Role")


def test_run_uses_role_timeout_and_project_root(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    config.timeouts.developer = 42.0
    agent = DeveloperAgent(backend, config, state)

    response = asyncio.run(agent.run("implement"))

    assert response.succeeded is True
    assert response.content == "done"
    [(role, prompt, cwd, timeout)] = backend.calls
    assert (role, prompt, timeout) == ("developer", "implement", 42.0)
    assert cwd == tmp_path.resolve()


def test_reviewer_prompt_embeds_completion_report(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    report = CompletionReport(task_id="task-007", summary="Checkout form added")

    prompt = ReviewerAgent(backend, config, state).build_prompt(_task(), report)

    assert "Checkout form added" in prompt
    assert "APPROVE:" in prompt
    assert "REJECT:" in prompt


def test_parse_review_output() -> None:
    assert parse_review_output("APPROVE: Task completed successfully").approved is True
    assert parse_review_output("Looks good, I approve.").approved is True

    rejected = parse_review_output("Checked files.\nREJECT: Missing error states\n")
    assert rejected.approved is False
    assert rejected.reason == "Missing error states"

    lowercase = parse_review_output("reject: no tests")
    assert lowercase.reason == "no tests"

    silent = parse_review_output("")
    assert silent.approved is False
    assert silent.reason == "Review failed"


def test_discovery_collects_valid_drafts_and_clears_inbox(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    agent = DiscoveryAgent(backend, config, state)
    inbox = state.path_for("discovery")
    inbox.parent.mkdir(parents=True, exist_ok=True)
    inbox.write_text(
        json.dumps(
            {
                "tasks": [
                    {"title": "Order history", "priority": "high"},
                    {"title": "", "priority": "low"},
                    {"title": "Wishlist", "priority": "urgent"},
                    "not an object",
                    {"title": "Search", "acceptanceCriteria": ["Finds by name"]},
                ]
            }
        ),
        encoding="utf-8",
    )

    drafts = agent.collect_drafts()

    assert [draft.title for draft in drafts] == ["Order history", "Search"]
    assert drafts[1].acceptance_criteria == ["Finds by name"]
    assert not inbox.exists()
    assert agent.collect_drafts() == []


def test_discovery_prompt_lists_existing_tasks(tmp_path: Path) -> None:
    backend, config, state = _setup(tmp_path)
    existing = [_task()]

    prompt = DiscoveryAgent(backend, config, state).build_prompt(existing)

    assert "- task-007: Checkout page (pending)" in prompt
    assert str(state.path_for("discovery")) in prompt
    assert "- src/" in prompt
    assert DiscoveryAgent(backend, config, state).build_prompt([]).count("No existing tasks.") == 1
