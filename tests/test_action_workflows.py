import pytest
from loguru import logger

from starguard.policies.action.workflows import (
    MAX_WORKFLOWS,
    extract_action_uses,
    list_workflows,
    parse_workflow,
)

STEPS_WORKFLOW = """\
name: Build
on:
  push:
    branches: [main]
  schedule:
    - cron: "0 3 * * *"
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - uses: ./local
      - uses: docker://alpine:3.20
      - uses: github/codeql-action/init@v3
      - uses: actions/setup-go@v5.0.1
      - run: go test ./...
"""


def test_bare_on_key_still_yields_trigger_events() -> None:
    workflow = parse_workflow("build.yaml", STEPS_WORKFLOW)
    assert workflow is not None
    assert workflow.name == "Build"
    assert workflow.trigger_events == frozenset({"push", "schedule"})


def test_unrecognized_uses_are_skipped_with_a_warning() -> None:
    workflow = parse_workflow("build.yaml", STEPS_WORKFLOW)
    warnings: list[str] = []
    sink = logger.add(warnings.append, level="WARNING", format="{message}")
    try:
        uses = extract_action_uses(workflow)
    finally:
        logger.remove(sink)

    assert [(use.name, use.version_ref) for use in uses] == [
        ("actions/checkout", "v4"),
        ("actions/setup-go", "v5.0.1"),
    ]
    assert uses[0].workflow_name == "Build"
    assert len(warnings) == 3
    for skipped in ("./local", "docker://alpine:3.20", "github/codeql-action/init@v3"):
        assert any(repr(skipped) in message for message in warnings)


def test_unnamed_workflow_falls_back_to_filename() -> None:
    workflow = parse_workflow("lint.yml", "on: pull_request\njobs: {}\n")
    assert workflow is not None
    assert workflow.name == "lint.yml"
    assert workflow.trigger_events == frozenset({"pull_request"})
    assert workflow.uses == ()


@pytest.mark.parametrize("text", ["- just\n- a list\n", "jobs: [unclosed\n"])
def test_unusable_workflow_text_is_ignored(text: str) -> None:
    assert parse_workflow("broken.yaml", text) is None


@pytest.mark.asyncio
async def test_missing_workflow_directory_yields_nothing(github) -> None:
    github.add_repo("acme", "api")
    assert await list_workflows(github, "acme", "api") == []
    assert github.called("get_file_text") == []


@pytest.mark.asyncio
async def test_workflow_listing_is_capped(github) -> None:
    for i in range(MAX_WORKFLOWS + 5):
        github.add_workflow("acme", "api", f"wf-{i:03d}.yaml", f"name: wf {i}\non: push\n")

    workflows = await list_workflows(github, "acme", "api")

    assert MAX_WORKFLOWS == 50
    assert len(workflows) == MAX_WORKFLOWS
    assert workflows[-1].filename == "wf-049.yaml"
    assert len(github.called("get_file_text")) == MAX_WORKFLOWS


@pytest.mark.asyncio
async def test_nested_directories_are_not_workflows(github) -> None:
    github.add_workflow("acme", "api", "ci.yaml", "on: push\n")
    github.add_workflow("acme", "api", "templates/base.yaml", "on: push\n")

    workflows = await list_workflows(github, "acme", "api", max_workflows=10)

    assert [w.filename for w in workflows] == ["ci.yaml"]
