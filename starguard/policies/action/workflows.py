"""Workflow discovery and action-use extraction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import yaml
from loguru import logger

from starguard.core.ports import RepositoryIntrospectionPort

WORKFLOW_DIR = ".github/workflows"
MAX_WORKFLOWS = 50
ACTION_USE_PATTERN = re.compile(r"^([a-zA-Z0-9_\-.]+/[a-zA-Z0-9_\-.]+)@([a-zA-Z0-9\-.]+)$")


@dataclass(frozen=True, slots=True, kw_only=True)
class Workflow:
    """A parsed workflow file: display name, triggers and step ``uses:`` values."""

    filename: str
    name: str
    trigger_events: frozenset[str]
    uses: tuple[str, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class ActionUse:
    """One ``owner/repo@ref`` step in a workflow."""

    name: str
    version_ref: str
    workflow_filename: str
    workflow_name: str
    trigger_events: frozenset[str]


def _trigger_events(on: Any) -> frozenset[str]:
    if isinstance(on, str):
        return frozenset({on})
    if isinstance(on, list):
        return frozenset(str(event) for event in on)
    if isinstance(on, dict):
        return frozenset(str(event) for event in on)
    return frozenset()


def parse_workflow(filename: str, text: str) -> Workflow | None:
    """Parse workflow YAML; None when it is not a usable workflow mapping."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning(f"Errors while parsing workflow {filename}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Workflow {filename} is not a mapping, skipping")
        return None

    # YAML 1.1 reads a bare `on:` key as boolean true.
    on = data.get("on", data.get(True))
    uses: list[str] = []
    jobs = data.get("jobs") or {}
    if isinstance(jobs, dict):
        for job in jobs.values():
            steps = job.get("steps") if isinstance(job, dict) else None
            for step in steps or []:
                if isinstance(step, dict) and "uses" in step:
                    uses.append(str(step["uses"]))
    return Workflow(
        filename=filename,
        name=str(data.get("name") or filename),
        trigger_events=_trigger_events(on),
        uses=tuple(uses),
    )


def extract_action_uses(workflow: Workflow) -> list[ActionUse]:
    """Action uses of a workflow; malformed ``uses:`` values are skipped."""
    found: list[ActionUse] = []
    for value in workflow.uses:
        matched = ACTION_USE_PATTERN.match(value)
        if matched is None:
            logger.warning(f"Skipping unrecognized action use {value!r} in {workflow.filename}")
            continue
        found.append(
            ActionUse(
                name=matched.group(1),
                version_ref=matched.group(2),
                workflow_filename=workflow.filename,
                workflow_name=workflow.name,
                trigger_events=workflow.trigger_events,
            )
        )
    return found


async def list_workflows(
    client: RepositoryIntrospectionPort,
    owner: str,
    repo: str,
    *,
    max_workflows: int = MAX_WORKFLOWS,
) -> list[Workflow]:
    """Fetch and parse up to ``max_workflows`` files of the workflow directory.

    A missing directory yields no workflows; fetch errors propagate.
    """
    entries = [e for e in await client.list_directory(owner, repo, WORKFLOW_DIR) if e.type == "file"]
    workflows: list[Workflow] = []
    for entry in entries[:max_workflows]:
        text = await client.get_file_text(owner, repo, entry.path)
        if text is None:
            logger.error(f"Workflow {owner}/{repo}/{entry.path} vanished while listing, skipping")
            continue
        workflow = parse_workflow(entry.name, text)
        if workflow is not None:
            workflows.append(workflow)
    return workflows
