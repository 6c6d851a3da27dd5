"""Configuration schema of the GitHub Actions policy (``actions.yaml``)."""

from __future__ import annotations

from typing import Any, Literal

from loguru import logger
from pydantic import Field, field_validator

from starguard.config.schema import ConfigModel
from starguard.policies.base import DEFAULT_ACTION

type RuleMethod = Literal["allow", "require", "deny"]
type PriorityTier = Literal["critical", "high", "medium", "low"]

PRIORITIES: dict[PriorityTier, int] = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
}
DEFAULT_PRIORITY: PriorityTier = "medium"


class ActionSelector(ConfigModel):
    """Selects actions by name glob and version constraint ("" = any)."""

    name: str = ""
    version: str = ""


class RepoSelector(ConfigModel):
    """Selects repositories by name glob, languages and exclusions."""

    name: str = ""
    languages: list[str] = Field(default_factory=list, alias="language")
    exclude: list[RepoSelector] = Field(default_factory=list)


class Rule(ConfigModel):
    """One allow, require or deny rule."""

    name: str = ""
    method: RuleMethod
    priority: PriorityTier = DEFAULT_PRIORITY
    # None or empty selects every action.
    actions: list[ActionSelector] | None = None
    must_pass: bool = False
    require_all: bool = False

    @field_validator("priority", mode="before")
    @classmethod
    def _known_priority(cls, value: Any) -> Any:
        if isinstance(value, str) and value in PRIORITIES:
            return value
        logger.warning(f"Unknown rule priority {value!r}, using {DEFAULT_PRIORITY}")
        return DEFAULT_PRIORITY

    @property
    def priority_rank(self) -> int:
        return PRIORITIES[self.priority]


class RuleGroup(ConfigModel):
    """Rules applied to the repositories its selectors match."""

    name: str = ""
    # Empty selects every repository.
    repos: list[RepoSelector] = Field(default_factory=list)
    rules: list[Rule] = Field(default_factory=list)


class ActionOrgConfig(ConfigModel):
    """Org-level ``actions.yaml``."""

    action: str = DEFAULT_ACTION
    groups: list[RuleGroup] = Field(default_factory=list)


class ActionRepoConfig(ConfigModel):
    """Org-repo and repo-level ``actions.yaml``: only the action is overridable."""

    action: str | None = None
