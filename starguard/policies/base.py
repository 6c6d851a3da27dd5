"""Common policy contract and layered-config helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Protocol

from pydantic import BaseModel, Field

from starguard.config.enablement import is_enabled
from starguard.config.loader import ConfigFetcher
from starguard.config.schema import ConfigModel, OrgOptConfig, RepoOptConfig
from starguard.core.ports import GitHubPort

type PolicyAction = Literal["log", "issue", "fix"]

ACTIONS: tuple[PolicyAction, ...] = ("log", "issue", "fix")
DEFAULT_ACTION: PolicyAction = "log"
PASS_TEXT = "OK"
DISABLED_TEXT = "Disabled"


@dataclass(frozen=True, slots=True, kw_only=True)
class PolicyResult:
    """Outcome of one policy check on one repository."""

    enabled: bool
    passed: bool
    notify_text: str
    details: dict[str, Any] = field(default_factory=dict)


class Policy(Protocol):
    """Capabilities every policy offers to the enforcer."""

    name: str

    async def is_enabled(self, client: GitHubPort, owner: str, repo: str) -> bool:
        """Whether the repository opted into this policy."""

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        """Evaluate the repository."""

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        """Bring the repository into compliance where supported."""

    async def get_action(self, client: GitHubPort, owner: str, repo: str) -> str:
        """Configured action: log, issue or fix."""


class OrgPolicyConfig(ConfigModel):
    """Org-level fields every opt-aware policy file has."""

    opt_config: OrgOptConfig = Field(default_factory=OrgOptConfig)
    action: str = DEFAULT_ACTION


class RepoPolicyConfig(ConfigModel):
    """Org-repo and repo-level policy file; ``None`` means not overridden."""

    opt_config: RepoOptConfig = Field(default_factory=RepoOptConfig)
    action: str | None = None


def apply_overrides[M: BaseModel](merged: M, *overrides: BaseModel) -> M:
    """Overlay each override's non-None fields that exist on ``merged``."""
    target_fields = type(merged).model_fields
    for override in overrides:
        updates = {
            name: getattr(override, name)
            for name in type(override).model_fields
            if name != "opt_config" and name in target_fields and getattr(override, name) is not None
        }
        if updates:
            merged = merged.model_copy(update=updates)
    return merged


class LayeredPolicy:
    """Base for policies configured by one file at org, org-repo and repo level.

    Org-repo files always override the org file; repo files override it only
    while the org leaves ``disableRepoOverride`` unset.
    """

    name: ClassVar[str]
    config_file: ClassVar[str]
    org_model: ClassVar[type[OrgPolicyConfig]] = OrgPolicyConfig
    repo_model: ClassVar[type[RepoPolicyConfig]] = RepoPolicyConfig

    def __init__(self, configs: ConfigFetcher):
        self.configs = configs

    async def load(
        self, client: GitHubPort, owner: str, repo: str
    ) -> tuple[OrgPolicyConfig, RepoPolicyConfig, RepoPolicyConfig]:
        return await self.configs.fetch_levels(
            client, owner, repo, self.config_file, self.org_model, self.repo_model
        )

    async def merged_config(self, client: GitHubPort, owner: str, repo: str) -> OrgPolicyConfig:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        return self.merge(org, org_repo, repo_cfg)

    @staticmethod
    def merge[O: OrgPolicyConfig](
        org: O, org_repo: RepoPolicyConfig, repo_cfg: RepoPolicyConfig
    ) -> O:
        if org.opt_config.disable_repo_override:
            return apply_overrides(org, org_repo)
        return apply_overrides(org, org_repo, repo_cfg)

    async def is_enabled(self, client: GitHubPort, owner: str, repo: str) -> bool:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        return await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )

    async def get_action(self, client: GitHubPort, owner: str, repo: str) -> str:
        merged = await self.merged_config(client, owner, repo)
        return merged.action
