"""Branch protection policy."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from loguru import logger
from pydantic import Field

from starguard.config.enablement import is_enabled
from starguard.core.models import BranchProtection
from starguard.core.ports import GitHubPort
from starguard.github.errors import GitHubForbiddenError
from starguard.policies.base import (
    DISABLED_TEXT,
    LayeredPolicy,
    OrgPolicyConfig,
    PolicyResult,
    RepoPolicyConfig,
)


class BranchOrgConfig(OrgPolicyConfig):
    enforce_default: bool = True
    # Extra branches per repository name.
    enforce_branches: dict[str, list[str]] = Field(default_factory=dict)
    require_approval: bool = True
    approval_count: int = 1
    dismiss_stale: bool = True
    block_force: bool = True
    enforce_on_admins: bool = False
    require_up_to_date_branch: bool = False


class BranchRepoConfig(RepoPolicyConfig):
    enforce_default: bool | None = None
    # Added to the org list, never replaces it.
    extra_branches: list[str] = Field(default_factory=list, alias="enforceBranches")
    require_approval: bool | None = None
    approval_count: int | None = None
    dismiss_stale: bool | None = None
    block_force: bool | None = None
    enforce_on_admins: bool | None = None
    require_up_to_date_branch: bool | None = None


class BranchPolicy(LayeredPolicy):
    """Checks (and can apply) protection on the default and listed branches."""

    name = "Branch Protection"
    config_file = "branch_protection.yaml"
    org_model = BranchOrgConfig
    repo_model = BranchRepoConfig

    async def _settings(
        self, client: GitHubPort, owner: str, repo: str
    ) -> tuple[BranchOrgConfig, list[str], bool]:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        merged = self.merge(org, org_repo, repo_cfg)
        branches = list(merged.enforce_branches.get(repo, []))
        branches.extend(org_repo.extra_branches)
        if not org.opt_config.disable_repo_override:
            branches.extend(repo_cfg.extra_branches)
        if merged.enforce_default:
            meta = await client.get_repository(owner, repo)
            branches.append(meta.default_branch)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
        return merged, list(dict.fromkeys(branches)), enabled

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        config, branches, enabled = await self._settings(client, owner, repo)
        if not enabled:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)
        if not branches:
            return PolicyResult(
                enabled=True,
                passed=True,
                notify_text="No branches configured for enforcement in policy",
            )

        problems: list[str] = []
        details: dict[str, Any] = {}
        for branch in branches:
            protection = await client.get_branch_protection(owner, repo, branch)
            if protection is None:
                problems.append(f"No protection found for branch {branch}")
                details[branch] = None
                continue
            details[branch] = {
                "prReviews": protection.require_approval,
                "numReviews": protection.approval_count,
                "dismissStale": protection.dismiss_stale_reviews,
                "blockForce": not protection.allow_force_pushes,
                "enforceAdmins": protection.enforce_admins,
            }
            problems.extend(self._violations(config, branch, protection))

        if not problems:
            return PolicyResult(enabled=True, passed=True, notify_text="OK", details=details)
        text = "\n".join(problems) + "\n"
        return PolicyResult(enabled=True, passed=False, notify_text=text, details=details)

    @staticmethod
    def _violations(config: BranchOrgConfig, branch: str, protection: BranchProtection) -> list[str]:
        found: list[str] = []
        if protection.require_approval:
            if config.dismiss_stale and not protection.dismiss_stale_reviews:
                found.append(f"Dismiss stale reviews not configured for branch {branch}")
            if protection.approval_count < config.approval_count:
                found.append(
                    f"PR Approvals below threshold {protection.approval_count} : "
                    f"{config.approval_count} for branch {branch}"
                )
        elif config.require_approval:
            found.append(f"PR Approvals not configured for branch {branch}")
        if config.block_force and protection.allow_force_pushes:
            found.append(f"Block force push not configured for branch {branch}")
        if config.enforce_on_admins and not protection.enforce_admins:
            found.append(f"Enforce status checks on admins not configured for branch {branch}")
        if config.require_up_to_date_branch and not protection.require_up_to_date_branch:
            found.append(f"Require up to date branch not configured for branch {branch}")
        return found

    @staticmethod
    def desired(config: BranchOrgConfig, current: BranchProtection | None) -> BranchProtection:
        """Current protection tightened to what the config requires."""
        wanted = current or BranchProtection()
        if config.require_approval:
            wanted = replace(
                wanted,
                require_approval=True,
                approval_count=max(wanted.approval_count, config.approval_count),
            )
        if config.dismiss_stale and wanted.require_approval:
            wanted = replace(wanted, dismiss_stale_reviews=True)
        if config.block_force:
            wanted = replace(wanted, allow_force_pushes=False)
        if config.enforce_on_admins:
            wanted = replace(wanted, enforce_admins=True)
        if config.require_up_to_date_branch:
            wanted = replace(wanted, require_status_checks=True, require_up_to_date_branch=True)
        return wanted

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        config, branches, enabled = await self._settings(client, owner, repo)
        if not enabled:
            return
        for branch in branches:
            current = await client.get_branch_protection(owner, repo, branch)
            wanted = self.desired(config, current)
            if wanted == current:
                continue
            try:
                await client.update_branch_protection(owner, repo, branch, wanted)
            except GitHubForbiddenError as e:
                logger.warning(
                    f"Installation lacks permission to update branch protection on "
                    f"{owner}/{repo}:{branch}, not fixing: {e}"
                )
                return
            logger.info(f"Updated branch protection on {owner}/{repo}:{branch}")
