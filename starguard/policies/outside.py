"""Outside collaborators policy."""

from __future__ import annotations

from loguru import logger

from starguard.config.enablement import is_enabled
from starguard.core.ports import GitHubPort
from starguard.policies.base import (
    DISABLED_TEXT,
    PASS_TEXT,
    LayeredPolicy,
    OrgPolicyConfig,
    PolicyResult,
    RepoPolicyConfig,
)


class OutsideOrgConfig(OrgPolicyConfig):
    push_allowed: bool = True
    admin_allowed: bool = False


class OutsideRepoConfig(RepoPolicyConfig):
    push_allowed: bool | None = None
    admin_allowed: bool | None = None


class OutsidePolicy(LayeredPolicy):
    """Flags collaborators outside the organization with push or admin access."""

    name = "Outside Collaborators"
    config_file = "outside.yaml"
    org_model = OutsideOrgConfig
    repo_model = OutsideRepoConfig

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
        if not enabled:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)
        config = self.merge(org, org_repo, repo_cfg)

        pushers: list[str] = []
        admins: list[str] = []
        for collaborator in await client.list_outside_collaborators(owner, repo):
            if "push" in collaborator.permissions:
                pushers.append(collaborator.login)
            if "admin" in collaborator.permissions:
                admins.append(collaborator.login)
        details = {
            "outsidePushCount": len(pushers),
            "outsidePushers": pushers,
            "outsideAdminCount": len(admins),
            "outsideAdmins": admins,
        }

        problems: list[str] = []
        if pushers and not config.push_allowed:
            problems.append(f"Found {len(pushers)} outside collaborators with push access.")
        if admins and not config.admin_allowed:
            problems.append(f"Found {len(admins)} outside collaborators with admin access.")
        if not problems:
            return PolicyResult(enabled=True, passed=True, notify_text=PASS_TEXT, details=details)
        text = "\n".join(problems) + (
            "\nThis policy requires collaborators with elevated access to be members of the "
            "organization. Remove their repository-based access or invite them to the organization."
        )
        return PolicyResult(enabled=True, passed=False, notify_text=text, details=details)

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        logger.warning(f"{self.name} fix is configured for {owner}/{repo}, but not implemented")
