"""Repository administrators policy."""

from __future__ import annotations

from collections.abc import Iterator

from loguru import logger
from pydantic import Field

from starguard.config.enablement import is_enabled
from starguard.config.loader import ConfigFetcher
from starguard.config.schema import ConfigModel
from starguard.core.ports import GitHubPort
from starguard.policies.action.caches import GlobCache, PatternError
from starguard.policies.base import (
    DISABLED_TEXT,
    PASS_TEXT,
    LayeredPolicy,
    OrgPolicyConfig,
    PolicyResult,
    RepoPolicyConfig,
)

_ACCESS_DOCS = (
    "(For more information, see https://docs.github.com/en/organizations/"
    "managing-access-to-your-organizations-repositories)\n"
)
OWNERLESS_TEXT = (
    "Did not find any owners of this repository\n"
    "This policy requires all repositories to have a user or team assigned as an "
    "administrator. A responsible party is required by organization policy to respond "
    "to security events and organization requests.\n\n"
    "To add an administrator From the main page of the repository, go to "
    "Settings -> Manage Access.\n" + _ACCESS_DOCS + "\n"
    "Alternately, if this repository does not have any maintainers, archive or delete it.\n"
)
USER_ADMINS_TEXT = (
    "Users are not allowed to be administrators of this repository.\n"
    "Instead a team should be added as administrator.\n\n"
    "To add a team as administrator From the main page of the repository, go to "
    "Settings -> Manage Access.\n" + _ACCESS_DOCS
)
MAX_USER_ADMINS_TEXT = (
    "The number of users with admin permission on this repository is greater than "
    "the allowed maximum value.\n"
)
TEAM_ADMINS_TEXT = (
    "Teams are not allowed to be administrators of this repository.\n"
    "Instead a user should be added as administrator.\n\n"
    "To add a user as administrator From the main page of the repository, go to "
    "Settings -> Manage Access.\n" + _ACCESS_DOCS
)
MAX_ADMIN_TEAMS_TEXT = (
    "The number of teams with admin permission on this repository is greater than "
    "the allowed maximum value.\n"
)


class AdminExemption(ConfigModel):
    """Org-level relaxation for repositories matching the ``repo`` glob.

    ``userAdmins`` and ``teamAdmins`` exempt a repository only when every
    admin found is listed. A positive maximum replaces the org maximum.
    """

    repo: str = ""
    ownerless_allowed: bool = False
    user_admins_allowed: bool = False
    user_admins: list[str] = Field(default_factory=list)
    max_number_user_admins: int = 0
    team_admins_allowed: bool = False
    team_admins: list[str] = Field(default_factory=list)
    max_number_admin_teams: int = 0


class AdminOrgConfig(OrgPolicyConfig):
    ownerless_allowed: bool = False
    user_admins_allowed: bool = True
    max_number_user_admins: int = 0
    team_admins_allowed: bool = True
    max_number_admin_teams: int = 0
    exemptions: list[AdminExemption] = Field(default_factory=list)


class AdminRepoConfig(RepoPolicyConfig):
    ownerless_allowed: bool | None = None
    user_admins_allowed: bool | None = None
    max_number_user_admins: int | None = None
    team_admins_allowed: bool | None = None
    max_number_admin_teams: int | None = None


class AdminPolicy(LayeredPolicy):
    """Checks who administers a repository: users, teams, or nobody."""

    name = "Repository Administrators"
    config_file = "admin.yaml"
    org_model = AdminOrgConfig
    repo_model = AdminRepoConfig

    def __init__(self, configs: ConfigFetcher):
        super().__init__(configs)
        self.globs = GlobCache()

    def _exemptions(self, config: AdminOrgConfig, repo: str) -> Iterator[AdminExemption]:
        for exemption in config.exemptions:
            try:
                matched = self.globs.match(exemption.repo, repo)
            except PatternError as e:
                logger.warning(f"Skipping admin exemption for {repo}: {e}")
                continue
            if matched:
                yield exemption

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
        if not enabled:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)
        config = self.merge(org, org_repo, repo_cfg)
        exemptions = list(self._exemptions(config, repo))

        admins = [
            c.login
            for c in await client.list_direct_collaborators(owner, repo)
            if "admin" in c.permissions
        ]
        team_admins = [
            t.slug for t in await client.list_teams(owner, repo) if "admin" in t.permissions
        ]
        details = {"admins": admins, "teamAdmins": team_admins}

        problems: list[str] = []
        if not admins and not team_admins:
            if not config.ownerless_allowed and not any(e.ownerless_allowed for e in exemptions):
                problems.append(OWNERLESS_TEXT)
        if admins and not config.user_admins_allowed:
            if not any(e.user_admins_allowed or set(admins) <= set(e.user_admins) for e in exemptions):
                problems.append(USER_ADMINS_TEXT)
        user_limit = next(
            (e.max_number_user_admins for e in exemptions if e.max_number_user_admins > 0),
            config.max_number_user_admins,
        )
        if user_limit > 0 and len(admins) > user_limit:
            problems.append(MAX_USER_ADMINS_TEXT)
        if team_admins and not config.team_admins_allowed:
            if not any(
                e.team_admins_allowed or set(team_admins) <= set(e.team_admins) for e in exemptions
            ):
                problems.append(TEAM_ADMINS_TEXT)
        team_limit = next(
            (e.max_number_admin_teams for e in exemptions if e.max_number_admin_teams > 0),
            config.max_number_admin_teams,
        )
        if team_limit > 0 and len(team_admins) > team_limit:
            problems.append(MAX_ADMIN_TEAMS_TEXT)

        if not problems:
            return PolicyResult(enabled=True, passed=True, notify_text=PASS_TEXT, details=details)
        return PolicyResult(
            enabled=True, passed=False, notify_text="".join(problems), details=details
        )

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        logger.warning(f"{self.name} fix is configured for {owner}/{repo}, but not implemented")
