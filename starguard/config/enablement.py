"""Opt-in/opt-out resolution for the bot and for individual policies."""

from __future__ import annotations

from fnmatch import fnmatchcase

from loguru import logger

from starguard.config.loader import ConfigFetcher
from starguard.config.schema import OrgAppConfig, OrgOptConfig, RepoAppConfig, RepoOptConfig
from starguard.core.ports import RepositoryIntrospectionPort
from starguard.github.errors import GitHubError


def _matches_any(patterns: list[str], name: str) -> bool:
    return any(fnmatchcase(name, pattern) for pattern in patterns)


async def is_enabled(
    client: RepositoryIntrospectionPort,
    org: OrgOptConfig,
    org_repo: RepoOptConfig,
    repo_opt: RepoOptConfig,
    owner: str,
    repo: str,
) -> bool:
    """Resolve whether a repository is opted in under the layered opt configs.

    In opt-out strategy every repository starts enabled and the org lists,
    visibility switches and repo opt-outs disable it. In opt-in strategy only
    listed or explicitly opted-in repositories are enabled. Repo-level
    switches are ignored when the org sets ``disableRepoOverride``.
    """
    meta = await client.get_repository(owner, repo)
    if org.opt_out_strategy:
        enabled = True
        if _matches_any(org.opt_out_repos, repo):
            enabled = False
        if org.opt_out_private_repos and meta.private:
            enabled = False
        if org.opt_out_public_repos and not meta.private:
            enabled = False
        if org.opt_out_archived_repos and meta.archived:
            enabled = False
        if org.opt_out_forked_repos and meta.fork:
            enabled = False
        if org_repo.opt_out:
            enabled = False
        if not org.disable_repo_override and repo_opt.opt_out:
            enabled = False
        return enabled

    enabled = _matches_any(org.opt_in_repos, repo)
    if org_repo.opt_in:
        enabled = True
    if not org.disable_repo_override and repo_opt.opt_in:
        enabled = True
    return enabled


async def get_app_configs(
    fetcher: ConfigFetcher, client: RepositoryIntrospectionPort, owner: str, repo: str
) -> tuple[OrgAppConfig, RepoAppConfig, RepoAppConfig]:
    """Fetch ``starguard.yaml`` at all three levels."""
    return await fetcher.fetch_levels(
        client, owner, repo, fetcher.settings.app_config_file, OrgAppConfig, RepoAppConfig
    )


async def is_bot_enabled(
    fetcher: ConfigFetcher, client: RepositoryIntrospectionPort, owner: str, repo: str
) -> bool:
    """Whether the bot as a whole is enabled on the repository.

    Lookup failures are logged and count as disabled.
    """
    try:
        org, org_repo, repo_cfg = await get_app_configs(fetcher, client, owner, repo)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
    except GitHubError as e:
        logger.error(f"Unexpected config error for {owner}/{repo}, bot disabled: {e}")
        return False
    logger.info(f"Bot enabled on {owner}/{repo}: {enabled}")
    return enabled
