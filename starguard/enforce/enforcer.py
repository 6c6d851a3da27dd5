"""Reconciliation loop that runs every policy on every installed repository."""

from __future__ import annotations

import asyncio
from fnmatch import fnmatchcase

from loguru import logger

from starguard.config.enablement import is_bot_enabled
from starguard.config.loader import ConfigFetcher
from starguard.config.settings import OperatorSettings
from starguard.core.models import Installation, Repository
from starguard.core.ports import ClientProviderPort, GitHubPort
from starguard.github.errors import GitHubError
from starguard.issue.tracker import IssueTracker
from starguard.policies.base import Policy
from starguard.telemetry.base import NullTelemetry, TelemetryPort

type EnforceRepoResults = dict[str, bool]
type EnforceAllResults = dict[str, dict[str, int]]

TOTAL_FAILED = "totalFailed"


def add_failures(target: EnforceAllResults, repo_results: EnforceRepoResults) -> None:
    for policy, passed in repo_results.items():
        if not passed:
            counts = target.setdefault(policy, {})
            counts[TOTAL_FAILED] = counts.get(TOTAL_FAILED, 0) + 1


def merge_results(target: EnforceAllResults, other: EnforceAllResults) -> None:
    for policy, counts in other.items():
        merged = target.setdefault(policy, {})
        merged[TOTAL_FAILED] = merged.get(TOTAL_FAILED, 0) + counts.get(TOTAL_FAILED, 0)


class Enforcer:
    """Runs policies across installations with bounded concurrency.

    Installations are processed by parallel tasks (at most ``num_workers`` at
    a time); repositories inside one installation run sequentially.
    """

    def __init__(
        self,
        clients: ClientProviderPort,
        settings: OperatorSettings,
        configs: ConfigFetcher,
        policies: list[Policy],
        issues: IssueTracker,
        telemetry: TelemetryPort | None = None,
    ):
        self.clients = clients
        self.settings = settings
        self.configs = configs
        self.policies = policies
        self.issues = issues
        self.telemetry = telemetry or NullTelemetry()

    # ── Installations ────────────────────────────────────────────────────

    async def list_installations(self, app_client: GitHubPort) -> list[Installation]:
        """List installations, uninstalling the app from disallowed organizations."""
        installations = await app_client.list_installations()
        allowed = [org for org in self.settings.allowed_organizations if org]
        if not allowed:
            return installations

        kept: list[Installation] = []
        for installation in installations:
            if installation.account in allowed:
                kept.append(installation)
                continue
            logger.info(f"Uninstalling from disallowed organization {installation.account}")
            try:
                await app_client.delete_installation(installation.id)
            except GitHubError as e:
                logger.error(f"Could not uninstall from {installation.account}: {e}")
        return kept

    async def list_repositories(
        self, client: GitHubPort, installation: Installation, repo_filter: str = ""
    ) -> list[Repository]:
        """Non-archived repositories of an installation that are in scope."""
        repos = [r for r in await client.list_installation_repositories() if not r.archived]
        if repo_filter:
            repos = [r for r in repos if r.full_name == repo_filter][:1]

        patterns = self.settings.allowed_repositories
        if not patterns:
            return repos

        kept: list[Repository] = []
        for repo in repos:
            if any(fnmatchcase(repo.full_name, pattern) for pattern in patterns):
                kept.append(repo)
                continue
            logger.info(f"Removing installation access to disallowed repository {repo.full_name}")
            try:
                await client.remove_installation_repository(installation.id, repo.id)
            except GitHubError as e:
                logger.error(f"Could not remove {repo.full_name} from installation: {e}")
        return kept

    # ── Runs ─────────────────────────────────────────────────────────────

    async def enforce_all(
        self,
        *,
        policy_filter: str = "",
        repo_filter: str = "",
        stop: asyncio.Event | None = None,
    ) -> EnforceAllResults:
        """One reconciliation pass over every installation.

        Returns failure counts per policy name. Policies that passed on every
        repository have no entry.
        """
        installations = await self.list_installations(self.clients.app())
        logger.info(f"Enforcing policies on {len(installations)} installations")

        results: EnforceAllResults = {}
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.settings.num_workers)
        tasks: list[asyncio.Task[None]] = []
        repo_count = 0

        async def run(installation: Installation) -> None:
            nonlocal repo_count
            try:
                inst_results, count = await self.enforce_installation(
                    installation, policy_filter=policy_filter, repo_filter=repo_filter, stop=stop
                )
            except Exception as e:
                logger.error(f"Installation {installation.id} ({installation.account}) failed: {e}")
                self.telemetry.incr("installation_errors_total")
                return
            finally:
                semaphore.release()
            async with lock:
                repo_count += count
                merge_results(results, inst_results)

        for installation in installations:
            if installation.suspended:
                logger.info(
                    f"Installation {installation.id} ({installation.account}) is suspended, skipping"
                )
                continue
            await semaphore.acquire()
            if stop is not None and stop.is_set():
                semaphore.release()
                logger.info("Stop requested, not starting further installations")
                break
            tasks.append(asyncio.create_task(run(installation)))

        if tasks:
            await asyncio.gather(*tasks)

        names = [p.name for p in self.policies if not policy_filter or p.name == policy_filter]
        for name in names:
            failed = results.get(name, {}).get(TOTAL_FAILED, 0)
            self.telemetry.gauge("policy_failed_repos", failed, labels=(("policy", name),))
        self.telemetry.incr("enforce_runs_total")
        logger.info(f"Enforcement complete on {repo_count} repositories: {results}")
        return results

    async def enforce_installation(
        self,
        installation: Installation,
        *,
        policy_filter: str = "",
        repo_filter: str = "",
        stop: asyncio.Event | None = None,
    ) -> tuple[EnforceAllResults, int]:
        """Run policies on each repository of one installation, in order.

        Stops before the next repository once ``stop`` is set. The returned
        count is the number of repositories actually processed.
        """
        client = self.clients.get(installation.id)
        repos = await self.list_repositories(client, installation, repo_filter)
        logger.info(f"Enforcing policies on {len(repos)} repositories of {installation.account}")

        inst_results: EnforceAllResults = {}
        processed = 0
        try:
            for repo in repos:
                if stop is not None and stop.is_set():
                    logger.info(
                        f"Stop requested, leaving {len(repos) - processed} repositories "
                        f"of {installation.account} unenforced"
                    )
                    break
                processed += 1
                try:
                    bot_enabled = await is_bot_enabled(self.configs, client, repo.owner, repo.name)
                    repo_results = await self.run_policies(
                        client, repo.owner, repo.name, bot_enabled, policy_filter
                    )
                except Exception as e:
                    logger.error(f"Policy run failed on {repo.full_name}: {e}")
                    self.telemetry.incr("repo_errors_total")
                    continue
                self.telemetry.incr("repos_enforced_total")
                add_failures(inst_results, repo_results)
        finally:
            self.configs.locations.clear(installation.account)
        return inst_results, processed

    async def run_policies(
        self,
        client: GitHubPort,
        owner: str,
        repo: str,
        bot_enabled: bool,
        policy_filter: str = "",
    ) -> EnforceRepoResults:
        """Check every policy on one repository and apply its configured action.

        Any error aborts the remaining policies for this repository.
        """
        policies = self.policies
        if policy_filter:
            policies = [p for p in policies if p.name == policy_filter]

        results: EnforceRepoResults = {}
        for policy in policies:
            repo_enabled = await policy.is_enabled(client, owner, repo)
            if not (repo_enabled and bot_enabled) and self.settings.do_nothing_on_opt_out:
                logger.info(f"{policy.name} skipped on {owner}/{repo}: opted out")
                continue

            result = await policy.check(client, owner, repo)
            logger.info(
                f"{policy.name} on {owner}/{repo}: passed={result.passed} enabled={result.enabled}"
            )
            logger.debug(f"{policy.name} details for {owner}/{repo}: {result.details}")
            if not result.enabled:
                continue

            action = await policy.get_action(client, owner, repo)
            results[policy.name] = result.passed
            if not result.passed:
                self.telemetry.incr("policy_failures_total", labels=(("policy", policy.name),))
                if action == "log":
                    pass
                elif action == "issue":
                    await self.issues.ensure(client, owner, repo, policy.name, result.notify_text)
                elif action == "fix":
                    await policy.fix(client, owner, repo)
                else:
                    logger.warning(f"Unknown action {action!r} configured for {policy.name}")
            elif action in ("issue", "fix"):
                await self.issues.close(client, owner, repo, policy.name)
        return results

    async def enforce_job(
        self,
        interval: float,
        stop: asyncio.Event,
        *,
        policy_filter: str = "",
        repo_filter: str = "",
    ) -> None:
        """Run ``enforce_all`` every ``interval`` seconds until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.enforce_all(
                    policy_filter=policy_filter, repo_filter=repo_filter, stop=stop
                )
            except Exception as e:
                logger.error(f"Enforcement pass failed: {e}")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                continue
        logger.info("Enforcement job stopped")
