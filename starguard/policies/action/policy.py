"""GitHub Actions allow/deny/require policy."""

from __future__ import annotations

from loguru import logger

from starguard.config.loader import ConfigFetcher
from starguard.core.ports import GitHubPort, RepositoryIntrospectionPort
from starguard.github.errors import GitHubError
from starguard.policies.action.caches import GlobCache, SemverCache
from starguard.policies.action.eval import (
    MATCH_ERRORS,
    RunHistory,
    evaluate_action_denied,
    evaluate_require_rule,
)
from starguard.policies.action.results import EvaluationResult, failed_rule_details
from starguard.policies.action.rules import RuleRef, index_groups, sort_rules
from starguard.policies.action.schema import ActionOrgConfig, ActionRepoConfig
from starguard.policies.action.selectors import SelectorMatcher
from starguard.policies.action.workflows import ActionUse, extract_action_uses, list_workflows
from starguard.policies.base import DISABLED_TEXT, PASS_TEXT, PolicyResult, apply_overrides

POLICY_NAME = "GitHub Actions"
CONFIG_FILE = "actions.yaml"
FAIL_TEXT = (
    "This policy, specified at the organization level, sets requirements for Action use "
    "by repos within the organization. This repo is failing to fully comply with "
    "organization policies, as explained below.\n\n```\n{explanation}```\n\n"
    "See the org-level {policy} policy configuration for details."
)


class ActionPolicy:
    """Evaluates workflow action uses against org-level rule groups.

    Rule groups come from the org-level file only; org-repo and repo files may
    override the configured action. Glob and semver caches live as long as the
    policy instance.
    """

    name = POLICY_NAME
    config_file = CONFIG_FILE

    def __init__(self, configs: ConfigFetcher):
        self.configs = configs
        self.globs = GlobCache()
        self.semvers = SemverCache()

    async def load_config(
        self, client: RepositoryIntrospectionPort, owner: str, repo: str
    ) -> ActionOrgConfig:
        org, org_repo, repo_cfg = await self.configs.fetch_levels(
            client, owner, repo, CONFIG_FILE, ActionOrgConfig, ActionRepoConfig
        )
        return apply_overrides(org, org_repo, repo_cfg)

    async def is_enabled(self, client: GitHubPort, owner: str, repo: str) -> bool:
        config = await self.load_config(client, owner, repo)
        return bool(config.groups)

    async def get_action(self, client: GitHubPort, owner: str, repo: str) -> str:
        config = await self.load_config(client, owner, repo)
        return config.action

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        logger.warning(f"{POLICY_NAME} fix is configured for {owner}/{repo}, but not implemented")

    async def applicable_rules(
        self, matcher: SelectorMatcher, config: ActionOrgConfig, owner: str, repo: str
    ) -> list[RuleRef]:
        """Rules of every group whose repo selectors match, sorted by priority."""
        applicable: list[RuleRef] = []
        for group, refs in index_groups(config):
            matched = not group.repos
            for selector in group.repos:
                try:
                    if await matcher.match_repo(selector, owner, repo):
                        matched = True
                        break
                except MATCH_ERRORS as e:
                    logger.warning(f"Invalid repo selector in group {group.name!r}, skipping: {e}")
            if matched:
                applicable.extend(refs)
        return sort_rules(applicable)

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        config = await self.load_config(client, owner, repo)
        if not config.groups:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)

        workflows = await list_workflows(client, owner, repo)
        uses: list[ActionUse] = [use for wf in workflows for use in extract_action_uses(wf)]
        matcher = SelectorMatcher(client, self.globs, self.semvers)
        rules = await self.applicable_rules(matcher, config, owner, repo)

        results: list[EvaluationResult] = []
        for use in uses:
            result, errors = await evaluate_action_denied(matcher, rules, use)
            if errors:
                logger.warning(
                    f"Errors while evaluating deny rules for {use.name} in {owner}/{repo}: "
                    + "; ".join(str(e) for e in errors)
                )
            results.append(result)

        history = RunHistory(client, owner, repo)
        head_sha: str | None = None
        head_resolved = False
        for ref in rules:
            if ref.method != "require":
                continue
            if ref.rule.must_pass and not head_resolved:
                try:
                    head_sha = await self._head_sha(client, owner, repo)
                except GitHubError as e:
                    logger.error(f"Cannot get head commit of {owner}/{repo}, skipping require rules: {e}")
                    break
                head_resolved = True
            try:
                results.append(await evaluate_require_rule(matcher, history, ref, uses, head_sha))
            except GitHubError as e:
                logger.warning(f"Error evaluating {ref.describe()} on {owner}/{repo}: {e}")

        failures = [result for result in results if not result.passed]
        if not failures:
            return PolicyResult(
                enabled=True, passed=True, notify_text=PASS_TEXT, details={"failedRules": []}
            )
        explanation = "\n".join(result.explain() for result in failures)
        return PolicyResult(
            enabled=True,
            passed=False,
            notify_text=FAIL_TEXT.format(explanation=explanation, policy=POLICY_NAME),
            details=failed_rule_details(failures),
        )

    @staticmethod
    async def _head_sha(client: RepositoryIntrospectionPort, owner: str, repo: str) -> str:
        meta = await client.get_repository(owner, repo)
        return await client.get_branch_head(owner, repo, meta.default_branch)
