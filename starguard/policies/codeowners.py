"""CODEOWNERS policy."""

from __future__ import annotations

from loguru import logger

from starguard.config.enablement import is_enabled
from starguard.core.ports import GitHubPort
from starguard.policies.base import DISABLED_TEXT, PASS_TEXT, LayeredPolicy, PolicyResult


class CodeownersPolicy(LayeredPolicy):
    """Requires a CODEOWNERS file without syntax errors."""

    name = "CODEOWNERS"
    config_file = "codeowners.yaml"

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
        if not enabled:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)

        errors = await client.get_codeowners_errors(owner, repo)
        if errors is None:
            return PolicyResult(
                enabled=True,
                passed=False,
                notify_text=(
                    "Did not find a CODEOWNERS file in this repository. Add one at the root, "
                    "in docs/ or in .github/ to define who reviews changes."
                ),
                details={"codeownersFound": False, "errors": []},
            )
        if errors:
            listing = "".join(f"- {message}\n" for message in errors)
            return PolicyResult(
                enabled=True,
                passed=False,
                notify_text=f"The CODEOWNERS file has errors:\n{listing}",
                details={"codeownersFound": True, "errors": errors},
            )
        return PolicyResult(
            enabled=True,
            passed=True,
            notify_text=PASS_TEXT,
            details={"codeownersFound": True, "errors": []},
        )

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        logger.warning(f"{self.name} fix is configured for {owner}/{repo}, but not implemented")
