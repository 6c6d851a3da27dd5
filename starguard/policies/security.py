"""SECURITY.md policy."""

from __future__ import annotations

from loguru import logger

from starguard.config.enablement import is_enabled
from starguard.core.ports import GitHubPort
from starguard.policies.base import DISABLED_TEXT, PASS_TEXT, LayeredPolicy, PolicyResult

# GitHub shows a security policy from any of these locations.
SECURITY_PATHS = ("SECURITY.md", ".github/SECURITY.md", "docs/SECURITY.md")
# A file this small holds at most a stray newline.
EMPTY_SIZE = 4


class SecurityPolicy(LayeredPolicy):
    """Requires a non-empty security policy file."""

    name = "SECURITY.md"
    config_file = "security.yaml"

    async def check(self, client: GitHubPort, owner: str, repo: str) -> PolicyResult:
        org, org_repo, repo_cfg = await self.load(client, owner, repo)
        enabled = await is_enabled(
            client, org.opt_config, org_repo.opt_config, repo_cfg.opt_config, owner, repo
        )
        if not enabled:
            return PolicyResult(enabled=False, passed=True, notify_text=DISABLED_TEXT)

        for path in SECURITY_PATHS:
            text = await client.get_file_text(owner, repo, path)
            if text is not None:
                break
        else:
            return PolicyResult(
                enabled=True,
                passed=False,
                notify_text=(
                    "SECURITY.md not found.\n"
                    f"Go to https://github.com/{owner}/{repo}/security/policy to enable.\n"
                ),
                details={"exists": False, "empty": True},
            )
        if len(text.encode("utf-8")) <= EMPTY_SIZE:
            return PolicyResult(
                enabled=True,
                passed=False,
                notify_text="SECURITY.md is empty.\n",
                details={"exists": True, "empty": True, "path": path},
            )
        return PolicyResult(
            enabled=True,
            passed=True,
            notify_text=PASS_TEXT,
            details={"exists": True, "empty": False, "path": path},
        )

    async def fix(self, client: GitHubPort, owner: str, repo: str) -> None:
        logger.warning(f"{self.name} fix is configured for {owner}/{repo}, but not implemented")
