"""Issue bookkeeping for failing policies.

One issue per (repository, policy), found by title under the configured
label. The body carries a hash of the last reported result so changed
results are announced once while unchanged ones only get periodic pings.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta

from loguru import logger

from starguard.config.enablement import get_app_configs
from starguard.config.loader import ConfigFetcher
from starguard.config.schedule import merge_schedules, should_perform
from starguard.core.models import Issue
from starguard.core.ports import GitHubPort
from starguard.github.errors import GitHubAPIError, is_issues_disabled

ISSUE_REPO_TITLE = 'Security Policy violation for repository "{repo}" {policy}'
SAME_REPO_TITLE = "Security Policy violation {policy}"
SECTION_HEADER = "<!-- Edit section #{name} -->"
HASH_COMMENT = "<!-- Current result text hash: {hash} -->"
UPDATE_SECTION = "updates"
UPDATE_WARNING = (
    "\n{hash_comment}\n:warning: There is an updated version of this policy result! "
    "[Click here to see the latest update]({url})\n\n---\n\n"
)

UPDATED_COMMENT = "The policy result has been updated.\n\n---\n\n{text}"
REOPEN_COMMENT = "Reopening issue. See its status below.\n\n---\n\n{text}"
PING_COMMENT = "Updating issue after ping interval. See its status below.\n\n---\n\n{text}"
CLOSE_COMMENT = "Policy is now in compliance. Closing issue."


def result_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def section_header(name: str) -> str:
    return SECTION_HEADER.format(name=name)


def has_section(body: str, name: str) -> bool:
    return body.count(section_header(name)) == 2


def replace_section(body: str, name: str, text: str) -> str | None:
    """Swap the content between the two section headers; None when malformed."""
    header = section_header(name)
    parts = body.split(header)
    if len(parts) != 3:
        return None
    return "".join([parts[0], header, text, header, parts[2]])


def issue_body(
    *, owner: str, repo: str, text: str, text_hash: str, footer: str, in_same_repo: bool
) -> str:
    refers_to = ""
    if not in_same_repo:
        full_name = f"{owner}/{repo}"
        refers_to = f" and refers to [{full_name}](https://github.com/{full_name})"
    header = section_header(UPDATE_SECTION)
    return (
        f"_This issue was automatically created by starguard{refers_to}._\n\n"
        f"**Security Policy Violation**\n{text}\n\n---\n\n"
        f"{header}{HASH_COMMENT.format(hash=text_hash)}{header}\n{footer}"
    )


class IssueTracker:
    """Opens, updates, pings and closes policy violation issues."""

    def __init__(self, configs: ConfigFetcher):
        self.configs = configs
        self.settings = configs.settings

    async def _target(
        self, client: GitHubPort, owner: str, repo: str, policy: str
    ) -> tuple[str, str, str]:
        """Return (issue repository, title, label) for a policy on ``repo``."""
        org, org_repo, repo_cfg = await get_app_configs(self.configs, client, owner, repo)
        label = self.settings.issue_label
        for layer_label in (org.issue_label, org_repo.issue_label, repo_cfg.issue_label):
            if layer_label:
                label = layer_label
        if org.issue_repo:
            return org.issue_repo, ISSUE_REPO_TITLE.format(repo=repo, policy=policy), label
        return repo, SAME_REPO_TITLE.format(policy=policy), label

    async def find(
        self, client: GitHubPort, owner: str, issue_repo: str, title: str, label: str
    ) -> Issue | None:
        for issue in await client.list_issues(owner, issue_repo, label=label):
            if issue.title == title:
                return issue
        return None

    def _footer(self, org_footer: str) -> str:
        if not org_footer:
            return self.settings.issue_footer
        return f"{org_footer}\n\n{self.settings.issue_footer}"

    async def ensure(self, client: GitHubPort, owner: str, repo: str, policy: str, text: str) -> None:
        """Make sure an open issue reports ``text`` for ``policy`` on ``repo``."""
        issue_repo, title, label = await self._target(client, owner, repo, policy)
        issue = await self.find(client, owner, issue_repo, title, label)
        org, org_repo, repo_cfg = await get_app_configs(self.configs, client, owner, repo)
        schedule = merge_schedules(org.schedule, org_repo.schedule, repo_cfg.schedule)
        text_hash = result_hash(text)

        if issue is None:
            if not should_perform(schedule, "issue"):
                logger.info(f"Schedule suppresses new issue for {policy} on {owner}/{repo}")
                return
            body = issue_body(
                owner=owner,
                repo=repo,
                text=text,
                text_hash=text_hash,
                footer=self._footer(org.issue_footer),
                in_same_repo=issue_repo == repo,
            )
            try:
                await client.create_issue(owner, issue_repo, title=title, body=body, labels=[label])
            except GitHubAPIError as e:
                if not is_issues_disabled(e):
                    raise
                logger.warning(f"Could not create issue on {owner}/{issue_repo}, issues are disabled")
                return
            logger.info(f"Created issue for {policy} on {owner}/{repo}")
            return

        if text_hash not in issue.body and has_section(issue.body, UPDATE_SECTION):
            url = await client.create_issue_comment(
                owner, issue_repo, issue.number, UPDATED_COMMENT.format(text=text)
            )
            warning = UPDATE_WARNING.format(
                hash_comment=HASH_COMMENT.format(hash=text_hash), url=url
            )
            body = replace_section(issue.body, UPDATE_SECTION, warning)
            if body is not None:
                await client.update_issue(owner, issue_repo, issue.number, body=body, state="open")
            logger.info(f"Updated issue #{issue.number} with a new result for {policy}")
            return

        if not should_perform(schedule, "ping"):
            return

        if issue.state == "closed":
            await client.update_issue(owner, issue_repo, issue.number, state="open")
            await client.create_issue_comment(
                owner, issue_repo, issue.number, REOPEN_COMMENT.format(text=text)
            )
            logger.info(f"Reopened issue #{issue.number} for {policy} on {owner}/{repo}")
            return

        ping_after = timedelta(hours=self.settings.notice_ping_duration_hours)
        if issue.updated_at is not None and issue.updated_at < datetime.now(UTC) - ping_after:
            await client.create_issue_comment(
                owner, issue_repo, issue.number, PING_COMMENT.format(text=text)
            )
            logger.info(f"Pinged issue #{issue.number} for {policy} on {owner}/{repo}")

    async def close(self, client: GitHubPort, owner: str, repo: str, policy: str) -> None:
        """Close the policy's issue once the repository complies."""
        issue_repo, title, label = await self._target(client, owner, repo, policy)
        issue = await self.find(client, owner, issue_repo, title, label)
        if issue is None or issue.state != "open":
            return
        try:
            await client.create_issue_comment(owner, issue_repo, issue.number, CLOSE_COMMENT)
        except GitHubAPIError as e:
            if not is_issues_disabled(e):
                raise
            logger.warning(f"Could not comment on {owner}/{issue_repo}, issues are disabled")
            return
        await client.update_issue(owner, issue_repo, issue.number, state="closed")
        logger.info(f"Closed issue #{issue.number} for {policy} on {owner}/{repo}")
