from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from starguard.github.errors import GitHubForbiddenError
from starguard.issue.tracker import IssueTracker, result_hash

TITLE = "Security Policy violation GitHub Actions"


@pytest.fixture
def tracker(github, configs) -> IssueTracker:
    github.add_repo("acme", "api")
    return IssueTracker(configs)


def _only_issue(github, repo: str = "api"):
    [issue] = github.issues[("acme", repo)]
    return issue


def _age(github, days: int, repo: str = "api") -> None:
    issue = _only_issue(github, repo)
    github.issues[("acme", repo)] = [
        replace(issue, updated_at=datetime.now(UTC) - timedelta(days=days))
    ]


@pytest.mark.asyncio
async def test_ensure_creates_labelled_issue_with_hash(github, tracker) -> None:
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad things")

    issue = _only_issue(github)
    assert issue.title == TITLE
    assert "bad things" in issue.body
    assert f"<!-- Current result text hash: {result_hash('bad things')} -->" in issue.body
    assert issue.body.count("<!-- Edit section #updates -->") == 2
    assert github.issue_labels[("acme", "api", 1)] == "starguard"


@pytest.mark.asyncio
async def test_ensure_is_quiet_for_unchanged_recent_issue(github, tracker) -> None:
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad things")
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad things")
    assert len(github.issues[("acme", "api")]) == 1
    assert github.comments == []


@pytest.mark.asyncio
async def test_changed_result_comments_and_rewrites_hash(github, tracker) -> None:
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "first")
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "second")

    [(_, _, number, comment)] = github.comments
    assert number == 1
    assert comment.startswith("The policy result has been updated.")
    body = _only_issue(github).body
    assert result_hash("second") in body
    assert result_hash("first") not in body
    assert "There is an updated version of this policy result!" in body


@pytest.mark.asyncio
async def test_closed_issue_is_reopened(github, tracker) -> None:
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    github.issues[("acme", "api")] = [replace(_only_issue(github), state="closed")]

    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    assert _only_issue(github).state == "open"
    assert github.comments[-1][3].startswith("Reopening issue.")


@pytest.mark.asyncio
async def test_stale_issue_is_pinged(github, tracker) -> None:
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    _age(github, days=2)

    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    assert github.comments[-1][3].startswith("Updating issue after ping interval.")


@pytest.mark.asyncio
async def test_issue_repo_and_label_from_org_config(github, tracker) -> None:
    github.add_repo("acme", ".starguard")
    github.add_file(
        "acme",
        ".starguard",
        "starguard.yaml",
        "issueRepo: security\nissueLabel: sec\nissueFooter: Ask the security team\n",
    )
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")

    issue = _only_issue(github, "security")
    assert issue.title == 'Security Policy violation for repository "api" GitHub Actions'
    assert "refers to [acme/api](https://github.com/acme/api)" in issue.body
    assert "Ask the security team" in issue.body
    assert github.issue_labels[("acme", "security", 1)] == "sec"


@pytest.mark.asyncio
async def test_schedule_suppresses_new_issues(github, tracker) -> None:
    today = datetime.now(UTC).strftime("%A").lower()
    github.add_file(
        "acme",
        "api",
        ".starguard/starguard.yaml",
        f"schedule:\n  timezone: UTC\n  actions:\n    issue: false\n  days: [{today}]\n",
    )
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    assert github.called("create_issue") == []


@pytest.mark.asyncio
async def test_disabled_issues_only_warn(github, tracker) -> None:
    github.fail["create_issue"] = GitHubForbiddenError(403, "Issues are disabled")
    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    assert ("acme", "api") not in github.issues


@pytest.mark.asyncio
async def test_close_comments_and_closes_open_issue(github, tracker) -> None:
    await tracker.close(github, "acme", "api", "GitHub Actions")
    assert github.comments == []

    await tracker.ensure(github, "acme", "api", "GitHub Actions", "bad")
    await tracker.close(github, "acme", "api", "GitHub Actions")
    assert _only_issue(github).state == "closed"
    assert github.comments[-1][3] == "Policy is now in compliance. Closing issue."

    await tracker.close(github, "acme", "api", "GitHub Actions")
    assert len(github.comments) == 1
