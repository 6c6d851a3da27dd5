from __future__ import annotations

import copy
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import pytest

from starguard.config.loader import ConfigFetcher
from starguard.config.settings import OperatorSettings
from starguard.core.models import (
    Branch,
    BranchProtection,
    Collaborator,
    Commit,
    ContentEntry,
    Installation,
    Issue,
    IssueState,
    Release,
    Repository,
    Tag,
    Team,
    WorkflowRun,
)
from starguard.github.errors import GitHubNotFoundError


class FakeGitHub:
    """In-memory GitHub implementing every port method the bot uses.

    ``fail`` maps ``method`` or ``method:arg1:arg2`` to an exception raised
    on matching calls. Every call is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.installation_id: int | None = None
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail: dict[str, Exception] = {}
        self.repos: dict[tuple[str, str], Repository] = {}
        self.files: dict[tuple[str, str, str], str] = {}
        self.languages: dict[tuple[str, str], dict[str, int]] = {}
        self.commits: dict[tuple[str, str], list[Commit]] = {}
        self.tags: dict[tuple[str, str], list[Tag]] = {}
        self.branches: dict[tuple[str, str], list[Branch]] = {}
        self.releases: dict[tuple[str, str], list[Release]] = {}
        self.runs: dict[tuple[str, str, str], list[WorkflowRun]] = {}
        self.protection: dict[tuple[str, str, str], BranchProtection] = {}
        self.codeowners_errors: dict[tuple[str, str], list[str]] = {}
        self.collaborators: dict[tuple[str, str], list[Collaborator]] = {}
        self.direct_collaborators: dict[tuple[str, str], list[Collaborator]] = {}
        self.teams: dict[tuple[str, str], list[Team]] = {}
        self.issues: dict[tuple[str, str], list[Issue]] = {}
        self.issue_labels: dict[tuple[str, str, int], str] = {}
        self.comments: list[tuple[str, str, int, str]] = []
        self.installations: list[Installation] = []
        self.installation_repos: dict[int, list[Repository]] = {}
        self.deleted_installations: list[int] = []
        self.removed_repositories: list[tuple[int, int]] = []

    def scoped(self, installation_id: int) -> FakeGitHub:
        """A view of the same state acting as one installation's client."""
        clone = copy.copy(self)
        clone.installation_id = installation_id
        return clone

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        for key in (name, ":".join([name, *map(str, args)])):
            if key in self.fail:
                raise self.fail[key]

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    # ── Setup helpers ────────────────────────────────────────────────────

    def add_repo(self, owner: str, name: str, **fields: Any) -> Repository:
        repo = Repository(id=len(self.repos) + 1, owner=owner, name=name, **fields)
        self.repos[(owner, name)] = repo
        return repo

    def add_file(self, owner: str, repo: str, path: str, text: str) -> None:
        self.files[(owner, repo, path)] = text

    def add_workflow(self, owner: str, repo: str, filename: str, text: str) -> None:
        self.add_file(owner, repo, f".github/workflows/{filename}", text)

    # ── Repository introspection ─────────────────────────────────────────

    async def get_repository(self, owner: str, repo: str) -> Repository:
        self._record("get_repository", owner, repo)
        found = self.repos.get((owner, repo))
        if found is None:
            raise GitHubNotFoundError(404, "Not Found", url=f"/repos/{owner}/{repo}")
        return found

    async def get_file_text(self, owner: str, repo: str, path: str) -> str | None:
        self._record("get_file_text", owner, repo, path)
        return self.files.get((owner, repo, path))

    async def list_directory(self, owner: str, repo: str, path: str) -> list[ContentEntry]:
        self._record("list_directory", owner, repo, path)
        prefix = path.rstrip("/") + "/"
        entries: dict[str, ContentEntry] = {}
        for file_owner, file_repo, file_path in self.files:
            if (file_owner, file_repo) != (owner, repo) or not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix):]
            name, _, deeper = rest.partition("/")
            kind = "dir" if deeper else "file"
            entries[name] = ContentEntry(name=name, path=prefix + name, type=kind)
        return [entries[name] for name in sorted(entries)]

    async def list_languages(self, owner: str, repo: str) -> dict[str, int]:
        self._record("list_languages", owner, repo)
        return dict(self.languages.get((owner, repo), {}))

    async def list_commits(self, owner: str, repo: str) -> list[Commit]:
        self._record("list_commits", owner, repo)
        return list(self.commits.get((owner, repo), []))

    async def list_tags(self, owner: str, repo: str) -> list[Tag]:
        self._record("list_tags", owner, repo)
        return list(self.tags.get((owner, repo), []))

    async def list_branches(self, owner: str, repo: str) -> list[Branch]:
        self._record("list_branches", owner, repo)
        return list(self.branches.get((owner, repo), []))

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        self._record("get_branch_head", owner, repo, branch)
        for found in self.branches.get((owner, repo), []):
            if found.name == branch:
                return found.sha
        raise GitHubNotFoundError(404, "Branch not found")

    async def list_releases(self, owner: str, repo: str) -> list[Release]:
        self._record("list_releases", owner, repo)
        return list(self.releases.get((owner, repo), []))

    async def list_workflow_runs(
        self, owner: str, repo: str, workflow_file: str, *, event: str
    ) -> list[WorkflowRun]:
        self._record("list_workflow_runs", owner, repo, workflow_file, event)
        return list(self.runs.get((owner, repo, workflow_file), []))

    # ── Repository settings ──────────────────────────────────────────────

    async def get_branch_protection(
        self, owner: str, repo: str, branch: str
    ) -> BranchProtection | None:
        self._record("get_branch_protection", owner, repo, branch)
        return self.protection.get((owner, repo, branch))

    async def update_branch_protection(
        self, owner: str, repo: str, branch: str, protection: BranchProtection
    ) -> None:
        self._record("update_branch_protection", owner, repo, branch)
        self.protection[(owner, repo, branch)] = protection

    async def get_codeowners_errors(self, owner: str, repo: str) -> list[str] | None:
        self._record("get_codeowners_errors", owner, repo)
        return self.codeowners_errors.get((owner, repo))

    async def list_outside_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        self._record("list_outside_collaborators", owner, repo)
        return list(self.collaborators.get((owner, repo), []))

    async def list_direct_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        self._record("list_direct_collaborators", owner, repo)
        return list(self.direct_collaborators.get((owner, repo), []))

    async def list_teams(self, owner: str, repo: str) -> list[Team]:
        self._record("list_teams", owner, repo)
        return list(self.teams.get((owner, repo), []))

    # ── Issues ───────────────────────────────────────────────────────────

    async def list_issues(self, owner: str, repo: str, *, label: str) -> list[Issue]:
        self._record("list_issues", owner, repo, label)
        return [
            issue
            for issue in self.issues.get((owner, repo), [])
            if self.issue_labels.get((owner, repo, issue.number)) == label
        ]

    async def create_issue(
        self, owner: str, repo: str, *, title: str, body: str, labels: list[str]
    ) -> Issue:
        self._record("create_issue", owner, repo)
        existing = self.issues.setdefault((owner, repo), [])
        issue = Issue(
            number=len(existing) + 1,
            title=title,
            body=body,
            updated_at=datetime.now(UTC),
        )
        existing.append(issue)
        self.issue_labels[(owner, repo, issue.number)] = labels[0] if labels else ""
        return issue

    async def update_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        body: str | None = None,
        state: IssueState | None = None,
    ) -> Issue:
        self._record("update_issue", owner, repo, number)
        existing = self.issues[(owner, repo)]
        for index, issue in enumerate(existing):
            if issue.number != number:
                continue
            updated = replace(
                issue,
                body=issue.body if body is None else body,
                state=issue.state if state is None else state,
                updated_at=datetime.now(UTC),
            )
            existing[index] = updated
            return updated
        raise GitHubNotFoundError(404, "Issue not found")

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> str:
        self._record("create_issue_comment", owner, repo, number)
        self.comments.append((owner, repo, number, body))
        return f"https://github.com/{owner}/{repo}/issues/{number}#comment-{len(self.comments)}"

    # ── Installations ────────────────────────────────────────────────────

    async def list_installations(self) -> list[Installation]:
        self._record("list_installations")
        return list(self.installations)

    async def list_installation_repositories(self) -> list[Repository]:
        self._record("list_installation_repositories", self.installation_id)
        return list(self.installation_repos.get(self.installation_id or 0, []))

    async def delete_installation(self, installation_id: int) -> None:
        self._record("delete_installation", installation_id)
        self.deleted_installations.append(installation_id)

    async def remove_installation_repository(
        self, installation_id: int, repository_id: int
    ) -> None:
        self._record("remove_installation_repository", installation_id, repository_id)
        self.removed_repositories.append((installation_id, repository_id))


class FakeClients:
    """Client provider handing out installation views of one FakeGitHub."""

    def __init__(self, github: FakeGitHub):
        self.github = github

    def app(self) -> FakeGitHub:
        return self.github

    def get(self, installation_id: int) -> FakeGitHub:
        return self.github.scoped(installation_id)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def settings() -> OperatorSettings:
    return OperatorSettings(_env_file=None)


@pytest.fixture
def configs(settings: OperatorSettings) -> ConfigFetcher:
    return ConfigFetcher(settings)


@pytest.fixture
def clients(github: FakeGitHub) -> FakeClients:
    return FakeClients(github)
