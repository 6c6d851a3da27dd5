"""Port interfaces between the policies and the hosting platform."""

from __future__ import annotations

from typing import Protocol

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


class RepositoryIntrospectionPort(Protocol):
    """Read access to repository contents and history."""

    async def get_repository(self, owner: str, repo: str) -> Repository:
        """Return repository metadata."""

    async def get_file_text(self, owner: str, repo: str, path: str) -> str | None:
        """Return decoded file content, or None when the path does not exist."""

    async def list_directory(self, owner: str, repo: str, path: str) -> list[ContentEntry]:
        """List a directory, empty when it does not exist."""

    async def list_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Return language name to byte count."""

    async def list_commits(self, owner: str, repo: str) -> list[Commit]:
        """List commits with their parent links."""

    async def list_tags(self, owner: str, repo: str) -> list[Tag]:
        """List tags with their target commits."""

    async def list_branches(self, owner: str, repo: str) -> list[Branch]:
        """List branches with their head commits."""

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        """Return the head commit SHA of one branch."""

    async def list_releases(self, owner: str, repo: str) -> list[Release]:
        """List releases."""

    async def list_workflow_runs(
        self, owner: str, repo: str, workflow_file: str, *, event: str
    ) -> list[WorkflowRun]:
        """List runs of one workflow file triggered by ``event``."""


class RepositorySettingsPort(Protocol):
    """Protection and access settings checked by the simple policies."""

    async def get_branch_protection(
        self, owner: str, repo: str, branch: str
    ) -> BranchProtection | None:
        """Return branch protection, or None when the branch is unprotected."""

    async def update_branch_protection(
        self, owner: str, repo: str, branch: str, protection: BranchProtection
    ) -> None:
        """Replace the protection settings of one branch."""

    async def get_codeowners_errors(self, owner: str, repo: str) -> list[str] | None:
        """Return CODEOWNERS syntax errors, or None when no CODEOWNERS file exists."""

    async def list_outside_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        """List collaborators that are not organization members."""

    async def list_direct_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        """List collaborators granted access on the repository itself."""

    async def list_teams(self, owner: str, repo: str) -> list[Team]:
        """List teams with access to the repository."""


class IssuePort(Protocol):
    """Issue tracker access for result bookkeeping."""

    async def list_issues(self, owner: str, repo: str, *, label: str) -> list[Issue]:
        """List open and closed issues carrying ``label``."""

    async def create_issue(
        self, owner: str, repo: str, *, title: str, body: str, labels: list[str]
    ) -> Issue:
        """Open a new issue."""

    async def update_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        body: str | None = None,
        state: IssueState | None = None,
    ) -> Issue:
        """Edit body and/or state of an issue."""

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> str:
        """Add a comment to an issue and return its URL."""


class InstallationDirectoryPort(Protocol):
    """App installation listing and access revocation."""

    async def list_installations(self) -> list[Installation]:
        """List all installations of the app."""

    async def list_installation_repositories(self) -> list[Repository]:
        """List repositories the installation can access."""

    async def delete_installation(self, installation_id: int) -> None:
        """Uninstall the app from an account."""

    async def remove_installation_repository(
        self, installation_id: int, repository_id: int
    ) -> None:
        """Revoke the installation's access to one repository."""


class GitHubPort(
    RepositoryIntrospectionPort,
    RepositorySettingsPort,
    IssuePort,
    InstallationDirectoryPort,
    Protocol,
):
    """Everything the bot needs from one authenticated GitHub client."""


class ClientProviderPort(Protocol):
    """Hands out clients scoped to the app or to one installation."""

    def app(self) -> GitHubPort:
        """Return the app-level client."""

    def get(self, installation_id: int) -> GitHubPort:
        """Return the client for one installation."""
