"""Errors raised by the GitHub REST client."""

from __future__ import annotations


class GitHubError(Exception):
    """Base error for GitHub access."""


class GitHubAPIError(GitHubError):
    """Non-success HTTP response from the GitHub API."""

    def __init__(self, status_code: int, message: str, *, url: str = ""):
        super().__init__(f"GitHub API {status_code} for {url or '<request>'}: {message}")
        self.status_code = status_code
        self.message = message
        self.url = url


class GitHubNotFoundError(GitHubAPIError):
    """404: the requested object does not exist."""


class GitHubForbiddenError(GitHubAPIError):
    """403: the token lacks permission for the request."""


def is_issues_disabled(exc: GitHubAPIError) -> bool:
    """True when the response means issues are turned off for the repository."""
    return exc.status_code in (403, 410)
