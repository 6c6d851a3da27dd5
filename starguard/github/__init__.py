"""GitHub REST access."""

from starguard.github.client import DEFAULT_API_URL, GitHubClient
from starguard.github.clients import GitHubClients
from starguard.github.errors import (
    GitHubAPIError,
    GitHubError,
    GitHubForbiddenError,
    GitHubNotFoundError,
)

__all__ = [
    "DEFAULT_API_URL",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubClients",
    "GitHubError",
    "GitHubForbiddenError",
    "GitHubNotFoundError",
]
