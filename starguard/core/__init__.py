"""Typed domain models and ports."""

from starguard.core.models import (
    Branch,
    BranchProtection,
    Collaborator,
    Commit,
    ContentEntry,
    Installation,
    Issue,
    Release,
    Repository,
    Tag,
    Team,
    WorkflowRun,
)
from starguard.core.ports import ClientProviderPort, GitHubPort

__all__ = [
    "Branch",
    "BranchProtection",
    "ClientProviderPort",
    "Collaborator",
    "Commit",
    "ContentEntry",
    "GitHubPort",
    "Installation",
    "Issue",
    "Release",
    "Repository",
    "Tag",
    "Team",
    "WorkflowRun",
]
