"""Domain models for GitHub objects the policies inspect."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

type IssueState = Literal["open", "closed"]
type ContentType = Literal["file", "dir", "symlink", "submodule"]


@dataclass(frozen=True, slots=True, kw_only=True)
class Installation:
    """One app installation on an account."""

    id: int
    account: str
    suspended: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class Repository:
    """Repository metadata used for enablement and protection checks."""

    id: int
    owner: str
    name: str
    default_branch: str = "main"
    private: bool = False
    archived: bool = False
    fork: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True, kw_only=True)
class ContentEntry:
    """One entry of a directory listing."""

    name: str
    path: str
    type: ContentType = "file"


@dataclass(frozen=True, slots=True, kw_only=True)
class Commit:
    sha: str
    parents: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class Tag:
    name: str
    sha: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Branch:
    name: str
    sha: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Release:
    tag_name: str
    target_commitish: str


@dataclass(frozen=True, slots=True, kw_only=True)
class WorkflowRun:
    """One run of a workflow file."""

    head_sha: str
    status: str
    conclusion: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class Issue:
    """Tracking issue opened by the bot."""

    number: int
    title: str
    body: str = ""
    state: IssueState = "open"
    updated_at: datetime | None = None
    html_url: str = ""


@dataclass(frozen=True, slots=True, kw_only=True)
class Collaborator:
    """Repository collaborator with the permissions GitHub reports."""

    login: str
    permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True, kw_only=True)
class Team:
    """Team with access to a repository."""

    slug: str
    permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True, kw_only=True)
class BranchProtection:
    """The subset of branch protection settings the bot enforces."""

    enforce_admins: bool = False
    require_approval: bool = False
    approval_count: int = 0
    dismiss_stale_reviews: bool = False
    require_code_owner_reviews: bool = False
    require_status_checks: bool = False
    require_up_to_date_branch: bool = False
    status_check_contexts: tuple[str, ...] = ()
    allow_force_pushes: bool = False
    allow_deletions: bool = False
