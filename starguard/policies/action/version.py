"""Resolving action references to versions and commit-graph constraints."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger
from packaging.version import Version

from starguard.core.ports import RepositoryIntrospectionPort
from starguard.policies.action.caches import PatternError, SemverCache

type Comparator = Literal["=", ">", ">=", "<", "<="]
type RefKind = Literal["commit", "tag", "branch"]

_CONSTRAINT = re.compile(r"^\s*(?P<op>>=|<=|=|>|<)?\s*(?P<token>\S+)\s*$")
_ORDERING = re.compile(r"^\s*(>=|<=|>|<)")
_MIN_SHA_PREFIX = 7


class VersionResolutionError(Exception):
    """A version reference could not be resolved."""


class NoMatchingReleaseError(VersionResolutionError):
    """No release of the action repository targets the referenced commit."""


class NoCorrespondingCommitError(VersionResolutionError):
    """A constraint token names no commit, tag or branch."""


def split_action_name(name: str) -> tuple[str, str]:
    owner, _, repo = name.partition("/")
    return owner, repo.split("/", 1)[0]


async def resolve_version(
    client: RepositoryIntrospectionPort,
    semvers: SemverCache,
    action_name: str,
    version_ref: str,
) -> Version:
    """Return ``version_ref`` as a version, via a release tag if it is a commit.

    Raises NoMatchingReleaseError when no release targets the ref.
    """
    try:
        return semvers.version(version_ref)
    except PatternError:
        pass
    owner, repo = split_action_name(action_name)
    for release in await client.list_releases(owner, repo):
        if release.target_commitish != version_ref:
            continue
        try:
            return semvers.version(release.tag_name)
        except PatternError:
            logger.debug(f"Release tag {release.tag_name!r} of {action_name} is not a version")
    raise NoMatchingReleaseError(f"no release of {action_name} targets {version_ref}")


def has_ordering_comparator(text: str) -> bool:
    return _ORDERING.match(text) is not None


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitVersion:
    """A ref resolved to a commit. Equal iff the commit ids are equal."""

    sha: str
    kind: RefKind = field(compare=False)


@dataclass(slots=True)
class RefGraph:
    """Commit adjacency and refs of one repository, built once per check."""

    successors: dict[str, list[str]] = field(default_factory=dict)
    predecessors: dict[str, list[str]] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    branches: dict[str, str] = field(default_factory=dict)

    @property
    def tagged(self) -> set[str]:
        return set(self.tags.values())

    def resolve(self, token: str) -> CommitVersion:
        """Classify ``token`` as a commit, then tag, then branch."""
        if token in self.predecessors:
            return CommitVersion(sha=token, kind="commit")
        if len(token) >= _MIN_SHA_PREFIX:
            candidates = [sha for sha in self.predecessors if sha.startswith(token)]
            if len(candidates) == 1:
                return CommitVersion(sha=candidates[0], kind="commit")
        if token in self.tags:
            return CommitVersion(sha=self.tags[token], kind="tag")
        if token in self.branches:
            return CommitVersion(sha=self.branches[token], kind="branch")
        raise NoCorrespondingCommitError(f"{token!r} matches no commit, tag or branch")


async def load_ref_graph(client: RepositoryIntrospectionPort, owner: str, repo: str) -> RefGraph:
    graph = RefGraph()
    for commit in await client.list_commits(owner, repo):
        graph.predecessors[commit.sha] = list(commit.parents)
        graph.successors.setdefault(commit.sha, [])
        for parent in commit.parents:
            graph.successors.setdefault(parent, []).append(commit.sha)
    graph.tags = {tag.name: tag.sha for tag in await client.list_tags(owner, repo)}
    graph.branches = {branch.name: branch.sha for branch in await client.list_branches(owner, repo)}
    return graph


@dataclass(frozen=True, slots=True, kw_only=True)
class RefConstraint:
    """``<comparator> <ref>`` evaluated against the commit graph."""

    comparator: Comparator
    target: CommitVersion
    token: str

    def matches(self, graph: RefGraph, candidate: CommitVersion) -> bool:
        if self.comparator == "=":
            return candidate == self.target

        forward = self.comparator in (">", ">=")
        strict = self.comparator in (">", "<")
        edges = graph.successors if forward else graph.predecessors
        queue = deque([self.target.sha])
        visited = {self.target.sha}
        while queue:
            sha = queue.popleft()
            if sha == candidate.sha and not (strict and sha == self.target.sha):
                if self.target.kind == "tag":
                    return sha in graph.tagged
                return True
            for nxt in edges.get(sha, ()):
                if nxt not in visited:
                    visited.add(nxt)
                    queue.append(nxt)
        return False


def parse_version_constraint(graph: RefGraph, text: str) -> RefConstraint:
    """Parse ``[comparator] token``; the comparator defaults to ``=``."""
    parsed = _CONSTRAINT.match(text)
    if parsed is None:
        raise NoCorrespondingCommitError(f"invalid ref constraint {text!r}")
    token = parsed.group("token")
    comparator: Comparator = parsed.group("op") or "="  # type: ignore[assignment]
    return RefConstraint(comparator=comparator, target=graph.resolve(token), token=token)
