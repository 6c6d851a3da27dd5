"""Action and repository selector matching."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from starguard.core.ports import RepositoryIntrospectionPort
from starguard.policies.action.caches import GlobCache, PatternError, SemverCache
from starguard.policies.action.schema import ActionSelector, RepoSelector
from starguard.policies.action.version import (
    NoCorrespondingCommitError,
    NoMatchingReleaseError,
    RefGraph,
    has_ordering_comparator,
    load_ref_graph,
    parse_version_constraint,
    resolve_version,
    split_action_name,
)
from starguard.policies.action.workflows import ActionUse

REPO_SELECTOR_EXCLUDE_DEPTH = 3
SIGNIFICANT_LANGUAGE_BYTES = 3000


@dataclass(frozen=True, slots=True)
class SelectorMatch:
    """Overall match plus its name/version decomposition."""

    matched: bool
    name_matched: bool
    version_matched: bool


NO_MATCH = SelectorMatch(False, False, False)
FULL_MATCH = SelectorMatch(True, True, True)
VERSION_MISMATCH = SelectorMatch(False, True, False)


def language_satisfied(languages: dict[str, int], wanted: list[str]) -> bool:
    """True when a wanted language is significant in the repository.

    Significant means more than SIGNIFICANT_LANGUAGE_BYTES bytes, or being
    the single largest language regardless of size.
    """
    significant = {name.lower() for name, size in languages.items() if size > SIGNIFICANT_LANGUAGE_BYTES}
    if languages:
        top = max(languages.items(), key=lambda item: item[1])[0]
        significant.add(top.lower())
    return any(want.lower() in significant for want in wanted)


class SelectorMatcher:
    """Matches selectors during one check, memoizing API lookups it needs."""

    def __init__(
        self,
        client: RepositoryIntrospectionPort,
        globs: GlobCache,
        semvers: SemverCache,
    ):
        self.client = client
        self.globs = globs
        self.semvers = semvers
        self._graphs: dict[str, RefGraph] = {}
        self._languages: dict[str, dict[str, int]] = {}

    async def match_action(self, selector: ActionSelector, use: ActionUse) -> SelectorMatch:
        """Match one action use.

        Raises PatternError for a bad name glob; API errors propagate.
        """
        if selector.name and not self.globs.match(selector.name, use.name):
            return NO_MATCH
        if not selector.version or selector.version == use.version_ref:
            return FULL_MATCH
        try:
            constraint = self.semvers.compile(selector.version)
        except PatternError:
            if has_ordering_comparator(selector.version):
                matched = await self._match_ref_constraint(selector.version, use)
                return FULL_MATCH if matched else VERSION_MISMATCH
            # A literal ref that is not equal to the used ref.
            return VERSION_MISMATCH
        try:
            version = await resolve_version(self.client, self.semvers, use.name, use.version_ref)
        except NoMatchingReleaseError as e:
            logger.debug(f"{e}; treating {use.name}@{use.version_ref} as not matching")
            return VERSION_MISMATCH
        return FULL_MATCH if constraint.check(version) else VERSION_MISMATCH

    async def _match_ref_constraint(self, text: str, use: ActionUse) -> bool:
        owner, repo = split_action_name(use.name)
        graph = self._graphs.get(use.name)
        if graph is None:
            graph = await load_ref_graph(self.client, owner, repo)
            self._graphs[use.name] = graph
        try:
            constraint = parse_version_constraint(graph, text)
            candidate = graph.resolve(use.version_ref)
        except NoCorrespondingCommitError as e:
            logger.debug(f"Ref constraint {text!r} on {use.name}: {e}")
            return False
        return constraint.matches(graph, candidate)

    async def languages(self, owner: str, repo: str) -> dict[str, int]:
        key = f"{owner}/{repo}"
        cached = self._languages.get(key)
        if cached is None:
            cached = await self.client.list_languages(owner, repo)
            self._languages[key] = cached
        return cached

    async def match_repo(
        self,
        selector: RepoSelector,
        owner: str,
        repo: str,
        exclude_depth: int = REPO_SELECTOR_EXCLUDE_DEPTH,
    ) -> bool:
        """Match a repository; errors in exclusions are ignored."""
        if selector.name and not self.globs.match(selector.name, repo):
            return False
        if selector.languages and not language_satisfied(
            await self.languages(owner, repo), selector.languages
        ):
            return False
        if exclude_depth != 0:
            for exclusion in selector.exclude:
                try:
                    excluded = await self.match_repo(exclusion, owner, repo, exclude_depth - 1)
                except Exception as e:
                    logger.debug(f"Ignoring failed exclusion for {owner}/{repo}: {e}")
                    continue
                if excluded:
                    return False
        return True
