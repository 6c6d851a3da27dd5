"""GitHub Actions allow/deny/require policy."""

from starguard.policies.action.caches import GlobCache, PatternError, SemverCache
from starguard.policies.action.policy import CONFIG_FILE, POLICY_NAME, ActionPolicy
from starguard.policies.action.rules import RuleRef, index_groups, sort_rules
from starguard.policies.action.schema import (
    ActionOrgConfig,
    ActionRepoConfig,
    ActionSelector,
    RepoSelector,
    Rule,
    RuleGroup,
)

__all__ = [
    "ActionOrgConfig",
    "ActionPolicy",
    "ActionRepoConfig",
    "ActionSelector",
    "CONFIG_FILE",
    "GlobCache",
    "POLICY_NAME",
    "PatternError",
    "RepoSelector",
    "Rule",
    "RuleGroup",
    "RuleRef",
    "SemverCache",
    "index_groups",
    "sort_rules",
]
