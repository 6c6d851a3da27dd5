"""The set of policies the enforcer runs."""

from __future__ import annotations

from starguard.config.loader import ConfigFetcher
from starguard.policies.action import ActionPolicy
from starguard.policies.admin import AdminPolicy
from starguard.policies.base import Policy
from starguard.policies.branch import BranchPolicy
from starguard.policies.codeowners import CodeownersPolicy
from starguard.policies.outside import OutsidePolicy
from starguard.policies.security import SecurityPolicy


def get_policies(configs: ConfigFetcher) -> list[Policy]:
    """Instantiate every policy, sharing one config fetcher."""
    return [
        BranchPolicy(configs),
        CodeownersPolicy(configs),
        OutsidePolicy(configs),
        AdminPolicy(configs),
        SecurityPolicy(configs),
        ActionPolicy(configs),
    ]


def policy_names(policies: list[Policy]) -> list[str]:
    return [policy.name for policy in policies]
