"""Enforcement orchestration."""

from starguard.enforce.enforcer import (
    TOTAL_FAILED,
    EnforceAllResults,
    EnforceRepoResults,
    Enforcer,
)

__all__ = [
    "EnforceAllResults",
    "EnforceRepoResults",
    "Enforcer",
    "TOTAL_FAILED",
]
