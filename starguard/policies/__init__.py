"""Compliance policies."""

from starguard.policies.base import (
    DISABLED_TEXT,
    PASS_TEXT,
    LayeredPolicy,
    Policy,
    PolicyResult,
    apply_overrides,
)

__all__ = [
    "DISABLED_TEXT",
    "LayeredPolicy",
    "PASS_TEXT",
    "Policy",
    "PolicyResult",
    "apply_overrides",
]
