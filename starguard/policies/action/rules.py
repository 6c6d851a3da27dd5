"""Rule references with their owning group, and the priority sorter."""

from __future__ import annotations

from dataclasses import dataclass

from starguard.policies.action.schema import ActionOrgConfig, Rule, RuleGroup


@dataclass(frozen=True, slots=True, kw_only=True)
class RuleRef:
    """A rule addressed by (group index, rule index) with display context."""

    group_index: int
    rule_index: int
    group_name: str
    rule: Rule

    @property
    def key(self) -> tuple[int, int]:
        return (self.group_index, self.rule_index)

    @property
    def priority(self) -> int:
        return self.rule.priority_rank

    @property
    def method(self) -> str:
        return self.rule.method

    def describe(self, *, capitalize: bool = False) -> str:
        """Human-readable rule name, e.g. ``deny rule "x" (member of rule group "g")``."""
        method = self.rule.method.capitalize() if capitalize else self.rule.method
        if self.rule.name:
            text = f'{method} rule "{self.rule.name}"'
        else:
            text = f"Nameless {method} rule"
        if self.group_name:
            return f'{text} (member of rule group "{self.group_name}")'
        return f"{text} (member of nameless rule group)"


def index_groups(config: ActionOrgConfig) -> list[tuple[RuleGroup, list[RuleRef]]]:
    """Pair each group with references to its rules, in declaration order."""
    return [
        (
            group,
            [
                RuleRef(group_index=gi, rule_index=ri, group_name=group.name, rule=rule)
                for ri, rule in enumerate(group.rules)
            ],
        )
        for gi, group in enumerate(config.groups)
    ]


def sort_rules(rules: list[RuleRef]) -> list[RuleRef]:
    """Order by priority tier, then allow/require ahead of deny.

    The sort is stable, so ties keep declaration order.
    """
    return sorted(rules, key=lambda ref: (ref.priority, ref.method == "deny"))
