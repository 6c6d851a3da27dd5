"""Evaluation results of the deny and require evaluators, and their text."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from starguard.policies.action.rules import RuleRef
from starguard.policies.action.workflows import ActionUse


class DenyStepStatus(StrEnum):
    MISSING_ACTION = "missingAction"
    ACTION_VERSION_MISMATCH = "actionVersionMismatch"
    ALLOWED = "allowed"
    DENIED = "denied"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({DenyStepStatus.ALLOWED, DenyStepStatus.DENIED})


@dataclass(frozen=True, slots=True, kw_only=True)
class DenyStep:
    """Outcome of checking one rule against one action use."""

    status: DenyStepStatus
    rule: RuleRef
    # Set for ACTION_VERSION_MISMATCH.
    version_constraint: str = ""

    def describe(self) -> str:
        rule = self.rule.describe()
        match self.status:
            case DenyStepStatus.ACTION_VERSION_MISMATCH:
                return f'does not meet version requirement "{self.version_constraint}" for {rule}'
            case DenyStepStatus.MISSING_ACTION:
                return f"is not listed in {rule}"
            case DenyStepStatus.ALLOWED:
                return f"allowed by {rule}"
            case DenyStepStatus.DENIED:
                return f"denied by {rule}"
            case DenyStepStatus.ERROR:
                return f"{self.rule.describe(capitalize=True)} experienced an error"


@dataclass(frozen=True, slots=True, kw_only=True)
class DenyResult:
    use: ActionUse
    denied: bool
    denying_rule: RuleRef | None
    steps: tuple[DenyStep, ...]

    @property
    def passed(self) -> bool:
        return not self.denied

    @property
    def relevant_rule(self) -> RuleRef | None:
        return self.denying_rule

    def explain(self) -> str:
        head = f'Action "{self.use.name}" version {self.use.version_ref}'
        if self.denied and self.denying_rule is not None:
            text = f"{head} hit {self.denying_rule.describe()}:\n"
        else:
            text = f"{head} did not hit a deny rule.\n"
        return text + "".join(f"-> {step.describe()}\n" for step in self.steps)


class FixMethod(StrEnum):
    ADD = "add"
    UPDATE = "update"
    ENABLE = "enable"
    FIX = "fix"


# Higher is more specific; the most specific fix found wins.
FIX_SPECIFICITY = {
    FixMethod.ADD: 0,
    FixMethod.UPDATE: 1,
    FixMethod.ENABLE: 2,
    FixMethod.FIX: 2,
}


@dataclass(frozen=True, slots=True, kw_only=True)
class RequireFix:
    method: FixMethod
    action_name: str
    version_constraint: str = ""
    workflow_name: str = ""

    def describe(self) -> str:
        match self.method:
            case FixMethod.ADD:
                return (
                    f'Add Action "{self.action_name}" with version satisfying '
                    f'"{self.version_constraint}"'
                )
            case FixMethod.UPDATE:
                return (
                    f'Update Action "{self.action_name}" to version satisfying '
                    f'"{self.version_constraint}"'
                )
            case FixMethod.ENABLE:
                return (
                    f'Enable workflow "{self.workflow_name}" containing Action '
                    f'"{self.action_name}" to run on push and pull_request'
                )
            case FixMethod.FIX:
                return f'Fix failing Action "{self.action_name}"'


@dataclass(frozen=True, slots=True, kw_only=True)
class RequireResult:
    rule: RuleRef
    satisfied: bool
    number_required: int
    number_satisfied: int
    fixes: tuple[RequireFix, ...] = ()

    @property
    def passed(self) -> bool:
        return self.satisfied

    @property
    def relevant_rule(self) -> RuleRef:
        return self.rule

    def explain(self) -> str:
        state = "satisfied" if self.satisfied else "not satisfied"
        text = f"{self.rule.describe(capitalize=True)} {state}:\n"
        text += f"-> {self.number_satisfied} / {self.number_required} requisites met\n"
        if self.satisfied:
            return text
        text += (
            f"-> To resolve, do {self.number_required - self.number_satisfied} "
            "of the following:\n"
        )
        return text + "".join(f"     - {fix.describe()}\n" for fix in self.fixes)


type EvaluationResult = DenyResult | RequireResult


def failed_rule_details(failures: list[EvaluationResult]) -> dict[str, Any]:
    """Failing rules, each listed once in first-seen order."""
    seen: set[tuple[int, int]] = set()
    rules: list[dict[str, Any]] = []
    for result in failures:
        ref = result.relevant_rule
        if ref is None or ref.key in seen:
            continue
        seen.add(ref.key)
        rules.append(
            {
                "group": ref.group_name,
                "name": ref.rule.name,
                "method": ref.rule.method,
                "priority": ref.rule.priority,
            }
        )
    return {"failedRules": rules}
