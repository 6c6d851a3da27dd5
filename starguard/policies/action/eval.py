"""Deny and require rule evaluation."""

from __future__ import annotations

from loguru import logger

from starguard.core.models import WorkflowRun
from starguard.core.ports import RepositoryIntrospectionPort
from starguard.github.errors import GitHubError
from starguard.policies.action.caches import PatternError
from starguard.policies.action.results import (
    FIX_SPECIFICITY,
    TERMINAL_STATUSES,
    DenyResult,
    DenyStep,
    DenyStepStatus,
    FixMethod,
    RequireFix,
    RequireResult,
)
from starguard.policies.action.rules import RuleRef
from starguard.policies.action.schema import ActionSelector
from starguard.policies.action.selectors import SelectorMatch, SelectorMatcher
from starguard.policies.action.version import VersionResolutionError
from starguard.policies.action.workflows import ActionUse

MATCH_ERRORS = (PatternError, VersionResolutionError, GitHubError)
REQUIRED_TRIGGERS = frozenset({"push", "pull_request"})
PENDING_RUN_STATUSES = frozenset({"queued", "in_progress", "waiting", "requested", "pending"})


async def _allow_step(
    matcher: SelectorMatcher, ref: RuleRef, use: ActionUse, errors: list[Exception]
) -> DenyStep:
    if not ref.rule.actions:
        return DenyStep(status=DenyStepStatus.ALLOWED, rule=ref)
    status = DenyStepStatus.MISSING_ACTION
    constraint = ""
    for selector in ref.rule.actions:
        try:
            result = await matcher.match_action(selector, use)
        except MATCH_ERRORS as e:
            errors.append(e)
            if status is DenyStepStatus.MISSING_ACTION:
                status = DenyStepStatus.ERROR
            continue
        if result.matched:
            return DenyStep(status=DenyStepStatus.ALLOWED, rule=ref)
        if result.name_matched and status is not DenyStepStatus.ACTION_VERSION_MISMATCH:
            status = DenyStepStatus.ACTION_VERSION_MISMATCH
            constraint = selector.version
    return DenyStep(status=status, rule=ref, version_constraint=constraint)


async def _deny_step(
    matcher: SelectorMatcher, ref: RuleRef, use: ActionUse, errors: list[Exception]
) -> DenyStep:
    if not ref.rule.actions:
        return DenyStep(status=DenyStepStatus.DENIED, rule=ref)
    errored = False
    for selector in ref.rule.actions:
        try:
            result = await matcher.match_action(selector, use)
        except MATCH_ERRORS as e:
            errors.append(e)
            errored = True
            continue
        if result.matched:
            return DenyStep(status=DenyStepStatus.DENIED, rule=ref)
    status = DenyStepStatus.ERROR if errored else DenyStepStatus.MISSING_ACTION
    return DenyStep(status=status, rule=ref)


async def evaluate_action_denied(
    matcher: SelectorMatcher, rules: list[RuleRef], use: ActionUse
) -> tuple[DenyResult, list[Exception]]:
    """Walk sorted rules for one action use until one allows or denies it.

    Matcher errors become ``error`` steps and are returned for logging.
    """
    steps: list[DenyStep] = []
    errors: list[Exception] = []
    denying: RuleRef | None = None
    for ref in rules:
        if ref.method in ("allow", "require"):
            step = await _allow_step(matcher, ref, use, errors)
        elif ref.method == "deny":
            step = await _deny_step(matcher, ref, use, errors)
        else:
            continue
        steps.append(step)
        if step.status in TERMINAL_STATUSES:
            if step.status is DenyStepStatus.DENIED:
                denying = ref
            break
    result = DenyResult(use=use, denied=denying is not None, denying_rule=denying, steps=tuple(steps))
    return result, errors


def _prefer(current: RequireFix | None, candidate: RequireFix) -> RequireFix:
    if current is None or FIX_SPECIFICITY[candidate.method] > FIX_SPECIFICITY[current.method]:
        return candidate
    return current


class RunHistory:
    """Workflow runs per workflow file, fetched once per check."""

    def __init__(self, client: RepositoryIntrospectionPort, owner: str, repo: str):
        self.client = client
        self.owner = owner
        self.repo = repo
        self._runs: dict[str, list[WorkflowRun]] = {}

    async def runs(self, workflow_filename: str) -> list[WorkflowRun]:
        cached = self._runs.get(workflow_filename)
        if cached is None:
            cached = await self.client.list_workflow_runs(
                self.owner, self.repo, workflow_filename, event="push"
            )
            self._runs[workflow_filename] = cached
        return cached

    async def passing_on(self, workflow_filename: str, head_sha: str) -> bool:
        """A successful run on the head commit, or one still pending there."""
        for run in await self.runs(workflow_filename):
            if run.head_sha != head_sha:
                continue
            if run.status == "completed" and run.conclusion == "success":
                return True
            if run.status in PENDING_RUN_STATUSES:
                return True
        return False


async def evaluate_require_rule(
    matcher: SelectorMatcher,
    history: RunHistory,
    ref: RuleRef,
    uses: list[ActionUse],
    head_sha: str | None,
) -> RequireResult:
    """Count the rule's selectors satisfied by some action use.

    Each unmet selector yields its most specific fix. Workflow run lookups
    for ``mustPass`` rules raise on API errors.
    """
    rule = ref.rule
    selectors = rule.actions or [ActionSelector()]
    number_required = len(selectors) if rule.require_all else 1
    number_satisfied = 0
    fixes: list[RequireFix] = []

    for selector in selectors:
        best: RequireFix | None = None
        satisfied = False
        for use in uses:
            try:
                match: SelectorMatch = await matcher.match_action(selector, use)
            except MATCH_ERRORS as e:
                logger.warning(f"Error matching {use.name}@{use.version_ref} for {ref.describe()}: {e}")
                continue
            if not match.matched:
                if match.name_matched:
                    best = _prefer(
                        best,
                        RequireFix(
                            method=FixMethod.UPDATE,
                            action_name=use.name,
                            version_constraint=selector.version,
                        ),
                    )
                continue
            if rule.must_pass:
                if not REQUIRED_TRIGGERS <= use.trigger_events:
                    best = _prefer(
                        best,
                        RequireFix(
                            method=FixMethod.ENABLE,
                            action_name=use.name,
                            version_constraint=selector.version,
                            workflow_name=use.workflow_name,
                        ),
                    )
                    continue
                if head_sha is None or not await history.passing_on(use.workflow_filename, head_sha):
                    best = _prefer(
                        best,
                        RequireFix(
                            method=FixMethod.FIX,
                            action_name=use.name,
                            version_constraint=selector.version,
                        ),
                    )
                    continue
            satisfied = True
            break

        if satisfied:
            number_satisfied += 1
            continue
        fixes.append(
            best
            or RequireFix(
                method=FixMethod.ADD,
                action_name=selector.name or "*",
                version_constraint=selector.version,
            )
        )

    return RequireResult(
        rule=ref,
        satisfied=number_satisfied >= number_required,
        number_required=number_required,
        number_satisfied=number_satisfied,
        fixes=tuple(fixes),
    )
