import asyncio

import pytest

from starguard.config.loader import ConfigFetcher
from starguard.config.location import ConfigLocation
from starguard.config.settings import OperatorSettings
from starguard.core.models import Installation
from starguard.enforce import Enforcer
from starguard.github.errors import GitHubAPIError
from starguard.issue import IssueTracker
from starguard.policies.base import PolicyResult
from starguard.telemetry.inmemory import InMemoryTelemetry


class FakePolicy:
    """Policy whose outcome per repository is set by the test."""

    def __init__(
        self,
        name: str,
        *,
        failing: set[str] = frozenset(),
        action: str = "log",
        enabled: bool = True,
        broken: set[str] = frozenset(),
    ):
        self.name = name
        self.failing = failing
        self.action = action
        self.enabled = enabled
        self.broken = broken
        self.fixed: list[str] = []
        self.checked: list[str] = []
        self.on_check = None

    async def is_enabled(self, client, owner: str, repo: str) -> bool:
        return self.enabled

    async def check(self, client, owner: str, repo: str) -> PolicyResult:
        self.checked.append(repo)
        if self.on_check is not None:
            self.on_check(repo)
        if repo in self.broken:
            raise GitHubAPIError(500, "Server Error")
        passed = repo not in self.failing
        return PolicyResult(
            enabled=True,
            passed=passed,
            notify_text="OK" if passed else f"{repo} is not compliant",
        )

    async def fix(self, client, owner: str, repo: str) -> None:
        self.fixed.append(repo)

    async def get_action(self, client, owner: str, repo: str) -> str:
        return self.action


def _install(github, installation_id: int, account: str, *repos: str, **fields) -> None:
    github.installations.append(Installation(id=installation_id, account=account, **fields))
    github.installation_repos[installation_id] = [github.add_repo(account, name) for name in repos]


@pytest.fixture
def make_enforcer(clients):
    def make(policies, settings: OperatorSettings | None = None, telemetry=None) -> Enforcer:
        settings = settings or OperatorSettings(_env_file=None)
        configs = ConfigFetcher(settings)
        return Enforcer(clients, settings, configs, policies, IssueTracker(configs), telemetry)

    return make


@pytest.mark.asyncio
async def test_failures_are_counted_per_policy(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web")
    _install(github, 2, "widgets", "app")
    policies = [FakePolicy("P", failing={"api", "app"}), FakePolicy("Q")]
    telemetry = InMemoryTelemetry()

    results = await make_enforcer(policies, telemetry=telemetry).enforce_all()

    assert results == {"P": {"totalFailed": 2}}
    assert telemetry.get_counter("repos_enforced_total") == 3
    assert telemetry.get_counter("policy_failures_total", labels=(("policy", "P"),)) == 2
    assert telemetry.get_gauge("policy_failed_repos", labels=(("policy", "P"),)) == 2
    assert telemetry.get_gauge("policy_failed_repos", labels=(("policy", "Q"),)) == 0
    assert telemetry.get_counter("enforce_runs_total") == 1


@pytest.mark.asyncio
async def test_suspended_and_archived_are_skipped(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    _install(github, 2, "paused", "app", suspended=True)
    github.installation_repos[1].append(github.add_repo("acme", "old", archived=True))

    results = await make_enforcer([FakePolicy("P", failing={"api", "app", "old"})]).enforce_all()

    assert results == {"P": {"totalFailed": 1}}
    assert github.called("list_installation_repositories") == [(1,)]


@pytest.mark.asyncio
async def test_allowed_repositories_remove_the_rest(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web", "tools")
    settings = OperatorSettings(_env_file=None, allowed_repositories=["acme/api", "acme/w*"])
    policy = FakePolicy("P", failing={"api", "web", "tools"})

    results = await make_enforcer([policy], settings).enforce_all()

    assert results == {"P": {"totalFailed": 2}}
    tools = github.repos[("acme", "tools")]
    assert github.removed_repositories == [(1, tools.id)]


@pytest.mark.asyncio
async def test_empty_allow_lists_keep_everything(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web")
    results = await make_enforcer([FakePolicy("P", failing={"api", "web"})]).enforce_all()
    assert results == {"P": {"totalFailed": 2}}
    assert github.removed_repositories == []
    assert github.deleted_installations == []


@pytest.mark.asyncio
async def test_disallowed_organizations_are_uninstalled(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    _install(github, 2, "stranger", "app")
    settings = OperatorSettings(_env_file=None, allowed_organizations=["acme"])

    results = await make_enforcer([FakePolicy("P", failing={"api", "app"})], settings).enforce_all()

    assert results == {"P": {"totalFailed": 1}}
    assert github.deleted_installations == [2]


@pytest.mark.asyncio
async def test_failing_installation_does_not_stop_others(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    _install(github, 2, "widgets", "app")
    github.fail["list_installation_repositories:1"] = GitHubAPIError(502, "Bad Gateway")
    telemetry = InMemoryTelemetry()

    results = await make_enforcer(
        [FakePolicy("P", failing={"api", "app"})], telemetry=telemetry
    ).enforce_all()

    assert results == {"P": {"totalFailed": 1}}
    assert telemetry.get_counter("installation_errors_total") == 1


@pytest.mark.asyncio
async def test_failing_repository_does_not_stop_installation(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web")
    telemetry = InMemoryTelemetry()
    policy = FakePolicy("P", failing={"api", "web"}, broken={"api"})

    results = await make_enforcer([policy], telemetry=telemetry).enforce_all()

    assert results == {"P": {"totalFailed": 1}}
    assert telemetry.get_counter("repo_errors_total") == 1
    assert telemetry.get_counter("repos_enforced_total") == 1


@pytest.mark.asyncio
async def test_list_installations_error_propagates(github, make_enforcer) -> None:
    github.fail["list_installations"] = GitHubAPIError(401, "Bad credentials")
    with pytest.raises(GitHubAPIError):
        await make_enforcer([FakePolicy("P")]).enforce_all()


@pytest.mark.asyncio
async def test_opted_out_repositories_can_be_left_alone(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    policy = FakePolicy("P", failing={"api"}, enabled=False)

    results = await make_enforcer([policy]).enforce_all()
    assert results == {"P": {"totalFailed": 1}}

    settings = OperatorSettings(_env_file=None, do_nothing_on_opt_out=True)
    results = await make_enforcer([policy], settings).enforce_all()
    assert results == {}


@pytest.mark.asyncio
async def test_issue_action_opens_and_closes_issues(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    policy = FakePolicy("Widgets", failing={"api"}, action="issue")
    enforcer = make_enforcer([policy])

    await enforcer.enforce_all()
    [issue] = github.issues[("acme", "api")]
    assert issue.title == "Security Policy violation Widgets"
    assert "api is not compliant" in issue.body

    policy.failing = set()
    await enforcer.enforce_all()
    [issue] = github.issues[("acme", "api")]
    assert issue.state == "closed"


@pytest.mark.asyncio
async def test_fix_action_calls_policy_fix(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web")
    policy = FakePolicy("P", failing={"web"}, action="fix")
    await make_enforcer([policy]).enforce_all()
    assert policy.fixed == ["web"]
    assert github.called("create_issue") == []


@pytest.mark.asyncio
async def test_policy_and_repo_filters(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web")
    policies = [FakePolicy("P", failing={"api", "web"}), FakePolicy("Q", failing={"api", "web"})]
    enforcer = make_enforcer(policies)

    results = await enforcer.enforce_all(policy_filter="Q", repo_filter="acme/web")
    assert results == {"Q": {"totalFailed": 1}}


@pytest.mark.asyncio
async def test_config_locations_are_cleared_after_installation(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    enforcer = make_enforcer([FakePolicy("P")])
    enforcer.configs.locations.put(
        "acme", ConfigLocation(exists=True, repo=".github", path="starguard")
    )

    await enforcer.enforce_installation(github.installations[0])
    assert enforcer.configs.locations.get("acme") is None


@pytest.mark.asyncio
async def test_stop_event_prevents_new_installations(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    stop = asyncio.Event()
    stop.set()
    results = await make_enforcer([FakePolicy("P", failing={"api"})]).enforce_all(stop=stop)
    assert results == {}
    assert github.called("list_installation_repositories") == []


@pytest.mark.asyncio
async def test_enforce_job_runs_until_stopped(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api")
    telemetry = InMemoryTelemetry()
    enforcer = make_enforcer([FakePolicy("P")], telemetry=telemetry)
    stop = asyncio.Event()

    job = asyncio.create_task(enforcer.enforce_job(0.01, stop))
    while telemetry.get_counter("enforce_runs_total") < 2:
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(job, timeout=1)
    assert job.done()


@pytest.mark.asyncio
async def test_enforce_job_survives_failed_passes(github, make_enforcer) -> None:
    github.fail["list_installations"] = GitHubAPIError(502, "Bad Gateway")
    enforcer = make_enforcer([FakePolicy("P")])
    stop = asyncio.Event()

    job = asyncio.create_task(enforcer.enforce_job(0.01, stop))
    while len(github.called("list_installations")) < 2:
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(job, timeout=1)


@pytest.mark.asyncio
async def test_stop_during_installation_skips_remaining_repositories(github, make_enforcer) -> None:
    names = [f"svc-{i:02d}" for i in range(20)]
    _install(github, 1, "acme", *names)
    stop = asyncio.Event()
    policy = FakePolicy("P", failing=set(names))
    policy.on_check = lambda repo: stop.set()
    telemetry = InMemoryTelemetry()
    enforcer = make_enforcer([policy], telemetry=telemetry)
    enforcer.configs.locations.put("acme", ConfigLocation(exists=False))

    results = await enforcer.enforce_all(stop=stop)

    assert policy.checked == ["svc-00"]
    assert results == {"P": {"totalFailed": 1}}
    assert telemetry.get_counter("repos_enforced_total") == 1
    assert enforcer.configs.locations.get("acme") is None


@pytest.mark.asyncio
async def test_enforce_installation_reports_processed_count(github, make_enforcer) -> None:
    _install(github, 1, "acme", "api", "web", "tools")
    stop = asyncio.Event()
    policy = FakePolicy("P")
    policy.on_check = lambda repo: stop.set() if repo == "web" else None
    enforcer = make_enforcer([policy])

    _, count = await enforcer.enforce_installation(github.installations[0], stop=stop)
    assert count == 2
    assert policy.checked == ["api", "web"]
