import pytest
from prometheus_client import CollectorRegistry

from starguard.cli.commands import build_telemetry
from starguard.config.settings import OperatorSettings
from starguard.core.models import Installation
from starguard.enforce.enforcer import Enforcer
from starguard.issue.tracker import IssueTracker
from starguard.telemetry import InMemoryTelemetry, PrometheusTelemetry, TelemetryPort


def test_prometheus_standard_metrics_are_exported() -> None:
    telemetry = PrometheusTelemetry(registry=CollectorRegistry())
    assert isinstance(telemetry, TelemetryPort)

    telemetry.incr("repos_enforced_total")
    telemetry.incr("repos_enforced_total", 2)
    telemetry.incr("policy_failures_total", labels=(("policy", "CODEOWNERS"),))
    telemetry.gauge("policy_failed_repos", 4, labels=(("policy", "CODEOWNERS"),))

    registry = telemetry.registry
    assert registry.get_sample_value("starguard_repos_enforced_total") == 3
    assert registry.get_sample_value(
        "starguard_policy_failures_total", {"policy": "CODEOWNERS"}
    ) == 1
    assert registry.get_sample_value("starguard_policy_failed_repos", {"policy": "CODEOWNERS"}) == 4


def test_prometheus_creates_unknown_metrics_on_first_use() -> None:
    telemetry = PrometheusTelemetry(registry=CollectorRegistry())

    telemetry.incr("issues_opened_total", labels=(("policy", "SECURITY.md"),))
    telemetry.gauge("queue_depth", 7)

    registry = telemetry.registry
    assert registry.get_sample_value("starguard_issues_opened_total", {"policy": "SECURITY.md"}) == 1
    assert registry.get_sample_value("starguard_queue_depth") == 7


def test_instances_do_not_share_a_registry() -> None:
    first = PrometheusTelemetry()
    second = PrometheusTelemetry()
    first.incr("enforce_runs_total")
    assert second.registry.get_sample_value("starguard_enforce_runs_total") == 0


@pytest.mark.asyncio
async def test_enforce_pass_updates_prometheus_metrics(github, settings, configs, clients) -> None:
    github.installations.append(Installation(id=1, account="acme"))
    github.installation_repos[1] = [github.add_repo("acme", "api")]
    telemetry = PrometheusTelemetry(registry=CollectorRegistry())
    enforcer = Enforcer(clients, settings, configs, [], IssueTracker(configs), telemetry)

    await enforcer.enforce_all()

    assert telemetry.registry.get_sample_value("starguard_repos_enforced_total") == 1
    assert telemetry.registry.get_sample_value("starguard_enforce_runs_total") == 1


def test_periodic_job_uses_prometheus_when_port_is_set() -> None:
    settings = OperatorSettings(_env_file=None, metrics_port=9464)
    assert isinstance(build_telemetry(settings, once=False), PrometheusTelemetry)
    assert isinstance(build_telemetry(settings, once=True), InMemoryTelemetry)
    assert isinstance(
        build_telemetry(OperatorSettings(_env_file=None), once=False), InMemoryTelemetry
    )
