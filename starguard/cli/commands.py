"""CLI commands for starguard."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError
from rich.table import Table

from starguard import __logo__
from starguard.cli.core import app, configure_logging, console
from starguard.config.loader import ConfigFetcher, parse_yaml_mapping
from starguard.config.settings import OperatorSettings
from starguard.enforce.enforcer import TOTAL_FAILED, EnforceAllResults, Enforcer
from starguard.github.clients import GitHubClients
from starguard.issue.tracker import IssueTracker
from starguard.policies.action.rules import index_groups, sort_rules
from starguard.policies.action.schema import ActionOrgConfig
from starguard.policies.registry import get_policies, policy_names
from starguard.telemetry import InMemoryTelemetry, PrometheusConfig, PrometheusTelemetry, TelemetryPort


async def _run_enforce(
    settings: OperatorSettings,
    telemetry: TelemetryPort,
    *,
    once: bool,
    policy: str,
    repo: str,
) -> EnforceAllResults | None:
    clients = GitHubClients(settings.github_token, base_url=settings.github_api_url)
    configs = ConfigFetcher(settings)
    enforcer = Enforcer(
        clients, settings, configs, get_policies(configs), IssueTracker(configs), telemetry
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")

    try:
        if once:
            return await enforcer.enforce_all(policy_filter=policy, repo_filter=repo, stop=stop)
        logger.info(f"Enforcing every {settings.enforce_interval_seconds:.0f}s, Ctrl+C to stop")
        await enforcer.enforce_job(
            settings.enforce_interval_seconds, stop, policy_filter=policy, repo_filter=repo
        )
        return None
    finally:
        await clients.aclose()


def build_telemetry(settings: OperatorSettings, *, once: bool) -> TelemetryPort:
    """Prometheus for the periodic job when a metrics port is set, in-memory otherwise."""
    if once or not settings.metrics_port:
        return InMemoryTelemetry()
    return PrometheusTelemetry(PrometheusConfig(port=settings.metrics_port, host=settings.metrics_host))


def _print_results(results: EnforceAllResults, telemetry: InMemoryTelemetry) -> None:
    table = Table(title="Policy Failures")
    table.add_column("Policy", style="cyan")
    table.add_column("Failing repositories", style="red", justify="right")
    for name, counts in sorted(results.items()):
        table.add_row(name, str(counts.get(TOTAL_FAILED, 0)))
    console.print(table)
    console.print(
        f"Repositories enforced: {telemetry.get_counter('repos_enforced_total')}, "
        f"repository errors: {telemetry.get_counter('repo_errors_total')}, "
        f"installation errors: {telemetry.get_counter('installation_errors_total')}"
    )


@app.command()
def enforce(
    once: bool = typer.Option(False, "--once", help="Run a single pass and exit"),
    policy: str = typer.Option("", "--policy", "-p", help="Only run the named policy"),
    repo: str = typer.Option("", "--repo", "-r", help="Only enforce OWNER/REPO"),
) -> None:
    """Enforce policies on every installed repository."""
    settings = OperatorSettings()
    configure_logging(settings.log_level)

    if policy and policy not in policy_names(get_policies(ConfigFetcher(settings))):
        console.print(f"[red]Unknown policy: {policy}[/red]")
        raise typer.Exit(1)
    if not settings.github_token:
        console.print("[yellow]STARGUARD_GITHUB_TOKEN is not set, requests are unauthenticated[/yellow]")

    telemetry = build_telemetry(settings, once=once)
    if isinstance(telemetry, PrometheusTelemetry):
        telemetry.start()
    results = asyncio.run(
        _run_enforce(settings, telemetry, once=once, policy=policy, repo=repo)
    )
    if results is None:
        console.print(f"{__logo__} Enforcement stopped")
        return
    if not results:
        console.print("[green]✓[/green] No policy failures")
    if isinstance(telemetry, InMemoryTelemetry):
        _print_results(results, telemetry)


@app.command()
def policies() -> None:
    """List registered policies and their configuration files."""
    table = Table(title="Policies")
    table.add_column("Policy", style="cyan")
    table.add_column("Config file", style="yellow")
    for policy in get_policies(ConfigFetcher(OperatorSettings())):
        table.add_row(policy.name, getattr(policy, "config_file", ""))
    console.print(table)


@app.command("validate-actions")
def validate_actions(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="actions.yaml to check"),
) -> None:
    """Validate an org-level actions.yaml and show its rules in evaluation order."""
    data = parse_yaml_mapping(path.read_text(encoding="utf-8"), source=str(path))
    if data is None:
        console.print(f"[red]{path} is not a YAML mapping[/red]")
        raise typer.Exit(1)
    try:
        config = ActionOrgConfig.model_validate(data)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(1)

    console.print(f"Action: [cyan]{config.action}[/cyan], groups: {len(config.groups)}")
    for group, refs in index_groups(config):
        table = Table(title=f"Group {group.name or '(nameless)'}")
        table.add_column("#", justify="right")
        table.add_column("Rule", style="cyan")
        table.add_column("Method")
        table.add_column("Priority")
        table.add_column("Actions")
        for ref in sort_rules(refs):
            selectors = ref.rule.actions or []
            actions = ", ".join(
                f"{s.name or '*'}@{s.version}" if s.version else (s.name or "*") for s in selectors
            )
            table.add_row(
                str(ref.rule_index),
                ref.rule.name or "(nameless)",
                ref.method,
                ref.rule.priority,
                actions or "*",
            )
        console.print(table)
