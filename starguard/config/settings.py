"""Operator settings read from the environment."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings, NoDecode

from starguard.github.client import DEFAULT_API_URL


class OperatorSettings(BaseSettings):
    """Deployment-wide settings (``STARGUARD_*`` environment variables)."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_prefix="STARGUARD_",
        env_nested_delimiter="__",
    )

    github_api_url: str = DEFAULT_API_URL
    github_token: str = ""

    # Skip every side effect for repositories that opted out.
    do_nothing_on_opt_out: bool = False
    # Installations on other accounts are uninstalled; empty allows all.
    allowed_organizations: Annotated[list[str], NoDecode] = []
    # Repository name globs; repositories outside the list lose app access.
    allowed_repositories: Annotated[list[str], NoDecode] = []

    num_workers: int = 5
    enforce_interval_seconds: float = 300.0
    notice_ping_duration_hours: float = 24.0
    log_level: str = "INFO"
    # Prometheus endpoint for the periodic job; 0 disables it.
    metrics_port: int = 0
    metrics_host: str = "127.0.0.1"

    issue_label: str = "starguard"
    issue_footer: str = ""

    org_config_repo: str = ".starguard"
    org_fallback_repo: str = ".github"
    org_fallback_dir: str = "starguard"
    repo_config_dir: str = ".starguard"
    app_config_file: str = "starguard.yaml"

    @field_validator("allowed_organizations", "allowed_repositories", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("num_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("num_workers must be at least 1")
        return value
