"""Repository configuration models shared by the bot and every policy."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfigLevel(StrEnum):
    """Where a configuration file is read from."""

    ORG = "org"
    ORG_REPO = "org_repo"
    REPO = "repo"


class ConfigModel(BaseModel):
    """Base model for YAML configuration files (camelCase keys)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


class OrgOptConfig(ConfigModel):
    """Org-level opt in/out settings."""

    opt_out_strategy: bool = False
    opt_in_repos: list[str] = Field(default_factory=list)
    opt_out_repos: list[str] = Field(default_factory=list)
    opt_out_private_repos: bool = False
    opt_out_public_repos: bool = False
    opt_out_archived_repos: bool = False
    opt_out_forked_repos: bool = False
    disable_repo_override: bool = False


class RepoOptConfig(ConfigModel):
    """Org-repo and repo-level opt in/out switches."""

    opt_in: bool = False
    opt_out: bool = False


class ScheduleConfig(ConfigModel):
    """Weekdays on which selected side effects are suppressed.

    ``actions`` maps an action (``issue``, ``ping``, ``fix``, ``log``) to
    whether it may still run on the listed days; unlisted actions always run.
    """

    timezone: str = "UTC"
    actions: dict[str, bool] = Field(default_factory=dict)
    days: list[str] = Field(default_factory=list)


class OrgAppConfig(ConfigModel):
    """Org-level ``starguard.yaml``."""

    opt_config: OrgOptConfig = Field(default_factory=OrgOptConfig)
    issue_label: str = ""
    issue_repo: str = ""
    issue_footer: str = ""
    schedule: ScheduleConfig | None = None


class RepoAppConfig(ConfigModel):
    """Org-repo and repo-level ``starguard.yaml``."""

    opt_config: RepoOptConfig = Field(default_factory=RepoOptConfig)
    issue_label: str = ""
    schedule: ScheduleConfig | None = None
