"""Configuration: operator settings and layered repository config."""

from starguard.config.enablement import get_app_configs, is_bot_enabled, is_enabled
from starguard.config.loader import ConfigFetcher, merge_patch
from starguard.config.location import ConfigLocation, ConfigLocationCache
from starguard.config.schema import (
    ConfigLevel,
    ConfigModel,
    OrgAppConfig,
    OrgOptConfig,
    RepoAppConfig,
    RepoOptConfig,
    ScheduleConfig,
)
from starguard.config.settings import OperatorSettings

__all__ = [
    "ConfigFetcher",
    "ConfigLevel",
    "ConfigLocation",
    "ConfigLocationCache",
    "ConfigModel",
    "OperatorSettings",
    "OrgAppConfig",
    "OrgOptConfig",
    "RepoAppConfig",
    "RepoOptConfig",
    "ScheduleConfig",
    "get_app_configs",
    "is_bot_enabled",
    "is_enabled",
    "merge_patch",
]
