"""Layered YAML configuration fetching (org, org-repo, repo)."""

from __future__ import annotations

import posixpath
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from starguard.config.location import ConfigLocation, ConfigLocationCache
from starguard.config.schema import ConfigLevel, ConfigModel
from starguard.config.settings import OperatorSettings
from starguard.core.ports import RepositoryIntrospectionPort
from starguard.github.errors import GitHubNotFoundError

BASE_CONFIG_KEY = "baseConfig"


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge patch. ``None`` values delete keys."""
    if not isinstance(patch, dict):
        return patch
    merged = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = merge_patch(merged.get(key), value)
    return merged


def parse_yaml_mapping(text: str, *, source: str) -> dict[str, Any] | None:
    """Parse a YAML document that must be a mapping; None (with a warning) otherwise."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning(f"Malformed config file {source}, using defaults: {e}")
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Config file {source} is not a mapping, using defaults")
        return None
    return data


class ConfigFetcher:
    """Fetches typed configuration files at one of the three levels."""

    def __init__(self, settings: OperatorSettings, locations: ConfigLocationCache | None = None):
        self.settings = settings
        self.locations = locations or ConfigLocationCache()

    async def org_location(self, client: RepositoryIntrospectionPort, owner: str) -> ConfigLocation:
        """Find the org config repository, memoized per owner."""
        cached = self.locations.get(owner)
        if cached is not None:
            return cached
        location = await self._locate_config(client, owner)
        self.locations.put(owner, location)
        return location

    async def _locate_config(self, client: RepositoryIntrospectionPort, owner: str) -> ConfigLocation:
        try:
            await client.get_repository(owner, self.settings.org_config_repo)
            return ConfigLocation(exists=True, repo=self.settings.org_config_repo, path="")
        except GitHubNotFoundError:
            pass
        entries = await client.list_directory(
            owner, self.settings.org_fallback_repo, self.settings.org_fallback_dir
        )
        if entries:
            return ConfigLocation(
                exists=True,
                repo=self.settings.org_fallback_repo,
                path=self.settings.org_fallback_dir,
            )
        logger.debug(f"No org-level configuration repository for {owner}")
        return ConfigLocation(exists=False)

    async def fetch[M: ConfigModel](
        self,
        client: RepositoryIntrospectionPort,
        owner: str,
        repo: str,
        filename: str,
        level: ConfigLevel,
        model: type[M],
    ) -> M:
        """Return the parsed file, or ``model()`` when it is missing or malformed.

        API errors other than 404 propagate to the caller.
        """
        if level is ConfigLevel.REPO:
            source_repo = repo
            path = posixpath.join(self.settings.repo_config_dir, filename)
        else:
            location = await self.org_location(client, owner)
            if not location.exists:
                return model()
            source_repo = location.repo
            if level is ConfigLevel.ORG:
                path = posixpath.join(location.path, filename)
            else:
                path = posixpath.join(location.path, repo, filename)

        text = await client.get_file_text(owner, source_repo, path)
        if text is None:
            return model()
        source = f"{owner}/{source_repo}/{path}"
        data = parse_yaml_mapping(text, source=source)
        if data is None:
            return model()
        if level is ConfigLevel.ORG:
            data = await self._merge_base(client, data, path, source=source)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed config file {source}, using defaults: {e}")
            return model()

    async def _merge_base(
        self,
        client: RepositoryIntrospectionPort,
        data: dict[str, Any],
        path: str,
        *,
        source: str,
    ) -> dict[str, Any]:
        base_ref = data.get(BASE_CONFIG_KEY)
        if base_ref is None:
            return data
        overlay = {k: v for k, v in data.items() if k != BASE_CONFIG_KEY}
        parts = str(base_ref).split("/")
        if len(parts) != 2 or not all(parts):
            logger.warning(f"Ignoring invalid {BASE_CONFIG_KEY} {base_ref!r} in {source}")
            return overlay
        base_owner, base_repo = parts
        base_text = await client.get_file_text(base_owner, base_repo, path)
        if base_text is None:
            logger.warning(f"Base config {base_ref}/{path} referenced by {source} not found")
            return overlay
        base = parse_yaml_mapping(base_text, source=f"{base_ref}/{path}") or {}
        base.pop(BASE_CONFIG_KEY, None)
        return merge_patch(base, overlay)

    async def fetch_levels[O: ConfigModel, R: ConfigModel](
        self,
        client: RepositoryIntrospectionPort,
        owner: str,
        repo: str,
        filename: str,
        org_model: type[O],
        repo_model: type[R],
    ) -> tuple[O, R, R]:
        """Fetch one file at org, org-repo and repo level."""
        org = await self.fetch(client, owner, repo, filename, ConfigLevel.ORG, org_model)
        org_repo = await self.fetch(client, owner, repo, filename, ConfigLevel.ORG_REPO, repo_model)
        repo_level = await self.fetch(client, owner, repo, filename, ConfigLevel.REPO, repo_model)
        return org, org_repo, repo_level
