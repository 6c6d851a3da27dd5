"""Per-organization memo of where org-level configuration lives."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True, kw_only=True)
class ConfigLocation:
    """Resolved org config repository, or ``exists=False`` when there is none."""

    exists: bool
    repo: str = ""
    path: str = ""


class ConfigLocationCache:
    """Explicit cache of org config locations keyed by owner.

    Entries are cleared by the enforcer after each installation so the next
    run looks them up again. Concurrent writers for the same key store identical
    values, so no locking is needed.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ConfigLocation] = {}

    def get(self, owner: str) -> ConfigLocation | None:
        return self._entries.get(owner)

    def put(self, owner: str, location: ConfigLocation) -> None:
        self._entries[owner] = location

    def clear(self, owner: str) -> None:
        self._entries.pop(owner, None)

    def __len__(self) -> int:
        return len(self._entries)
