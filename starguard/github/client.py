"""Async GitHub REST client built on httpx."""

from __future__ import annotations

import base64
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from starguard.core.models import (
    Branch,
    BranchProtection,
    Collaborator,
    Commit,
    ContentEntry,
    Installation,
    Issue,
    IssueState,
    Release,
    Repository,
    Tag,
    Team,
    WorkflowRun,
)
from starguard.github.errors import (
    GitHubAPIError,
    GitHubError,
    GitHubForbiddenError,
    GitHubNotFoundError,
)

DEFAULT_API_URL = "https://api.github.com"
_PER_PAGE = 100
DEFAULT_MAX_PAGES = 50


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        message = str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        message = response.text[:200]
    url = str(response.request.url) if response.request is not None else ""
    status = response.status_code
    if status == 404:
        raise GitHubNotFoundError(status, message, url=url)
    if status == 403:
        raise GitHubForbiddenError(status, message, url=url)
    raise GitHubAPIError(status, message, url=url)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _repository(data: dict[str, Any]) -> Repository:
    return Repository(
        id=int(data.get("id", 0)),
        owner=str((data.get("owner") or {}).get("login", "")),
        name=str(data.get("name", "")),
        default_branch=str(data.get("default_branch") or "main"),
        private=bool(data.get("private", False)),
        archived=bool(data.get("archived", False)),
        fork=bool(data.get("fork", False)),
    )


def _issue(data: dict[str, Any]) -> Issue:
    return Issue(
        number=int(data["number"]),
        title=str(data.get("title", "")),
        body=str(data.get("body") or ""),
        state="closed" if data.get("state") == "closed" else "open",
        updated_at=_parse_time(data.get("updated_at")),
        html_url=str(data.get("html_url", "")),
    )


def _enabled(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, dict):
        return bool(value.get("enabled", False))
    return bool(value)


def _permissions(data: dict[str, Any]) -> frozenset[str]:
    """Granted permissions from a ``permissions`` map or a single ``permission`` name."""
    granted = {name for name, on in (data.get("permissions") or {}).items() if on}
    if data.get("permission"):
        granted.add(str(data["permission"]))
    return frozenset(granted)


class GitHubClient:
    """Thin typed wrapper over the GitHub REST endpoints the bot uses."""

    def __init__(
        self,
        token: str = "",
        *,
        base_url: str = DEFAULT_API_URL,
        installation_id: int | None = None,
        timeout: float = 30.0,
        max_pages: int = DEFAULT_MAX_PAGES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "starguard",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.installation_id = installation_id
        self.max_pages = max_pages
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport helpers ────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            raise GitHubError(f"{method} {path} failed: {e}") from e
        _raise_for_status(response)
        return response

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, params=params)
        return response.json()

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        key: str | None = None,
        max_pages: int | None = None,
    ) -> list[dict[str, Any]]:
        """Collect the pages of a list endpoint by following ``Link: rel=next``.

        Stops after ``max_pages`` pages (the client default when None); 0 means
        no limit.
        """
        limit = self.max_pages if max_pages is None else max_pages
        items: list[dict[str, Any]] = []
        query = {"per_page": _PER_PAGE, **(params or {})}
        url: str | None = path
        pages = 0
        while url is not None:
            if limit and pages >= limit:
                logger.warning(f"Stopped paginating {path} after {limit} pages")
                break
            response = await self._request("GET", url, params=query)
            payload = response.json()
            page = payload.get(key, []) if key else payload
            items.extend(page)
            pages += 1
            next_link = response.links.get("next")
            url = next_link.get("url") if next_link else None
            # The next link already carries the query string.
            query = None
        return items

    # ── Repository introspection ─────────────────────────────────────────

    async def get_repository(self, owner: str, repo: str) -> Repository:
        return _repository(await self._get_json(f"/repos/{owner}/{repo}"))

    async def get_file_text(self, owner: str, repo: str, path: str) -> str | None:
        try:
            data = await self._get_json(f"/repos/{owner}/{repo}/contents/{path}")
        except GitHubNotFoundError:
            return None
        if not isinstance(data, dict) or data.get("type") != "file":
            return None
        content = str(data.get("content", ""))
        if data.get("encoding") == "base64":
            return base64.b64decode(content).decode("utf-8", errors="replace")
        return content

    async def list_directory(self, owner: str, repo: str, path: str) -> list[ContentEntry]:
        try:
            data = await self._get_json(f"/repos/{owner}/{repo}/contents/{path}")
        except GitHubNotFoundError:
            return []
        if not isinstance(data, list):
            return []
        return [
            ContentEntry(name=str(item["name"]), path=str(item["path"]), type=item.get("type", "file"))
            for item in data
        ]

    async def list_languages(self, owner: str, repo: str) -> dict[str, int]:
        data = await self._get_json(f"/repos/{owner}/{repo}/languages")
        return {str(name): int(size) for name, size in data.items()}

    async def list_commits(self, owner: str, repo: str) -> list[Commit]:
        data = await self._paginate(f"/repos/{owner}/{repo}/commits")
        return [
            Commit(sha=item["sha"], parents=tuple(p["sha"] for p in item.get("parents", [])))
            for item in data
        ]

    async def list_tags(self, owner: str, repo: str) -> list[Tag]:
        data = await self._paginate(f"/repos/{owner}/{repo}/tags")
        return [Tag(name=item["name"], sha=item["commit"]["sha"]) for item in data]

    async def list_branches(self, owner: str, repo: str) -> list[Branch]:
        data = await self._paginate(f"/repos/{owner}/{repo}/branches")
        return [Branch(name=item["name"], sha=item["commit"]["sha"]) for item in data]

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        data = await self._get_json(f"/repos/{owner}/{repo}/branches/{branch}")
        return str(data["commit"]["sha"])

    async def list_releases(self, owner: str, repo: str) -> list[Release]:
        data = await self._paginate(f"/repos/{owner}/{repo}/releases")
        return [
            Release(tag_name=item["tag_name"], target_commitish=item.get("target_commitish", ""))
            for item in data
        ]

    async def list_workflow_runs(
        self, owner: str, repo: str, workflow_file: str, *, event: str
    ) -> list[WorkflowRun]:
        data = await self._paginate(
            f"/repos/{owner}/{repo}/actions/workflows/{workflow_file}/runs",
            {"event": event},
            key="workflow_runs",
        )
        return [
            WorkflowRun(
                head_sha=item.get("head_sha", ""),
                status=item.get("status", ""),
                conclusion=item.get("conclusion"),
            )
            for item in data
        ]

    # ── Repository settings ──────────────────────────────────────────────

    async def get_branch_protection(
        self, owner: str, repo: str, branch: str
    ) -> BranchProtection | None:
        try:
            data = await self._get_json(f"/repos/{owner}/{repo}/branches/{branch}/protection")
        except GitHubNotFoundError:
            return None
        reviews = data.get("required_pull_request_reviews") or {}
        checks = data.get("required_status_checks") or {}
        return BranchProtection(
            enforce_admins=_enabled(data, "enforce_admins"),
            require_approval=bool(reviews),
            approval_count=int(reviews.get("required_approving_review_count", 0)),
            dismiss_stale_reviews=bool(reviews.get("dismiss_stale_reviews", False)),
            require_code_owner_reviews=bool(reviews.get("require_code_owner_reviews", False)),
            require_status_checks=bool(checks),
            require_up_to_date_branch=bool(checks.get("strict", False)),
            status_check_contexts=tuple(checks.get("contexts", [])),
            allow_force_pushes=_enabled(data, "allow_force_pushes"),
            allow_deletions=_enabled(data, "allow_deletions"),
        )

    async def update_branch_protection(
        self, owner: str, repo: str, branch: str, protection: BranchProtection
    ) -> None:
        body: dict[str, Any] = {
            "enforce_admins": protection.enforce_admins,
            "required_pull_request_reviews": None,
            "required_status_checks": None,
            "restrictions": None,
            "allow_force_pushes": protection.allow_force_pushes,
            "allow_deletions": protection.allow_deletions,
        }
        if protection.require_approval:
            body["required_pull_request_reviews"] = {
                "required_approving_review_count": protection.approval_count,
                "dismiss_stale_reviews": protection.dismiss_stale_reviews,
                "require_code_owner_reviews": protection.require_code_owner_reviews,
            }
        if protection.require_status_checks:
            body["required_status_checks"] = {
                "strict": protection.require_up_to_date_branch,
                "contexts": list(protection.status_check_contexts),
            }
        await self._request("PUT", f"/repos/{owner}/{repo}/branches/{branch}/protection", json=body)

    async def get_codeowners_errors(self, owner: str, repo: str) -> list[str] | None:
        try:
            data = await self._get_json(f"/repos/{owner}/{repo}/codeowners/errors")
        except GitHubNotFoundError:
            return None
        return [str(item.get("message", "")) for item in data.get("errors", [])]

    async def list_outside_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        data = await self._paginate(
            f"/repos/{owner}/{repo}/collaborators", {"affiliation": "outside"}
        )
        return [Collaborator(login=item["login"], permissions=_permissions(item)) for item in data]

    async def list_direct_collaborators(self, owner: str, repo: str) -> list[Collaborator]:
        data = await self._paginate(
            f"/repos/{owner}/{repo}/collaborators", {"affiliation": "direct"}
        )
        return [Collaborator(login=item["login"], permissions=_permissions(item)) for item in data]

    async def list_teams(self, owner: str, repo: str) -> list[Team]:
        data = await self._paginate(f"/repos/{owner}/{repo}/teams")
        return [Team(slug=item["slug"], permissions=_permissions(item)) for item in data]

    # ── Issues ───────────────────────────────────────────────────────────

    async def list_issues(self, owner: str, repo: str, *, label: str) -> list[Issue]:
        data = await self._paginate(
            f"/repos/{owner}/{repo}/issues", {"labels": label, "state": "all"}
        )
        return [_issue(item) for item in data if "pull_request" not in item]

    async def create_issue(
        self, owner: str, repo: str, *, title: str, body: str, labels: list[str]
    ) -> Issue:
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues",
            json={"title": title, "body": body, "labels": labels},
        )
        return _issue(response.json())

    async def update_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        body: str | None = None,
        state: IssueState | None = None,
    ) -> Issue:
        payload: dict[str, Any] = {}
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        response = await self._request(
            "PATCH", f"/repos/{owner}/{repo}/issues/{number}", json=payload
        )
        return _issue(response.json())

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> str:
        response = await self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body}
        )
        return str(response.json().get("html_url", ""))

    # ── Installations ────────────────────────────────────────────────────

    async def list_installations(self) -> list[Installation]:
        data = await self._paginate("/app/installations", max_pages=0)
        return [
            Installation(
                id=int(item["id"]),
                account=str((item.get("account") or {}).get("login", "")),
                suspended=item.get("suspended_at") is not None,
            )
            for item in data
        ]

    async def list_installation_repositories(self) -> list[Repository]:
        data = await self._paginate("/installation/repositories", key="repositories", max_pages=0)
        return [_repository(item) for item in data]

    async def delete_installation(self, installation_id: int) -> None:
        await self._request("DELETE", f"/app/installations/{installation_id}")

    async def remove_installation_repository(
        self, installation_id: int, repository_id: int
    ) -> None:
        await self._request(
            "DELETE", f"/user/installations/{installation_id}/repositories/{repository_id}"
        )
