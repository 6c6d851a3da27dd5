"""Per-installation GitHub client provider."""

from __future__ import annotations

import httpx

from starguard.github.client import DEFAULT_API_URL, GitHubClient


class GitHubClients:
    """Memoizes one ``GitHubClient`` per installation id.

    Token exchange is out of scope: every client authenticates with the
    configured token, tagged with the installation it serves.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token = token
        self._base_url = base_url
        self._transport = transport
        self._app_client: GitHubClient | None = None
        self._clients: dict[int, GitHubClient] = {}

    def app(self) -> GitHubClient:
        if self._app_client is None:
            self._app_client = GitHubClient(
                self._token, base_url=self._base_url, transport=self._transport
            )
        return self._app_client

    def get(self, installation_id: int) -> GitHubClient:
        client = self._clients.get(installation_id)
        if client is None:
            client = GitHubClient(
                self._token,
                base_url=self._base_url,
                installation_id=installation_id,
                transport=self._transport,
            )
            self._clients[installation_id] = client
        return client

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        if self._app_client is not None:
            clients.append(self._app_client)
        self._clients.clear()
        self._app_client = None
        for client in clients:
            await client.aclose()
