"""GitHub repository content reader."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta

import httpx
from jose import jwt

from factorygraph.config import Settings, get_settings
from factorygraph.graph.clock import Clock, utcnow
from factorygraph.integrations.errors import GitHubApiError, IntegrationError
from factorygraph.integrations.token_cache import ExpiringStore, InstallationTokenCache, TokenMinter

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"


def _headers(bearer: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {bearer}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
    }


class GitHubAppTokenMinter:
    """Mint installation access tokens by authenticating as the GitHub App.

    Connections map to installations through ``installations``. The app JWT is
    RS256-signed, backdated a minute for clock skew and valid for ten minutes.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installations: Mapping[str, int],
        *,
        client: httpx.AsyncClient,
        clock: Clock = utcnow,
    ) -> None:
        self.app_id = app_id
        self._private_key = private_key
        self.installations = installations
        self._client = client
        self._clock = clock

    def app_jwt(self) -> str:
        issued = int(self._clock().timestamp())
        claims = {"iat": issued - 60, "exp": issued + 600, "iss": self.app_id}
        return jwt.encode(claims, self._private_key, algorithm="RS256")

    async def __call__(self, connection_id: str) -> tuple[str, datetime]:
        installation_id = self.installations.get(connection_id)
        if installation_id is None:
            raise IntegrationError(f"No GitHub installation configured for connection {connection_id}")

        response = await self._client.post(
            f"/app/installations/{installation_id}/access_tokens",
            headers=_headers(self.app_jwt()),
        )
        if response.is_error:
            logger.warning(
                "github_installation_token_failed",
                extra={"connection_id": connection_id, "status_code": response.status_code},
            )
            raise GitHubApiError(response.status_code, response.text)

        data = response.json()
        expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        return data["token"], expires_at


class GitHubContentReader:
    """Reads file contents through the REST contents API with installation tokens.

    Implements FileContentReader. Uses one persistent httpx.AsyncClient for
    connection pooling across calls.
    """

    def __init__(
        self,
        tokens: InstallationTokenCache,
        *,
        base_url: str = "https://api.github.com",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.tokens = tokens
        self.base_url = base_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(
        cls,
        mint: TokenMinter,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> "GitHubContentReader":
        settings = settings or get_settings()
        store: ExpiringStore[str] = ExpiringStore(
            refresh_buffer=timedelta(seconds=settings.github_token_refresh_buffer_seconds)
        )
        return cls(InstallationTokenCache(mint, store), base_url=settings.github_api_base, client=client)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_file_content(
        self,
        connection_id: str,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> str | None:
        """Return the decoded UTF-8 text of a file, or None when it is missing or not a file."""
        client = await self._get_client()
        token = await self.tokens.get_token(connection_id)
        response = await client.get(
            f"/repos/{owner}/{repo}/contents/{path.lstrip('/')}",
            params={"ref": ref} if ref else None,
            headers=_headers(token),
        )

        if response.status_code == 404:
            return None
        if response.status_code == 401:
            # Token revoked early; the next call mints a fresh one.
            self.tokens.invalidate(connection_id)
        if response.is_error:
            logger.warning(
                "github_content_read_failed",
                extra={"owner": owner, "repo": repo, "path": path, "status_code": response.status_code},
            )
            raise GitHubApiError(response.status_code, response.text)

        data = response.json()
        if isinstance(data, list) or data.get("type") != "file":
            return None
        return base64.b64decode(data.get("content") or "").decode("utf-8")


def _load_private_key(value: str) -> str:
    if value.lstrip().startswith("-----BEGIN"):
        return value
    return base64.b64decode(value).decode("utf-8")


def build_content_reader(settings: Settings | None = None) -> GitHubContentReader | None:
    """Reader authenticated as the configured GitHub App, or None when no app is configured."""
    settings = settings or get_settings()
    if not settings.github_app_id or not settings.github_app_private_key:
        return None

    client = httpx.AsyncClient(base_url=settings.github_api_base.rstrip("/"), timeout=10.0)
    minter = GitHubAppTokenMinter(
        settings.github_app_id,
        _load_private_key(settings.github_app_private_key),
        settings.github_installations,
        client=client,
    )
    # Minter and reader share one connection pool; closing the reader closes both.
    return GitHubContentReader.from_settings(minter, settings, client=client)
