"""GitHub App client for calls back to the repository that sent an event.

The app authenticates with a short-lived RS256 JWT, exchanges it for an
installation token per event, and uses that token for comments and labels.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import jwt

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.config import GitHubSettings
from intelbot.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"
# GitHub rejects app JWTs valid for more than ten minutes
JWT_LIFETIME_SECONDS = 540
JWT_CLOCK_SKEW_SECONDS = 60


class InstallationClient:
    """Authenticated accessor scoped to one installation token."""

    def __init__(self, http: RateLimitedClient, token: str, installation_id: int) -> None:
        self._http = http
        self._headers = {"Authorization": f"token {token}", "Accept": GITHUB_ACCEPT}
        self.installation_id = installation_id

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Any:
        result = await self._http.request(
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            method="POST",
            json={"body": body},
            headers=self._headers,
        )
        logger.info(
            "github.comment_created",
            extra={"owner": owner, "repo": repo, "issue_number": issue_number},
        )
        return result

    async def add_labels(self, owner: str, repo: str, issue_number: int, labels: list[str]) -> Any:
        result = await self._http.request(
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels",
            method="POST",
            json={"labels": labels},
            headers=self._headers,
        )
        logger.info(
            "github.labels_added",
            extra={"owner": owner, "repo": repo, "issue_number": issue_number, "labels": labels},
        )
        return result

    async def list_pull_files(self, owner: str, repo: str, pull_number: int) -> list[dict[str, Any]]:
        files = await self._http.request(
            f"/repos/{owner}/{repo}/pulls/{pull_number}/files",
            {"per_page": 100},
            headers=self._headers,
        )
        return files or []


class GitHubAppClient:
    """Mint installation tokens for a GitHub App.

    Args:
        settings: GitHub settings (app id, private key, API URL).
        http: Rate-limited client bound to the GitHub API.
    """

    def __init__(self, settings: GitHubSettings, http: RateLimitedClient) -> None:
        self._app_id = settings.app_id
        self._private_key = settings.resolved_private_key()
        self._http = http

    @property
    def configured(self) -> bool:
        return bool(self._app_id and self._private_key)

    def _app_jwt(self) -> str:
        if not self.configured:
            raise ConfigurationAppError(
                code="github_app_not_configured",
                message="GitHub App id and private key are required for origin calls",
                details={"hint": "Set GITHUB_APP_ID and GITHUB_PRIVATE_KEY_PATH or GITHUB_PRIVATE_KEY"},
            )
        now = int(time.time())
        payload = {
            "iat": now - JWT_CLOCK_SKEW_SECONDS,
            "exp": now + JWT_LIFETIME_SECONDS,
            "iss": self._app_id,
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    async def installation(self, installation_id: int) -> InstallationClient:
        """Exchange the app JWT for an installation-scoped client.

        Raises:
            ConfigurationAppError: App id or private key missing.
            UpstreamAppError: GitHub refused the token request.
        """

        data = await self._http.request(
            f"/app/installations/{installation_id}/access_tokens",
            method="POST",
            headers={"Authorization": f"Bearer {self._app_jwt()}", "Accept": GITHUB_ACCEPT},
        )
        logger.debug("github.installation_token", extra={"installation_id": installation_id})
        return InstallationClient(self._http, data["token"], installation_id)

    async def aclose(self) -> None:
        await self._http.aclose()
