"""
GitHub App authentication.

The app authenticates with a short-lived RS256 JWT signed by its private
key. That JWT can only answer "which installation serves this repository";
everything else goes through installation access tokens.
"""

import logging
import time
from typing import Any, Dict, Optional, Protocol

from jose import jwt
from pydantic import ValidationError

from token_broker.core.constants import (
    APP_JWT_CLOCK_SKEW_SECONDS,
    APP_JWT_TTL_SECONDS,
    GITHUB_API_TIMEOUT,
    GITHUB_API_URL,
    GITHUB_API_VERSION,
    REPOSITORY_METADATA_PERMISSIONS,
)
from token_broker.core.http_utils import (
    HTTPRequestError,
    InstrumentedAsyncClient,
    raise_for_upstream_status,
)
from token_broker.models.github_api import IssuedCredential, RepositorySnapshot

logger = logging.getLogger(__name__)

_SERVICE_NAME = "GitHub API"


class InstallationAuthProvider(Protocol):
    async def resolve_installation(self, owner: str, repo: str) -> int: ...

    async def get_repository(self, installation_id: int, owner: str, repo: str) -> RepositorySnapshot: ...

    async def mint_installation_token(
        self, installation_id: int, repo: str, permissions: Dict[str, str]
    ) -> IssuedCredential: ...


class GitHubAppAuth:
    """GitHub App identity: app id plus private key, loaded once per process."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = GITHUB_API_TIMEOUT,
        **client_kwargs,
    ):
        self.app_id = app_id
        self._private_key = private_key
        self.api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._client_kwargs = client_kwargs

    def app_jwt(self) -> str:
        # GitHub requires:
        # - iat: issued-at (allow small clock skew)
        # - exp: short TTL (<= 10 minutes)
        # - iss: GitHub App ID
        now = int(time.time())
        payload = {
            "iat": now - APP_JWT_CLOCK_SKEW_SECONDS,
            "exp": now + APP_JWT_TTL_SECONDS,
            "iss": self.app_id,
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        token: Optional[str] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the REST API with token, or with a fresh app JWT when token is None."""
        try:
            if token is None:
                token = self.app_jwt()
            async with InstrumentedAsyncClient(_SERVICE_NAME, timeout=self._timeout, **self._client_kwargs) as client:
                response = await client.request(
                    method,
                    f"{self.api_url}{path}",
                    headers=self._headers(token),
                    json=json_body,
                )
        except Exception as e:
            msg = f"Error during {operation} on {_SERVICE_NAME}: {e}"
            logger.warning(msg)
            raise HTTPRequestError(msg) from e

        raise_for_upstream_status(response, _SERVICE_NAME, operation)
        try:
            data = response.json()
        except ValueError as e:
            raise HTTPRequestError(f"Invalid JSON during {operation} on {_SERVICE_NAME}") from e
        if not isinstance(data, dict):
            raise HTTPRequestError(f"Unexpected response body during {operation} on {_SERVICE_NAME}")
        return data

    async def resolve_installation(self, owner: str, repo: str) -> int:
        """Find the installation of this app that covers owner/repo."""
        data = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/installation",
            "resolve installation",
        )
        installation_id = data.get("id")
        if not isinstance(installation_id, int) or isinstance(installation_id, bool):
            raise HTTPRequestError(f"Installation lookup for {owner}/{repo} returned no id")
        return int(installation_id)

    async def mint_installation_token(
        self, installation_id: int, repo: str, permissions: Dict[str, str]
    ) -> IssuedCredential:
        """Mint a fresh installation token restricted to one repository."""
        data = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            "mint installation token",
            json_body={"repositories": [repo], "permissions": permissions},
        )
        if not data.get("token") or not data.get("expires_at"):
            raise HTTPRequestError(f"Installation {installation_id} returned an incomplete token")
        try:
            return IssuedCredential.model_validate(data)
        except ValidationError as e:
            raise HTTPRequestError(f"Installation {installation_id} returned a malformed token: {e}") from e

    async def get_repository(self, installation_id: int, owner: str, repo: str) -> RepositorySnapshot:
        """Read repository metadata through an installation-scoped token."""
        scoped = await self.mint_installation_token(installation_id, repo, REPOSITORY_METADATA_PERMISSIONS)
        data = await self._request(
            "GET",
            f"/repos/{owner}/{repo}",
            "fetch repository",
            token=scoped.token,
        )
        default_branch = data.get("default_branch")
        if not isinstance(default_branch, str) or not default_branch:
            raise HTTPRequestError(f"Repository {owner}/{repo} has no default branch")
        return RepositorySnapshot(default_branch=default_branch)
