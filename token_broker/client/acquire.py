"""
Acquisition of the bot credential inside a workflow run.

When the job may request an OIDC identity token, the token is exchanged at
the broker for an installation token. Otherwise (local or manual runs) a
locally supplied GH_TOKEN / GITHUB_TOKEN is used as is.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from token_broker.client.config import ClientSettings
from token_broker.core.constants import TOKEN_EXCHANGE_ATTEMPTS, TOKEN_EXCHANGE_RETRY_DELAYS

logger = logging.getLogger(__name__)


class AcquisitionError(Exception):
    """Base exception for credential acquisition failures."""


class MissingCredentialError(AcquisitionError):
    pass


class IDTokenRequestError(AcquisitionError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenExchangeError(AcquisitionError):
    """The broker answered the exchange with a non-2xx status."""

    def __init__(self, status_code: int, details: str = ""):
        super().__init__(f"Token exchange failed ({status_code}): {details}")
        self.status_code = status_code
        self.details = details


class InvalidExchangeResponseError(AcquisitionError):
    pass


def is_transient(error: BaseException) -> bool:
    """Whether another exchange attempt could succeed where this one failed."""
    if isinstance(error, TokenExchangeError):
        # A rejected claim stays rejected
        return error.status_code != 401
    return isinstance(
        error,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
    )


class CredentialAcquirer:
    """
    Acquires the credential at most once.

    The first caller starts the acquisition; every other caller awaits the
    same task, so concurrent callers never trigger a second identity token
    request or a second mint.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        **client_kwargs,
    ):
        self.settings = settings or ClientSettings()
        self._sleep = sleep
        self._client_kwargs = client_kwargs
        self._pending: Optional[asyncio.Future] = None

    async def acquire(self) -> str:
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._acquire())
        return await asyncio.shield(self._pending)

    async def _acquire(self) -> str:
        if not self.settings.oidc_available:
            return self._fallback_token()

        try:
            owner, repo = self.settings.repository()
        except ValueError as e:
            raise AcquisitionError(str(e)) from e
        run_id = (self.settings.GITHUB_RUN_ID or "").strip()
        if not run_id:
            raise AcquisitionError("GITHUB_RUN_ID is required for the token exchange")

        return await self._exchange_with_retry(owner, repo, run_id)

    def _fallback_token(self) -> str:
        token = self.settings.fallback_token
        if token:
            logger.info("OIDC is unavailable, using the locally supplied GitHub token")
            return token
        raise MissingCredentialError(
            "GitHub API token is missing. OIDC is unavailable and neither GH_TOKEN nor GITHUB_TOKEN is set."
        )

    async def _exchange_with_retry(self, owner: str, repo: str, run_id: str) -> str:
        last_error: Optional[BaseException] = None
        for attempt in range(1, TOKEN_EXCHANGE_ATTEMPTS + 1):
            try:
                return await self._exchange_once(owner, repo, run_id)
            except (AcquisitionError, httpx.HTTPError) as e:
                last_error = e
                if not is_transient(e) or attempt == TOKEN_EXCHANGE_ATTEMPTS:
                    raise
                delay = TOKEN_EXCHANGE_RETRY_DELAYS[min(attempt, len(TOKEN_EXCHANGE_RETRY_DELAYS)) - 1]
                logger.warning(
                    f"Token exchange attempt {attempt}/{TOKEN_EXCHANGE_ATTEMPTS} failed: {e}. "
                    f"Retrying in {delay}s"
                )
                await self._sleep(delay)
        raise last_error

    async def _exchange_once(self, owner: str, repo: str, run_id: str) -> str:
        async with httpx.AsyncClient(timeout=self.settings.TOKEN_BROKER_TIMEOUT, **self._client_kwargs) as client:
            id_token = await self._request_id_token(client)
            response = await client.post(
                self.settings.exchange_url,
                headers={"Authorization": f"Bearer {id_token}"},
                json={"owner": owner, "repo": repo, "run_id": run_id},
            )

        if not response.is_success:
            raise TokenExchangeError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidExchangeResponseError("Token exchange response is not JSON") from e
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise InvalidExchangeResponseError("Token exchange response is missing token")
        return token

    async def _request_id_token(self, client: httpx.AsyncClient) -> str:
        response = await client.get(
            self.settings.ACTIONS_ID_TOKEN_REQUEST_URL,
            params={"audience": self.settings.OIDC_AUDIENCE},
            headers={"Authorization": f"bearer {self.settings.ACTIONS_ID_TOKEN_REQUEST_TOKEN}"},
        )
        if not response.is_success:
            raise IDTokenRequestError(
                f"Failed to get ID token ({response.status_code})", status_code=response.status_code
            )
        value = response.json().get("value")
        if not value:
            raise IDTokenRequestError("ID token response is missing value")
        return value


_default_acquirer: Optional[CredentialAcquirer] = None


def default_acquirer() -> CredentialAcquirer:
    global _default_acquirer
    if _default_acquirer is None:
        _default_acquirer = CredentialAcquirer()
    return _default_acquirer


async def acquire_credential() -> str:
    """Bearer token for GitHub API calls made by the review workflow."""
    return await default_acquirer().acquire()
