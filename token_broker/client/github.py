from typing import Optional

import httpx

from token_broker.client.acquire import CredentialAcquirer, default_acquirer
from token_broker.core.constants import GITHUB_API_URL, GITHUB_API_VERSION


def mask_secret(value: str) -> None:
    """Ask the Actions runner to redact value from the job log."""
    print(f"::add-mask::{value}", flush=True)


async def github_client(acquirer: Optional[CredentialAcquirer] = None, **kwargs) -> httpx.AsyncClient:
    """
    GitHub REST client authenticated with the acquired credential.

    The caller owns the returned client and must close it.
    """
    acquirer = acquirer or default_acquirer()
    token = await acquirer.acquire()
    if acquirer.settings.GITHUB_ACTIONS:
        mask_secret(token)

    return httpx.AsyncClient(
        base_url=kwargs.pop("base_url", GITHUB_API_URL),
        headers={
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        },
        **kwargs,
    )
