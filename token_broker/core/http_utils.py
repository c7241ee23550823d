"""
HTTP plumbing shared by the GitHub App client and the JWKS resolver.

Every upstream call goes through InstrumentedAsyncClient so latency and
outcome are recorded per service.
"""

import logging
import time
from typing import Optional

import httpx

from token_broker.core.metrics import upstream_latency_seconds, upstream_requests_total

logger = logging.getLogger(__name__)


class HTTPRequestError(Exception):
    """An upstream call failed or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _outcome(response: httpx.Response) -> str:
    if response.is_success:
        return "ok"
    return f"http_{response.status_code // 100}xx"


class InstrumentedAsyncClient:
    """
    httpx.AsyncClient labelled with the upstream service it talks to.

    Extra keyword arguments go straight to httpx, which is how tests plug in
    an httpx.MockTransport.
    """

    def __init__(self, service_name: str, timeout: float = 30.0, **kwargs):
        self.service_name = service_name
        self._client = httpx.AsyncClient(timeout=timeout, **kwargs)

    async def __aenter__(self) -> "InstrumentedAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError:
            upstream_requests_total.labels(self.service_name, "transport_error").inc()
            raise
        finally:
            upstream_latency_seconds.labels(self.service_name).observe(time.perf_counter() - started)

        upstream_requests_total.labels(self.service_name, _outcome(response)).inc()
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)


def raise_for_upstream_status(response: httpx.Response, service_name: str, operation: str) -> None:
    if response.is_success:
        return
    msg = f"HTTP {response.status_code} during {operation} on {service_name}"
    logger.warning(msg)
    raise HTTPRequestError(msg, status_code=response.status_code)
