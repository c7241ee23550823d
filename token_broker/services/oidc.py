import logging
import time
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt

from token_broker.core.cache import CacheKeys, CacheService, cache_service
from token_broker.core.constants import (
    GITHUB_JWKS_CACHE_TTL,
    GITHUB_JWKS_URI_CACHE_TTL,
    GITHUB_OIDC_ISSUER,
    GITHUB_OIDC_JWKS_URI,
    JWKS_REFRESH_COOLDOWN_SECONDS,
    OIDC_ALGORITHMS,
)
from token_broker.core.http_utils import InstrumentedAsyncClient

logger = logging.getLogger(__name__)

_OIDC_HTTP_TIMEOUT = 10.0


class JWKSResolver:
    """
    Resolves and caches the signing keys of an OIDC issuer.

    Keys live in Redis so every replica shares them. When Redis is down the
    last keys fetched by this process are used instead.
    """

    def __init__(
        self,
        issuer: str,
        jwks_uri: Optional[str] = None,
        cache: Optional[CacheService] = None,
        **client_kwargs,
    ):
        self.issuer = issuer.rstrip("/")
        self._configured_jwks_uri = jwks_uri
        self._cache = cache or cache_service
        self._client_kwargs = client_kwargs
        self._fallback_jwks: Dict[str, Any] = {}
        self._last_fetch: Optional[float] = None

    async def _get_jwks_uri(self) -> str:
        """
        Returns the JWKS URI of the issuer.
        For github.com, uses the well-known endpoint directly.
        For GHES, discovers via .well-known/openid-configuration.
        """
        if self._configured_jwks_uri:
            return self._configured_jwks_uri

        if self.issuer == GITHUB_OIDC_ISSUER:
            return GITHUB_OIDC_JWKS_URI

        cache_key = CacheKeys.jwks_uri(self.issuer)
        cached_uri = await self._cache.get(cache_key)
        if cached_uri:
            return cached_uri

        async with InstrumentedAsyncClient("OIDC Discovery", timeout=_OIDC_HTTP_TIMEOUT, **self._client_kwargs) as client:
            try:
                response = await client.get(f"{self.issuer}/.well-known/openid-configuration")
                if response.status_code == 200:
                    jwks_uri = response.json().get("jwks_uri")
                    if jwks_uri:
                        await self._cache.set(cache_key, jwks_uri, ttl_seconds=GITHUB_JWKS_URI_CACHE_TTL)
                        return jwks_uri
            except Exception as e:
                logger.warning(f"Error fetching OIDC discovery document for {self.issuer}: {e}")

        # Fallback: try .well-known/jwks directly
        return f"{self.issuer}/.well-known/jwks"

    def _fetched_within(self, seconds: float) -> bool:
        return self._last_fetch is not None and time.monotonic() - self._last_fetch < seconds

    async def get_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Returns the issuer's key set from Redis, then from this process's last
        download while it is fresh, and only then from the issuer.
        """
        cache_key = CacheKeys.jwks(self.issuer)

        if not force_refresh:
            cached_jwks = await self._cache.get(cache_key)
            if cached_jwks:
                return cached_jwks
            if self._fallback_jwks and self._fetched_within(GITHUB_JWKS_CACHE_TTL):
                return self._fallback_jwks

        jwks_uri = await self._get_jwks_uri()
        self._last_fetch = time.monotonic()
        async with InstrumentedAsyncClient("OIDC JWKS", timeout=_OIDC_HTTP_TIMEOUT, **self._client_kwargs) as client:
            try:
                response = await client.get(jwks_uri)
                if response.status_code == 200:
                    jwks = response.json()
                    self._fallback_jwks = jwks
                    await self._cache.set(cache_key, jwks, ttl_seconds=GITHUB_JWKS_CACHE_TTL)
                    return jwks
                logger.error(f"Failed to fetch JWKS from {jwks_uri}: HTTP {response.status_code}")
            except Exception as e:
                logger.error(f"Error fetching JWKS from {jwks_uri}: {e}")

        return self._fallback_jwks

    async def find_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Find a signing key by id, refreshing once to follow key rotation."""
        key = _select_key(await self.get_jwks(), kid)
        if key:
            return key

        if self._fetched_within(JWKS_REFRESH_COOLDOWN_SECONDS):
            logger.warning(f"OIDC key {kid} unknown and JWKS was refreshed recently, not refetching")
            return None

        logger.info(f"OIDC key {kid} not in cache, refreshing JWKS...")
        return _select_key(await self.get_jwks(force_refresh=True), kid)


def _select_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    keys: List[Dict[str, Any]] = jwks.get("keys", []) if jwks else []
    for k in keys:
        if k.get("kid") == kid:
            return k
    return None


class OIDCTokenVerifier:
    """
    Verifies the signature, issuer, audience and expiry of a workflow
    identity token. Claim semantics are checked separately.
    """

    def __init__(self, resolver: JWKSResolver, audience: str):
        self.resolver = resolver
        self.audience = audience

    @property
    def issuer(self) -> str:
        return self.resolver.issuer

    async def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """Returns the decoded payload, or None if the token is not trusted."""
        try:
            headers = jwt.get_unverified_header(token)
        except JWTError as e:
            logger.warning(f"OIDC token has a malformed header: {e}")
            return None

        kid = headers.get("kid")
        if not kid:
            logger.warning("OIDC token missing 'kid' in header")
            return None

        key = await self.resolver.find_key(kid)
        if not key:
            logger.error(f"No matching OIDC key found for kid: {kid} after refresh")
            return None

        try:
            return jwt.decode(
                token,
                key,
                algorithms=OIDC_ALGORITHMS,
                issuer=self.issuer,
                audience=self.audience,
            )
        except JWTError as e:
            logger.warning(f"OIDC token validation error: {e}")
            return None
