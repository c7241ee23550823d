import re
from typing import Optional

from fastapi import Header, Request

from token_broker.core.config import Settings
from token_broker.services.broker import CredentialBroker
from token_broker.services.github_app import GitHubAppAuth
from token_broker.services.oidc import JWKSResolver, OIDCTokenVerifier

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def build_broker(cfg: Settings) -> CredentialBroker:
    """Wire the broker from process-wide settings. Called once at startup."""
    resolver = JWKSResolver(cfg.OIDC_ISSUER, jwks_uri=cfg.OIDC_JWKS_URI)
    verifier = OIDCTokenVerifier(resolver, audience=cfg.OIDC_AUDIENCE)
    app_auth = GitHubAppAuth(
        cfg.GITHUB_APP_ID,
        cfg.GITHUB_APP_PRIVATE_KEY,
        api_url=cfg.GITHUB_API_URL,
        timeout=cfg.GITHUB_API_TIMEOUT,
    )
    return CredentialBroker(verifier, app_auth, workflow_path=cfg.WORKFLOW_PATH)


def parse_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _BEARER_RE.match(header.strip())
    if not match:
        return None
    return match.group(1).strip() or None


async def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return parse_bearer_token(authorization)


async def get_credential_broker(request: Request) -> CredentialBroker:
    return request.app.state.broker
