"""Helpers for building and signing workflow identity tokens in tests."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from token_broker.core.constants import GITHUB_OIDC_ISSUER, OIDC_AUDIENCE


@dataclass
class SigningKey:
    kid: str
    private_pem: str
    public_jwk: Dict[str, Any]

    @property
    def jwks(self) -> Dict[str, Any]:
        return {"keys": [self.public_jwk]}


def make_signing_key(kid: str = "test-key-id") -> SigningKey:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    public_jwk = jwk.construct(public_pem, algorithm="RS256").to_dict()
    public_jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return SigningKey(kid=kid, private_pem=private_pem, public_jwk=public_jwk)


def make_identity_claims(**overrides) -> Dict[str, Any]:
    """Claims GitHub Actions issues for a trusted dispatch of acme/widgets."""
    now = int(time.time())
    claims = {
        "iss": GITHUB_OIDC_ISSUER,
        "aud": OIDC_AUDIENCE,
        "iat": now - 10,
        "nbf": now - 10,
        "exp": now + 300,
        "sub": "repo:acme/widgets:ref:refs/heads/main",
        "repository": "acme/widgets",
        "repository_owner": "acme",
        "event_name": "workflow_dispatch",
        "runner_environment": "github-hosted",
        "ref": "refs/heads/main",
        "job_workflow_ref": "acme/widgets/.github/workflows/clank8y.yml@refs/heads/main",
        "run_id": "123456",
        "actor": "octocat",
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


def sign_identity_token(signing_key: SigningKey, claims: Dict[str, Any], kid: Optional[str] = None) -> str:
    return jwt.encode(
        claims,
        signing_key.private_pem,
        algorithm="RS256",
        headers={"kid": kid or signing_key.kid},
    )


def make_verifier(payload: Optional[Dict[str, Any]]) -> MagicMock:
    """Verifier stub that accepts every token and yields payload (None rejects)."""
    verifier = MagicMock()
    verifier.verify = AsyncMock(return_value=payload)
    return verifier
