"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any package imports so the settings
singleton loads test values and never reaches a real GitHub App or Redis.
"""

import os
import sys

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Ensure the package is importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

_app_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
APP_PRIVATE_KEY_PEM = _app_key.private_bytes(
    serialization.Encoding.PEM,
    serialization.PrivateFormat.PKCS8,
    serialization.NoEncryption(),
).decode()
APP_PUBLIC_KEY_PEM = (
    _app_key.public_key()
    .public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
    .decode()
)

os.environ["GITHUB_APP_ID"] = "424242"
# Stored the way secret managers keep multiline values
os.environ["GITHUB_APP_PRIVATE_KEY"] = APP_PRIVATE_KEY_PEM.replace("\n", "\\n")
os.environ["REDIS_URL"] = "redis://localhost:6399/15"
os.environ["LOG_LEVEL"] = "DEBUG"
for _name in ("OIDC_ISSUER", "OIDC_AUDIENCE", "OIDC_JWKS_URI", "WORKFLOW_PATH", "GITHUB_API_URL"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402

from tests.mocks.github import FakeInstallationAuthProvider  # noqa: E402
from tests.mocks.oidc import make_identity_claims, make_signing_key  # noqa: E402


@pytest.fixture(scope="session")
def signing_key():
    """RSA key pair standing in for the GitHub Actions OIDC issuer."""
    return make_signing_key(kid="issuer-key-1")


@pytest.fixture
def identity_claims():
    """Claims of the acme/widgets run 123456 dispatched on main."""
    return make_identity_claims()


@pytest.fixture
def provider():
    return FakeInstallationAuthProvider(default_branch="main")


@pytest.fixture
def app_public_key_pem():
    return APP_PUBLIC_KEY_PEM
