"""Shared fixtures for API endpoint tests."""

import pytest
from fastapi.testclient import TestClient

from token_broker.main import create_app
from token_broker.services.broker import CredentialBroker
from tests.mocks.github import FakeInstallationAuthProvider
from tests.mocks.oidc import make_identity_claims, make_verifier


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def make_client(app):
    """Client whose broker trusts every token and yields the given claims."""

    def _make(claims=None, provider=None):
        app.state.broker = CredentialBroker(
            make_verifier(make_identity_claims() if claims is None else claims),
            provider or FakeInstallationAuthProvider(),
        )
        return TestClient(app)

    return _make
