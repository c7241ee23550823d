"""Tests for POST /api/github/token."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from token_broker.services.broker import CredentialBroker
from tests.mocks.github import FakeInstallationAuthProvider
from tests.mocks.oidc import make_identity_claims, make_verifier

URL = "/api/github/token"
AUTH = {"Authorization": "Bearer identity-token"}
BODY = {"owner": "acme", "repo": "widgets", "run_id": "123456"}


class TestAuthorizationHeader:
    def test_missing_header_returns_401_without_github_calls(self, make_client):
        provider = FakeInstallationAuthProvider()
        response = make_client(provider=provider).post(URL, json=BODY)

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert provider.calls == []

    @pytest.mark.parametrize("header", ["identity-token", "Basic abc", "Bearer", "Bearer   "])
    def test_malformed_header_returns_401(self, make_client, header):
        provider = FakeInstallationAuthProvider()
        response = make_client(provider=provider).post(URL, json=BODY, headers={"Authorization": header})

        assert response.status_code == 401
        assert provider.calls == []

    def test_missing_header_checked_before_body(self, make_client):
        response = make_client().post(URL, content=b"not json")
        assert response.status_code == 401

    def test_scheme_is_case_insensitive(self, make_client):
        response = make_client().post(URL, json=BODY, headers={"Authorization": "bearer identity-token"})
        assert response.status_code == 200


class TestRequestBody:
    @pytest.mark.parametrize(
        "body",
        [
            {"repo": "widgets", "run_id": "123456"},
            {"owner": "acme", "run_id": "123456"},
            {"owner": "acme", "repo": "widgets"},
            {"owner": "", "repo": "widgets", "run_id": "123456"},
            {"owner": "acme", "repo": "   ", "run_id": "123456"},
            {"owner": "acme", "repo": "widgets", "run_id": ""},
            {"owner": "acme", "repo": "widgets", "run_id": True},
            {"owner": "acme", "repo": "widgets", "run_id": ["123456"]},
            {"owner": 42, "repo": "widgets", "run_id": "123456"},
        ],
    )
    def test_invalid_body_returns_400(self, make_client, body):
        provider = FakeInstallationAuthProvider()
        response = make_client(provider=provider).post(URL, json=body, headers=AUTH)

        assert response.status_code == 400
        assert "owner, repo and run_id" in response.json()["detail"]
        assert provider.calls == []

    def test_non_json_body_returns_400(self, make_client):
        response = make_client().post(URL, content=b"owner=acme", headers=AUTH)
        assert response.status_code == 400

    def test_json_array_body_returns_400(self, make_client):
        response = make_client().post(URL, json=["acme", "widgets", "123456"], headers=AUTH)
        assert response.status_code == 400

    def test_numeric_run_id_accepted(self, make_client):
        body = dict(BODY, run_id=123456)
        response = make_client().post(URL, json=body, headers=AUTH)
        assert response.status_code == 200


class TestExchange:
    def test_trusted_run_receives_token(self, make_client):
        provider = FakeInstallationAuthProvider()
        response = make_client(provider=provider).post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"token", "expires_at"}
        assert data["token"].startswith("ghs_")
        expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        assert expires_at > datetime.now(timezone.utc)
        assert provider.calls[-1][2] == "widgets"

    def test_claim_mismatch_returns_generic_401(self, make_client):
        claims = make_identity_claims(ref="refs/heads/feature-x")
        provider = FakeInstallationAuthProvider()
        response = make_client(claims=claims, provider=provider).post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}
        assert "mint_installation_token" not in provider.call_names()

    def test_untrusted_event_returns_401_without_github_calls(self, make_client):
        provider = FakeInstallationAuthProvider()
        client = make_client(claims=make_identity_claims(event_name="push"), provider=provider)
        response = client.post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 401
        assert provider.calls == []

    def test_invalid_signature_returns_401(self, app):
        provider = FakeInstallationAuthProvider()
        app.state.broker = CredentialBroker(make_verifier(None), provider)
        response = TestClient(app).post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 401
        assert provider.calls == []

    def test_run_id_mismatch_returns_401(self, make_client):
        body = dict(BODY, run_id="999999")
        response = make_client().post(URL, json=body, headers=AUTH)
        assert response.status_code == 401

    def test_upstream_failure_returns_generic_500(self, make_client):
        provider = FakeInstallationAuthProvider(fail_on="mint")
        response = make_client(provider=provider).post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to mint installation token"}

    def test_app_not_installed_returns_500(self, make_client):
        provider = FakeInstallationAuthProvider(fail_on="resolve")
        response = make_client(provider=provider).post(URL, json=BODY, headers=AUTH)

        assert response.status_code == 500
        assert "HTTP 404" not in response.text

    def test_every_request_mints_a_new_token(self, make_client):
        client = make_client()
        first = client.post(URL, json=BODY, headers=AUTH).json()["token"]
        second = client.post(URL, json=BODY, headers=AUTH).json()["token"]
        assert first != second
