"""
Credential Broker

Exchanges a GitHub Actions identity token for an installation access token
scoped to one repository. Every step awaits the previous one; nothing runs
in parallel and nothing is retried.

    RECEIVED -> BASIC_VERIFIED -> INSTALLATION_RESOLVED -> REF_VERIFIED -> MINTED

Phase 1 claim checks complete before the app identity makes any GitHub API
call, so unauthenticated callers cannot burn the app's rate limit.
"""

import logging
from typing import Dict, Optional

from token_broker.core.constants import DEFAULT_WORKFLOW_PATH, INSTALLATION_TOKEN_PERMISSIONS
from token_broker.core.http_utils import HTTPRequestError
from token_broker.core.metrics import claim_rejections_total, token_exchanges_total
from token_broker.schemas.token import ExchangeRequest
from token_broker.services.claims import verify_basic_claims, verify_ref_claims
from token_broker.services.github_app import InstallationAuthProvider
from token_broker.services.oidc import OIDCTokenVerifier
from token_broker.services.types import (
    ClaimMismatch,
    ExchangeFailure,
    ExchangeResult,
    ExchangeState,
    FailureKind,
)

logger = logging.getLogger(__name__)


class CredentialBroker:
    def __init__(
        self,
        verifier: OIDCTokenVerifier,
        app_auth: InstallationAuthProvider,
        workflow_path: str = DEFAULT_WORKFLOW_PATH,
        permissions: Optional[Dict[str, str]] = None,
    ):
        self.verifier = verifier
        self.app_auth = app_auth
        self.workflow_path = workflow_path
        self.permissions = dict(permissions or INSTALLATION_TOKEN_PERMISSIONS)

    def _fail(
        self,
        kind: FailureKind,
        state: ExchangeState,
        request: ExchangeRequest,
        reason: str,
    ) -> ExchangeFailure:
        log = logger.warning if kind == FailureKind.UNAUTHORIZED else logger.error
        log(
            f"Token exchange rejected for {request.owner}/{request.repo} "
            f"run {request.run_id} at {state.value}: {reason}"
        )
        token_exchanges_total.labels(outcome=kind.value).inc()
        return ExchangeFailure(kind=kind, state=state, reason=reason)

    def _claim_failure(
        self, mismatch: ClaimMismatch, state: ExchangeState, request: ExchangeRequest
    ) -> ExchangeFailure:
        claim_rejections_total.labels(phase=mismatch.phase.value, claim=mismatch.field).inc()
        return self._fail(FailureKind.UNAUTHORIZED, state, request, mismatch.describe())

    async def exchange(self, bearer_token: str, request: ExchangeRequest) -> ExchangeResult:
        state = ExchangeState.RECEIVED
        owner, repo = request.owner, request.repo

        payload = await self.verifier.verify(bearer_token)
        if payload is None:
            return self._fail(FailureKind.UNAUTHORIZED, state, request, "identity token failed signature verification")

        basic = verify_basic_claims(payload, owner, repo)
        if isinstance(basic, ClaimMismatch):
            return self._claim_failure(basic, state, request)
        state = ExchangeState.BASIC_VERIFIED

        try:
            installation_id = await self.app_auth.resolve_installation(owner, repo)
        except HTTPRequestError as e:
            return self._fail(FailureKind.UPSTREAM_FAILURE, state, request, f"installation lookup failed: {e}")
        state = ExchangeState.INSTALLATION_RESOLVED

        try:
            snapshot = await self.app_auth.get_repository(installation_id, owner, repo)
        except HTTPRequestError as e:
            return self._fail(FailureKind.UPSTREAM_FAILURE, state, request, f"repository lookup failed: {e}")

        mismatch = verify_ref_claims(
            payload,
            owner,
            repo,
            snapshot.default_branch,
            request.run_id,
            workflow_path=self.workflow_path,
        )
        if mismatch is not None:
            return self._claim_failure(mismatch, state, request)
        state = ExchangeState.REF_VERIFIED

        try:
            credential = await self.app_auth.mint_installation_token(installation_id, repo, self.permissions)
        except HTTPRequestError as e:
            return self._fail(FailureKind.UPSTREAM_FAILURE, state, request, f"minting failed: {e}")

        logger.info(
            f"Minted installation token for {owner}/{repo} run {request.run_id} "
            f"(installation {installation_id}, expires {credential.expires_at.isoformat()})"
        )
        token_exchanges_total.labels(outcome=ExchangeState.MINTED.value).inc()
        return credential
