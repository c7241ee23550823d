"""
Claim verification for workflow identity tokens.

Both functions take a payload whose signature, issuer and audience were
already verified and never touch the network. Phase 1 runs before the
broker spends any GitHub API quota; phase 2 needs the repository's default
branch, which the broker only learns after phase 1 passed.
"""

from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from token_broker.core.constants import (
    DEFAULT_WORKFLOW_PATH,
    TRUSTED_EVENT_NAME,
    TRUSTED_RUNNER_ENVIRONMENT,
)
from token_broker.models.oidc import BasicClaims, RefClaims
from token_broker.services.types import ClaimMismatch, VerificationPhase

ClaimsT = TypeVar("ClaimsT", bound=BaseModel)


def _parse_claims(
    model: Type[ClaimsT], payload: Dict[str, Any], phase: VerificationPhase
) -> Union[ClaimsT, ClaimMismatch]:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = e.errors()
        field = str(errors[0]["loc"][0]) if errors and errors[0].get("loc") else "payload"
        return ClaimMismatch(phase=phase, field=field, expected="valid claim", actual=payload.get(field))


def _first_mismatch(
    phase: VerificationPhase, checks: List[Tuple[str, str, Any]]
) -> Optional[ClaimMismatch]:
    for field, expected, actual in checks:
        if actual != expected:
            return ClaimMismatch(phase=phase, field=field, expected=expected, actual=actual)
    return None


def verify_basic_claims(
    payload: Dict[str, Any], owner: str, repo: str
) -> Union[BasicClaims, ClaimMismatch]:
    """Bind the token to the requested repository, trigger and runner type."""
    claims = _parse_claims(BasicClaims, payload, VerificationPhase.BASIC)
    if isinstance(claims, ClaimMismatch):
        return claims

    mismatch = _first_mismatch(
        VerificationPhase.BASIC,
        [
            ("repository", f"{owner}/{repo}", claims.repository),
            ("repository_owner", owner, claims.repository_owner),
            ("event_name", TRUSTED_EVENT_NAME, claims.event_name),
            ("runner_environment", TRUSTED_RUNNER_ENVIRONMENT, claims.runner_environment),
        ],
    )
    return mismatch or claims


def verify_ref_claims(
    payload: Dict[str, Any],
    owner: str,
    repo: str,
    default_branch: str,
    run_id: str,
    workflow_path: str = DEFAULT_WORKFLOW_PATH,
) -> Optional[ClaimMismatch]:
    """
    Pin the token to the default branch, the trusted workflow file at that
    branch, and the run that asked for the credential.

    Returns None when every check passes.
    """
    claims = _parse_claims(RefClaims, payload, VerificationPhase.REF)
    if isinstance(claims, ClaimMismatch):
        return claims

    trusted_ref = f"refs/heads/{default_branch}"
    return _first_mismatch(
        VerificationPhase.REF,
        [
            ("ref", trusted_ref, claims.ref),
            ("job_workflow_ref", f"{owner}/{repo}/{workflow_path}@{trusted_ref}", claims.job_workflow_ref),
            ("run_id", run_id, claims.run_id),
        ],
    )
