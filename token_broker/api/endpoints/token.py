import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from token_broker.api import deps
from token_broker.schemas.token import ErrorResponse, ExchangeRequest, TokenResponse
from token_broker.services.broker import CredentialBroker
from token_broker.services.types import ExchangeFailure, FailureKind

logger = logging.getLogger(__name__)

router = APIRouter()

# Callers only ever see these generic messages; the reason stays in the logs.
_ERRORS = {
    FailureKind.UNAUTHORIZED: (status.HTTP_401_UNAUTHORIZED, "Unauthorized"),
    FailureKind.UPSTREAM_FAILURE: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to mint installation token"),
}


def _unauthorized() -> HTTPException:
    status_code, detail = _ERRORS[FailureKind.UNAUTHORIZED]
    return HTTPException(status_code=status_code, detail=detail, headers={"WWW-Authenticate": "Bearer"})


@router.post(
    "/token",
    summary="Exchange a workflow identity token",
    response_model=TokenResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def exchange_token(
    request: Request,
    bearer_token: Optional[str] = Depends(deps.get_bearer_token),
    broker: CredentialBroker = Depends(deps.get_credential_broker),
):
    """
    Exchange the GitHub Actions OIDC token of a workflow run for an
    installation access token scoped to the calling repository.

    Requires `Authorization: Bearer <identity token>` and a JSON body
    `{owner, repo, run_id}`.
    """
    if not bearer_token:
        logger.warning("Token exchange without a bearer token")
        raise _unauthorized()

    try:
        body = await request.json()
        exchange_request = ExchangeRequest.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.info(f"Malformed token exchange body: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid request body. Expected owner, repo and run_id.",
        )

    result = await broker.exchange(bearer_token, exchange_request)
    if isinstance(result, ExchangeFailure):
        if result.kind == FailureKind.UNAUTHORIZED:
            raise _unauthorized()
        status_code, detail = _ERRORS[result.kind]
        raise HTTPException(status_code=status_code, detail=detail)

    return TokenResponse(token=result.token, expires_at=result.expires_at)
