from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from token_broker.models.types import NonEmptyStr, RunId


class ExchangeRequest(BaseModel):
    """Body of POST /api/github/token."""

    model_config = ConfigDict(extra="ignore")

    owner: NonEmptyStr = Field(..., description="Repository owner the workflow runs in")
    repo: NonEmptyStr = Field(..., description="Repository name without the owner")
    run_id: RunId = Field(..., description="Workflow run id (string or number)")


class TokenResponse(BaseModel):
    token: str = Field(..., description="Installation access token")
    expires_at: datetime = Field(..., description="Expiry of the token (ISO-8601)")


class ErrorResponse(BaseModel):
    detail: str
