"""
Pydantic models for GitHub Actions OIDC token payloads.

The decoded payload is an untyped claim bag. Each verification phase
narrows it to the handful of claims it checks; extra="ignore" discards
the rest. A payload that lacks a claim, or carries it with the wrong type,
fails validation.
"""

from pydantic import BaseModel, ConfigDict, StrictStr

from token_broker.models.types import RunId


class BasicClaims(BaseModel):
    """Claims checked before any GitHub API call (phase 1)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    repository: StrictStr  # "owner/repo" format
    repository_owner: StrictStr
    event_name: StrictStr
    runner_environment: StrictStr  # "github-hosted" or "self-hosted"


class RefClaims(BaseModel):
    """Claims checked against the repository's default branch (phase 2)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ref: StrictStr  # "refs/heads/<branch>"
    job_workflow_ref: StrictStr  # "owner/repo/.github/workflows/x.yml@refs/heads/<branch>"
    run_id: RunId
