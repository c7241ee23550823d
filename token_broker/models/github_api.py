"""Models for the GitHub REST API responses the broker consumes."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class RepositorySnapshot(BaseModel):
    """Repository metadata fetched once per exchange and never cached."""

    model_config = ConfigDict(extra="ignore")

    default_branch: str


class IssuedCredential(BaseModel):
    """Installation access token scoped to a single repository."""

    model_config = ConfigDict(extra="ignore")

    token: str
    expires_at: datetime
    permissions: Optional[Dict[str, str]] = None
