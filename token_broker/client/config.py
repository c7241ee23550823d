from typing import Optional, Tuple

from pydantic_settings import BaseSettings

from token_broker.core.constants import OIDC_AUDIENCE, TOKEN_EXCHANGE_TIMEOUT, TOKEN_EXCHANGE_URL


class ClientSettings(BaseSettings):
    """Environment of the workflow run that asks for a credential."""

    # Only present when the job has `permissions: id-token: write`
    ACTIONS_ID_TOKEN_REQUEST_URL: Optional[str] = None
    ACTIONS_ID_TOKEN_REQUEST_TOKEN: Optional[str] = None

    GITHUB_REPOSITORY: Optional[str] = None
    GITHUB_RUN_ID: Optional[str] = None
    GITHUB_ACTIONS: bool = False

    # Local fallback credentials
    GH_TOKEN: Optional[str] = None
    GITHUB_TOKEN: Optional[str] = None

    TOKEN_BROKER_URL: str = TOKEN_EXCHANGE_URL
    TOKEN_BROKER_TIMEOUT: float = TOKEN_EXCHANGE_TIMEOUT
    OIDC_AUDIENCE: str = OIDC_AUDIENCE

    class Config:
        case_sensitive = True

    @property
    def oidc_available(self) -> bool:
        return bool(self.ACTIONS_ID_TOKEN_REQUEST_URL and self.ACTIONS_ID_TOKEN_REQUEST_TOKEN)

    @property
    def exchange_url(self) -> str:
        return self.TOKEN_BROKER_URL.strip() or TOKEN_EXCHANGE_URL

    @property
    def fallback_token(self) -> Optional[str]:
        return self.GH_TOKEN or self.GITHUB_TOKEN or None

    def repository(self) -> Tuple[str, str]:
        """Split GITHUB_REPOSITORY into (owner, repo)."""
        value = (self.GITHUB_REPOSITORY or "").strip()
        if not value:
            raise ValueError("GITHUB_REPOSITORY is required (format: owner/repo).")
        segments = value.split("/")
        if len(segments) != 2 or not all(segments):
            raise ValueError(f"Invalid GITHUB_REPOSITORY value '{value}'. Expected format: owner/repo.")
        return segments[0], segments[1]
