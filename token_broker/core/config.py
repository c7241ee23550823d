import logging
from typing import Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from token_broker.core.constants import (
    DEFAULT_WORKFLOW_PATH,
    GITHUB_API_TIMEOUT,
    GITHUB_API_URL,
    GITHUB_OIDC_ISSUER,
    OIDC_AUDIENCE,
)

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised at startup when the service cannot be configured."""


class Settings(BaseSettings):
    PROJECT_NAME: str = "Token Broker"

    # GitHub App identity
    GITHUB_APP_ID: str
    GITHUB_APP_PRIVATE_KEY: str
    GITHUB_API_URL: str = GITHUB_API_URL
    GITHUB_API_TIMEOUT: float = GITHUB_API_TIMEOUT

    # Trust anchors for workflow identity tokens
    OIDC_ISSUER: str = GITHUB_OIDC_ISSUER
    OIDC_AUDIENCE: str = OIDC_AUDIENCE
    OIDC_JWKS_URI: Optional[str] = None
    WORKFLOW_PATH: str = DEFAULT_WORKFLOW_PATH

    # Redis Cache Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "tb:"
    CACHE_DEFAULT_TTL_HOURS: int = 1

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "GITHUB_APP_ID",
        "GITHUB_APP_PRIVATE_KEY",
        "OIDC_ISSUER",
        "OIDC_AUDIENCE",
        "WORKFLOW_PATH",
    )
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("GITHUB_APP_PRIVATE_KEY")
    @classmethod
    def _unescape_newlines(cls, value: str) -> str:
        # Secret stores often keep multiline PEM keys with literal "\n"
        return value.replace("\\n", "\n")

    @field_validator("OIDC_ISSUER", "GITHUB_API_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    class Config:
        case_sensitive = True
        env_file = ".env"


def load_settings(**overrides) -> Settings:
    """Load settings from the environment, failing with ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        logger.critical(f"Invalid or missing configuration: {fields}")
        raise ConfigurationError(f"Invalid or missing configuration: {fields}") from e


settings = load_settings()
