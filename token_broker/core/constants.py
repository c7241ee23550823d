"""
Application Constants

Values shared by the exchange service and the acquisition client.
Both sides import them from here so the audience a workflow requests is
always the audience the broker expects.
"""

# =============================================================================
# GitHub Actions OIDC
# =============================================================================

GITHUB_OIDC_ISSUER = "https://token.actions.githubusercontent.com"

# Well-known JWKS endpoint for github.com
GITHUB_OIDC_JWKS_URI = f"{GITHUB_OIDC_ISSUER}/.well-known/jwks"

OIDC_AUDIENCE = "clank8y"

OIDC_ALGORITHMS = ["RS256"]

# The only trigger the webhook dispatcher issues
TRUSTED_EVENT_NAME = "workflow_dispatch"

# Self-hosted runners are rejected
TRUSTED_RUNNER_ENVIRONMENT = "github-hosted"

DEFAULT_WORKFLOW_PATH = ".github/workflows/clank8y.yml"

# =============================================================================
# Cache TTLs (in seconds)
# =============================================================================

GITHUB_JWKS_CACHE_TTL = 3600  # 1 hour
GITHUB_JWKS_URI_CACHE_TTL = 24 * 3600  # 24 hours
# Minimum gap between JWKS downloads triggered by an unknown kid
JWKS_REFRESH_COOLDOWN_SECONDS = 30.0

# =============================================================================
# GitHub API
# =============================================================================

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_API_TIMEOUT = 10.0

# App JWT lifetime, GitHub caps it at 10 minutes
APP_JWT_TTL_SECONDS = 9 * 60
APP_JWT_CLOCK_SKEW_SECONDS = 60

# Permission set of every minted credential
INSTALLATION_TOKEN_PERMISSIONS = {
    "contents": "read",
    "pull_requests": "write",
    "issues": "write",
}

# Used only to read the default branch before phase 2
REPOSITORY_METADATA_PERMISSIONS = {"metadata": "read"}

# =============================================================================
# Acquisition Client
# =============================================================================

TOKEN_EXCHANGE_URL = "https://clank8y.dev/api/github/token"
TOKEN_EXCHANGE_PATH = "/api/github/token"
TOKEN_EXCHANGE_ATTEMPTS = 3
TOKEN_EXCHANGE_RETRY_DELAYS = (0.25, 0.75)
TOKEN_EXCHANGE_TIMEOUT = 30.0
