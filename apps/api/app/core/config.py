"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Community branding used in email copy
    COMMUNITY_NAME: str = "Sarasota Tech"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./portal.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 24 * 7

    # Claim / sign-in link tokens
    CLAIM_TOKEN_EXPIRES_HOURS: int = 72
    SIGN_IN_TOKEN_EXPIRES_MINUTES: int = 30

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Frontend (for links in emails)
    FRONTEND_URL: str = "http://localhost:5173"

    # Luma (external events platform)
    LUMA_API_KEY: str = ""
    LUMA_API_BASE: str = "https://api.lu.ma/public/v1"
    LUMA_TIMEOUT_SECONDS: float = 20.0
    LUMA_PAGE_SIZE: int = 100

    # Platform email (Resend)
    PLATFORM_RESEND_API_KEY: str = ""
    PLATFORM_EMAIL_FROM: str = ""

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Claim invitation drip campaign
    CLAIM_INVITATIONS_DRY_RUN: bool = False

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""  # Get from https://sentry.io

    # Rate Limiting (requests per minute)
    RATE_LIMIT_CLAIM: int = 10  # Claim / invite / sign-in link requests
    RATE_LIMIT_API: int = 120  # General API

    # Same-address resend cooldown for claim/invite emails
    CLAIM_EMAIL_COOLDOWN_SECONDS: int = 120

    # Sync jobs kept in memory for reattach after they finish
    SYNC_JOB_HISTORY_LIMIT: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
