"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
Read once at startup; treat the returned object as immutable afterwards.
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # OAuth Providers
    # ============================================================
    oauth_redirect_url_base: str = Field(
        "http://localhost:8000/api/oauth/",
        description="Base URL the provider name is appended to for the redirect URI"
    )
    google_client_id: str = Field("", description="Google OAuth client ID")
    google_client_secret: str = Field("", description="Google OAuth client secret")
    github_client_id: str = Field("", description="GitHub OAuth client ID")
    github_client_secret: str = Field("", description="GitHub OAuth client secret")
    oauth_http_timeout: float = Field(10.0, description="Timeout (seconds) for token/userinfo calls")
    oauth_cookie_max_age: int = Field(600, description="Max-Age of the state and verifier cookies")

    # ============================================================
    # Sessions
    # ============================================================
    session_expiration_seconds: int = Field(60 * 60 * 24 * 7, description="Session TTL (7 days)")
    session_backend: str = Field("memory", description="Session backend: memory or database")
    session_sliding_expiration: bool = Field(
        True,
        description="Renew the session TTL on authenticated requests"
    )
    cookie_secure: bool = Field(True, description="Set the Secure flag on auth cookies")

    # ============================================================
    # Routing
    # ============================================================
    sign_in_path: str = Field("/sign-in", description="Public sign-in page")
    sign_up_path: str = Field("/sign-up", description="Public sign-up page")

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field("sqlite:///./expense_tracker.db", description="SQLAlchemy database URL")

    # ============================================================
    # API Configuration
    # ============================================================
    allowed_origins: str = Field(
        "http://localhost:3000,http://localhost:8000",
        description="Comma-separated CORS allowed origins"
    )
    api_port: int = Field(8000, description="API server port")

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse allowed origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def public_only_paths(self) -> List[str]:
        """Pages an authenticated user is bounced away from."""
        return [self.sign_in_path, self.sign_up_path]


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
