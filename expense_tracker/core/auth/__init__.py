"""
Authentication core.

Components:
- tokens: CSRF state and PKCE verifier in short-lived cookies
- providers: Google and GitHub adapters, CanonicalProfile
- oauth_client: token exchange, profile fetch, build/complete flow
- session: server-side session store and cookie binding
- passwords: bcrypt hashing for credential sign-in
"""

from .errors import (
    OAuthError,
    InvalidStateError,
    MissingCodeVerifierError,
    InvalidTokenResponseError,
    InvalidProfileShapeError,
    UnknownProviderError,
    ProviderNotConfiguredError,
    SessionLookupError,
)
from .providers import (
    CanonicalProfile,
    OAuthProviderName,
    ProviderConfig,
    get_provider,
)
from .oauth_client import (
    FlowState,
    build_auth_url,
    complete_callback,
    exchange_token,
    fetch_profile,
)
from .session import (
    SessionStore,
    MemoryBackend,
    DatabaseBackend,
    UserSession,
    build_session_store,
)

__all__ = [
    # Errors
    "OAuthError",
    "InvalidStateError",
    "MissingCodeVerifierError",
    "InvalidTokenResponseError",
    "InvalidProfileShapeError",
    "UnknownProviderError",
    "ProviderNotConfiguredError",
    "SessionLookupError",
    # Providers
    "CanonicalProfile",
    "OAuthProviderName",
    "ProviderConfig",
    "get_provider",
    # OAuth flow
    "FlowState",
    "build_auth_url",
    "complete_callback",
    "exchange_token",
    "fetch_profile",
    # Sessions
    "SessionStore",
    "MemoryBackend",
    "DatabaseBackend",
    "UserSession",
    "build_session_store",
]
