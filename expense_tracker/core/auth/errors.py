"""
Authentication errors.

Every OAuth failure is terminal for the attempt: callers convert them to a
redirect carrying a generic message and log the detail server-side.
"""
from typing import Optional


class OAuthError(Exception):
    """Raised when an OAuth operation fails."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


class InvalidStateError(OAuthError):
    """Callback state does not match the state cookie for this browser."""

    def __init__(self, provider: Optional[str] = None):
        super().__init__("Invalid state", provider=provider)


class MissingCodeVerifierError(OAuthError):
    """PKCE verifier cookie absent: expired, replayed or cross-device callback."""

    def __init__(self, provider: Optional[str] = None):
        super().__init__("Missing code verifier", provider=provider)


class InvalidTokenResponseError(OAuthError):
    """Token endpoint returned an unusable payload."""


class InvalidProfileShapeError(OAuthError):
    """Userinfo endpoint returned an unusable payload."""


class UnknownProviderError(OAuthError, ValueError):
    """Provider name outside the supported set."""

    def __init__(self, name: str):
        super().__init__(f"Unknown OAuth provider: {name}", provider=name)


class ProviderNotConfiguredError(OAuthError):
    """Provider is supported but its client credentials are missing."""

    def __init__(self, name: str):
        super().__init__("OAuth client credentials not configured", provider=name)


class SessionLookupError(Exception):
    """Session backend unavailable or failing."""
