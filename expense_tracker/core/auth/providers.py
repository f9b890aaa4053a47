"""
OAuth provider adapters.

A provider is plain data: endpoints, scopes, credentials, plus the pydantic
schema its userinfo response must satisfy and a normalizer mapping that
schema onto the CanonicalProfile. Adding a provider means adding one more
config builder here.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, EmailStr, ValidationError

from expense_tracker.core.auth.errors import (
    InvalidProfileShapeError,
    ProviderNotConfiguredError,
    UnknownProviderError,
)
from expense_tracker.core.config import Settings

logger = logging.getLogger(__name__)

FALLBACK_NAME = "Unknown"


class OAuthProviderName(str, Enum):
    GOOGLE = "google"
    GITHUB = "github"


class CanonicalProfile(BaseModel):
    """Provider-agnostic identity handed to identity resolution. Never stored."""
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str


@dataclass(frozen=True)
class ProviderEndpoints:
    authorize: str
    token: str
    userinfo: str


@dataclass(frozen=True)
class ProviderConfig:
    """Static per-provider configuration, immutable for the process lifetime."""
    name: str
    client_id: str
    client_secret: str
    scopes: Tuple[str, ...]
    endpoints: ProviderEndpoints
    profile_schema: Type[BaseModel]
    normalizer: Callable[[Any], CanonicalProfile]

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


# ============================================================================
# Google
# ============================================================================

class GoogleUserInfo(BaseModel):
    sub: str
    email: EmailStr
    name: str
    given_name: Optional[str] = None


def _normalize_google(user: GoogleUserInfo) -> CanonicalProfile:
    return CanonicalProfile(id=user.sub, email=user.email, name=user.name or FALLBACK_NAME)


def google_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        name=OAuthProviderName.GOOGLE.value,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=("openid", "email", "profile"),
        endpoints=ProviderEndpoints(
            authorize="https://accounts.google.com/o/oauth2/auth",
            token="https://oauth2.googleapis.com/token",
            userinfo="https://openidconnect.googleapis.com/v1/userinfo",
        ),
        profile_schema=GoogleUserInfo,
        normalizer=_normalize_google,
    )


# ============================================================================
# GitHub
# ============================================================================

class GitHubUserInfo(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str]
    login: str


def _normalize_github(user: GitHubUserInfo) -> CanonicalProfile:
    # GitHub returns null for accounts without a display name
    return CanonicalProfile(id=str(user.id), email=user.email, name=user.name or FALLBACK_NAME)


def github_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        name=OAuthProviderName.GITHUB.value,
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        scopes=("read:user", "user:email"),
        endpoints=ProviderEndpoints(
            authorize="https://github.com/login/oauth/authorize",
            token="https://github.com/login/oauth/access_token",
            userinfo="https://api.github.com/user",
        ),
        profile_schema=GitHubUserInfo,
        normalizer=_normalize_github,
    )


_PROVIDER_BUILDERS: Dict[OAuthProviderName, Callable[[Settings], ProviderConfig]] = {
    OAuthProviderName.GOOGLE: google_provider,
    OAuthProviderName.GITHUB: github_provider,
}


def parse_provider_name(name: str) -> OAuthProviderName:
    try:
        return OAuthProviderName(name)
    except ValueError:
        raise UnknownProviderError(name)


def get_provider(name: str, settings: Settings) -> ProviderConfig:
    """
    Build the config for a provider.

    Raises:
        UnknownProviderError: Name outside the supported set
        ProviderNotConfiguredError: Client id or secret missing
    """
    provider = _PROVIDER_BUILDERS[parse_provider_name(name)](settings)
    if not provider.client_id or not provider.client_secret:
        raise ProviderNotConfiguredError(provider.name)
    return provider


def redirect_uri(provider: ProviderConfig, redirect_url_base: str) -> str:
    """Provider callback URL; must match the one allowlisted in the provider console."""
    base = redirect_url_base if redirect_url_base.endswith("/") else redirect_url_base + "/"
    return urljoin(base, provider.name)


def normalize_profile(provider: ProviderConfig, raw: Any) -> CanonicalProfile:
    """
    Validate a raw userinfo payload and map it to a CanonicalProfile.

    Raises:
        InvalidProfileShapeError: Payload does not match the provider schema
    """
    try:
        user = provider.profile_schema.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Userinfo from {provider.name} failed validation: {e.error_count()} error(s): {e}")
        raise InvalidProfileShapeError("Invalid user profile", provider=provider.name) from e
    return provider.normalizer(user)
