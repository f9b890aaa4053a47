"""
OAuth2 Authorization Code + PKCE client.

Handles the two halves of a sign-in:
- build_auth_url: issue state + verifier, point the browser at the provider
- complete_callback: validate state, exchange the code, fetch and normalize
  the profile

Flow per browser: IDLE -> AWAITING_CALLBACK -> COMPLETED | FAILED.
Nothing here retries; authorization codes are single-use.
"""
import json
import logging
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, StrictStr, ValidationError

from expense_tracker.core.auth.errors import (
    InvalidProfileShapeError,
    InvalidStateError,
    InvalidTokenResponseError,
    MissingCodeVerifierError,
    OAuthError,
)
from expense_tracker.core.auth.providers import (
    CanonicalProfile,
    ProviderConfig,
    normalize_profile,
    redirect_uri,
)
from expense_tracker.core.auth.tokens import (
    COOKIE_EXPIRATION_SECONDS,
    EphemeralTokenStore,
    clear_flow_tokens,
    code_challenge,
    get_code_verifier,
    issue_code_verifier,
    issue_state,
    validate_state,
)

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    COMPLETED = "completed"
    FAILED = "failed"


class TokenResponse(BaseModel):
    access_token: StrictStr
    token_type: StrictStr


def _transition(provider: ProviderConfig, old: FlowState, new: FlowState, reason: str = "") -> None:
    suffix = f" ({reason})" if reason else ""
    logger.info(f"OAuth flow [{provider.name}]: {old.value} -> {new.value}{suffix}")


def _read_json(response: httpx.Response) -> Optional[Any]:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None


def build_auth_url(
    provider: ProviderConfig,
    tokens: EphemeralTokenStore,
    redirect_url_base: str,
    cookie_max_age: int = COOKIE_EXPIRATION_SECONDS,
) -> str:
    """
    Generate the provider authorization URL.

    Issues a fresh state and code verifier into the token store. Only the
    S256 challenge leaves the server here; the raw verifier is sent to the
    token endpoint alone.

    Args:
        provider: Provider configuration
        tokens: Store receiving state and verifier
        redirect_url_base: Base URL the provider name is appended to
        cookie_max_age: Lifetime of state and verifier

    Returns:
        Full authorization URL for redirect
    """
    state = issue_state(tokens, cookie_max_age)
    verifier = issue_code_verifier(tokens, cookie_max_age)

    params = {
        "client_id": provider.client_id,
        "redirect_uri": redirect_uri(provider, redirect_url_base),
        "response_type": "code",
        "scope": provider.scope,
        "state": state,
        "code_challenge": code_challenge(verifier),
        "code_challenge_method": "S256",
    }

    _transition(provider, FlowState.IDLE, FlowState.AWAITING_CALLBACK)
    return f"{provider.endpoints.authorize}?{urlencode(params)}"


async def exchange_token(
    code: str,
    code_verifier: str,
    provider: ProviderConfig,
    redirect_url: str,
    client: httpx.AsyncClient,
) -> TokenResponse:
    """
    Exchange an authorization code for an access token.

    Args:
        code: Authorization code from the callback
        code_verifier: PKCE verifier issued with the authorize request
        provider: Provider configuration
        redirect_url: Same redirect URI used in the authorize request
        client: HTTP client

    Returns:
        Validated token response

    Raises:
        InvalidTokenResponseError: Transport failure, non-2xx status, or a
            body that does not match the token schema
    """
    payload = {
        "code": code,
        "redirect_uri": redirect_url,
        "grant_type": "authorization_code",
        "client_id": provider.client_id,
        "client_secret": provider.client_secret,
        "code_verifier": code_verifier,
    }

    try:
        response = await client.post(
            provider.endpoints.token,
            data=payload,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
        )
    except httpx.TimeoutException as e:
        raise InvalidTokenResponseError(f"Token request timed out: {e}", provider=provider.name) from e
    except httpx.RequestError as e:
        raise InvalidTokenResponseError(f"Failed to connect to token endpoint: {e}", provider=provider.name) from e

    if not response.is_success:
        raise InvalidTokenResponseError(
            "Token exchange failed", provider=provider.name, status_code=response.status_code
        )

    data = _read_json(response)
    try:
        return TokenResponse.model_validate(data)
    except ValidationError as e:
        raise InvalidTokenResponseError(
            f"Invalid token response: {e.error_count()} error(s)",
            provider=provider.name,
            status_code=response.status_code,
        ) from e


async def fetch_profile(
    access_token: str,
    token_type: str,
    provider: ProviderConfig,
    client: httpx.AsyncClient,
) -> Any:
    """
    Fetch the raw userinfo payload. One GET, no caching.

    Raises:
        InvalidProfileShapeError: Transport failure, non-2xx status or a
            non-JSON body
    """
    try:
        response = await client.get(
            provider.endpoints.userinfo,
            headers={
                "Authorization": f"{token_type} {access_token}",
                "Accept": "application/json",
            },
        )
    except httpx.TimeoutException as e:
        raise InvalidProfileShapeError(f"Userinfo request timed out: {e}", provider=provider.name) from e
    except httpx.RequestError as e:
        raise InvalidProfileShapeError(f"Failed to connect to userinfo endpoint: {e}", provider=provider.name) from e

    if not response.is_success:
        raise InvalidProfileShapeError(
            "Userinfo request failed", provider=provider.name, status_code=response.status_code
        )

    data = _read_json(response)
    if data is None:
        raise InvalidProfileShapeError(
            "Userinfo response is not JSON", provider=provider.name, status_code=response.status_code
        )
    return data


async def complete_callback(
    code: str,
    state: str,
    provider: ProviderConfig,
    tokens: EphemeralTokenStore,
    redirect_url_base: str,
    client: httpx.AsyncClient,
) -> CanonicalProfile:
    """
    Turn a provider callback into a CanonicalProfile.

    Steps run strictly in order; each one gates the next.

    Raises:
        InvalidStateError: State does not match the stored one
        MissingCodeVerifierError: No verifier stored for this browser
        InvalidTokenResponseError: Token exchange failed
        InvalidProfileShapeError: Userinfo fetch or validation failed
    """
    try:
        if not validate_state(tokens, state):
            raise InvalidStateError(provider=provider.name)

        try:
            verifier = get_code_verifier(tokens)
        except MissingCodeVerifierError:
            raise MissingCodeVerifierError(provider=provider.name) from None

        token = await exchange_token(
            code,
            verifier,
            provider,
            redirect_uri(provider, redirect_url_base),
            client,
        )
        raw_profile = await fetch_profile(token.access_token, token.token_type, provider, client)
        profile = normalize_profile(provider, raw_profile)
    except OAuthError as e:
        _transition(provider, FlowState.AWAITING_CALLBACK, FlowState.FAILED, type(e).__name__)
        raise

    clear_flow_tokens(tokens)
    _transition(provider, FlowState.AWAITING_CALLBACK, FlowState.COMPLETED)
    return profile
