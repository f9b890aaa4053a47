"""
OAuth sign-in routes

Authorization Code + PKCE against Google or GitHub. Every failure ends in a
redirect to the sign-in page with the same generic message; the detail only
goes to the server log.
"""
import logging
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from expense_tracker.api.dependencies import get_app_settings, get_oauth_http_client, get_session_store
from expense_tracker.core.auth.errors import OAuthError, SessionLookupError
from expense_tracker.core.auth.oauth_client import build_auth_url, complete_callback
from expense_tracker.core.auth.providers import get_provider
from expense_tracker.core.auth.session import SessionStore, create_user_session
from expense_tracker.core.auth.tokens import CookieTokenStore
from expense_tracker.core.config import Settings
from expense_tracker.core.database import UserRepository, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])

GENERIC_OAUTH_ERROR = "Failed to connect. Please try again."


def sign_in_error_redirect(settings: Settings, message: str = GENERIC_OAUTH_ERROR) -> RedirectResponse:
    """Redirect to sign-in with a percent-encoded, user-facing error message."""
    query = urlencode({"oAuthError": message}, quote_via=quote)
    return RedirectResponse(url=f"{settings.sign_in_path}?{query}", status_code=303)


@router.get("/oauth/{provider}")
async def oauth_sign_in(
    provider: str,
    request: Request,
    settings: Settings = Depends(get_app_settings),
):
    """
    Start an OAuth sign-in.

    Sets the state and code verifier cookies and redirects to the provider
    consent screen.
    """
    try:
        config = get_provider(provider, settings)
    except OAuthError as e:
        logger.error(f"OAuth sign-in unavailable: {e}")
        return sign_in_error_redirect(settings)

    tokens = CookieTokenStore(request, secure=settings.cookie_secure)
    auth_url = build_auth_url(
        config,
        tokens,
        settings.oauth_redirect_url_base,
        settings.oauth_cookie_max_age,
    )

    return tokens.apply(RedirectResponse(url=auth_url, status_code=303))


@router.get("/api/oauth/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_oauth_http_client),
):
    """
    Handle the provider redirect.

    Validates state, exchanges the code, resolves the user, creates the
    session and redirects to the app root.
    """
    if error:
        logger.error(f"OAuth callback error from {provider}: {error}")
        return sign_in_error_redirect(settings)

    if not code or not state:
        logger.error(f"Missing OAuth parameters from {provider} - code: {bool(code)}, state: {bool(state)}")
        return sign_in_error_redirect(settings)

    tokens = CookieTokenStore(request, secure=settings.cookie_secure)

    try:
        config = get_provider(provider, settings)
        profile = await complete_callback(
            code,
            state,
            config,
            tokens,
            settings.oauth_redirect_url_base,
            client,
        )
    except OAuthError as e:
        logger.error(f"OAuth callback failed: {type(e).__name__}: {e}")
        return sign_in_error_redirect(settings)

    try:
        user = UserRepository(db).resolve_or_create_user(profile, config.name)
    except SQLAlchemyError as e:
        logger.error(f"Identity resolution failed for {config.name}: {e}", exc_info=True)
        return sign_in_error_redirect(settings)

    response = RedirectResponse(url="/", status_code=303)
    try:
        await create_user_session(store, user.id, response, secure=settings.cookie_secure)
    except SessionLookupError as e:
        logger.error(f"Session creation failed after {config.name} sign-in: {e}")
        return sign_in_error_redirect(settings)

    logger.info(f"OAuth sign-in successful via {config.name} for user {user.id}")
    return tokens.apply(response)
