"""
Credential authentication routes

Email/password sign-up, sign-in and sign-out, plus the public sign-in and
sign-up pages that also link to the OAuth providers.
"""
import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from expense_tracker.api.dependencies import get_app_settings, get_session_store
from expense_tracker.api.schemas import AuthResult, SignInRequest, SignUpRequest
from expense_tracker.core.auth.errors import SessionLookupError
from expense_tracker.core.auth.passwords import hash_password, verify_password
from expense_tracker.core.auth.providers import OAuthProviderName
from expense_tracker.core.auth.session import SessionStore, create_user_session, remove_user_from_session
from expense_tracker.core.config import Settings
from expense_tracker.core.database import UserRepository, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

SIGN_UP_FAILED = "Sign up failed"
SIGN_IN_FAILED = "Sign in failed"
EMAIL_IN_USE = "Email already in use"


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=AuthResult(success=False, error=message).model_dump())


def _render_page(title: str, error: Optional[str], alternate_href: str, alternate_label: str) -> str:
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    provider_links = "\n".join(
        f'<li><a href="/oauth/{p.value}">Continue with {p.value.capitalize()}</a></li>'
        for p in OAuthProviderName
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body>
<h1>{title}</h1>
{error_html}
<ul>
{provider_links}
</ul>
<p><a href="{alternate_href}">{alternate_label}</a></p>
</body>
</html>"""


@router.get("/sign-in", response_class=HTMLResponse)
async def sign_in_page(oAuthError: Optional[str] = None, settings: Settings = Depends(get_app_settings)):
    return _render_page("Sign in", oAuthError, settings.sign_up_path, "Create an account")


@router.get("/sign-up", response_class=HTMLResponse)
async def sign_up_page(oAuthError: Optional[str] = None, settings: Settings = Depends(get_app_settings)):
    return _render_page("Sign up", oAuthError, settings.sign_in_path, "Already have an account?")


@router.post("/sign-up", response_model=AuthResult)
async def sign_up(
    body: SignUpRequest,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
):
    """Register with email and password and sign in."""
    repo = UserRepository(db)

    if repo.find_by_email(body.email):
        return _failure(EMAIL_IN_USE, status.HTTP_409_CONFLICT)

    try:
        password_hash = await run_in_threadpool(hash_password, body.password)
        user = repo.create_user(email=body.email, name=body.name, password_hash=password_hash)
    except IntegrityError:
        return _failure(EMAIL_IN_USE, status.HTTP_409_CONFLICT)
    except SQLAlchemyError as e:
        logger.error(f"Sign up failed: {e}", exc_info=True)
        return _failure(SIGN_UP_FAILED, status.HTTP_500_INTERNAL_SERVER_ERROR)

    response = JSONResponse(content=AuthResult(success=True).model_dump())
    try:
        await create_user_session(store, user.id, response, secure=settings.cookie_secure)
    except SessionLookupError as e:
        logger.error(f"Session creation failed after sign up: {e}")
        return _failure(SIGN_UP_FAILED, status.HTTP_503_SERVICE_UNAVAILABLE)
    return response


@router.post("/sign-in", response_model=AuthResult)
async def sign_in(
    body: SignInRequest,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
):
    """Sign in with email and password."""
    user = UserRepository(db).find_by_email(body.email)

    # OAuth-only users have no password hash and cannot sign in this way
    if user is None or not user.password_hash:
        return _failure(SIGN_IN_FAILED, status.HTTP_401_UNAUTHORIZED)

    if not await run_in_threadpool(verify_password, body.password, user.password_hash):
        logger.warning(f"Failed password sign-in for user {user.id}")
        return _failure(SIGN_IN_FAILED, status.HTTP_401_UNAUTHORIZED)

    # A fresh session starts with a full TTL, so no separate expiry refresh is needed
    response = JSONResponse(content=AuthResult(success=True).model_dump())
    try:
        await create_user_session(store, user.id, response, secure=settings.cookie_secure)
    except SessionLookupError as e:
        logger.error(f"Session creation failed after sign in: {e}")
        return _failure(SIGN_IN_FAILED, status.HTTP_503_SERVICE_UNAVAILABLE)
    return response


@router.post("/sign-out", response_model=AuthResult)
async def sign_out(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
):
    """Delete the session and clear the cookie."""
    response = JSONResponse(content=AuthResult(success=True).model_dump())
    await remove_user_from_session(store, request, response, secure=settings.cookie_secure)
    return response
