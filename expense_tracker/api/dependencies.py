"""
FastAPI dependencies shared by the routers.

Settings and the session store hang off app.state so the request gate
(which runs outside dependency injection) and the routes see the same ones.
"""
import logging
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.responses import Response

from expense_tracker.core.auth.errors import SessionLookupError
from expense_tracker.core.auth.session import (
    SessionStore,
    UserSession,
    clear_session_cookie,
    get_user_from_session,
)
from expense_tracker.core.config import Settings
from expense_tracker.core.database import User, UserRepository, get_db

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


async def get_oauth_http_client(
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for provider token and userinfo calls."""
    async with httpx.AsyncClient(timeout=settings.oauth_http_timeout) as client:
        yield client


async def get_current_session(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> Optional[UserSession]:
    """Session resolved by the request gate, or looked up if the gate did not run."""
    session = getattr(request.state, "user_session", None)
    if session is not None:
        return session
    return await get_user_from_session(store, request)


async def get_current_user(
    session: Optional[UserSession] = Depends(get_current_session),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
) -> User:
    """
    Load the signed-in user.

    Redirects to sign-in when there is no session. A session pointing at a
    user that no longer exists is deleted and its cookie cleared first, so
    the gate does not send the browser straight back.
    """
    headers = {"Location": settings.sign_in_path}

    if session is not None:
        user = UserRepository(db).get_user(session.user_id)
        if user is not None:
            return user
        logger.error(f"Session {session.id[:8]}... references missing user {session.user_id}, revoking")

        try:
            await store.delete(session.id)
        except SessionLookupError as e:
            logger.warning(f"Failed to delete orphaned session: {e}")

        cleared = Response()
        clear_session_cookie(cleared, settings.cookie_secure)
        headers["Set-Cookie"] = cleared.headers["set-cookie"]

    raise HTTPException(
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        headers=headers,
    )
