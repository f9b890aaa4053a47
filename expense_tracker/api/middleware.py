"""
Middleware: request gate and security headers.

The gate runs before every handler:
- no session cookie on a protected path -> redirect to sign-in
- cookie that no longer resolves -> clear it, redirect to sign-in
- valid session on "/" or a public-only page -> redirect to the user's landing
"""
import logging
from typing import Iterable, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from expense_tracker.core.auth.errors import SessionLookupError
from expense_tracker.core.auth.session import (
    SESSION_COOKIE_KEY,
    clear_session_cookie,
    get_session_id,
    set_session_cookie,
)

logger = logging.getLogger(__name__)

# Neither protected nor public-only: the OAuth round trip and probes
OPEN_PATH_PREFIXES: Tuple[str, ...] = (
    "/oauth/",
    "/api/oauth/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            return True
    return False


def _sets_cookie(response: Response, name: str) -> bool:
    return any(
        header.startswith(f"{name}=")
        for header in response.headers.getlist("set-cookie")
    )


class SessionGateMiddleware(BaseHTTPMiddleware):
    """Resolve the session cookie and redirect based on auth state and path."""

    def __init__(self, app, open_prefixes: Tuple[str, ...] = OPEN_PATH_PREFIXES):
        super().__init__(app)
        self.open_prefixes = open_prefixes

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if _matches(path, self.open_prefixes):
            return await call_next(request)

        settings = request.app.state.settings
        store = request.app.state.session_store
        public_only = _matches(path, settings.public_only_paths)
        secure = settings.cookie_secure

        session_id = get_session_id(request)
        if not session_id:
            if public_only:
                return await call_next(request)
            return RedirectResponse(url=settings.sign_in_path, status_code=307)

        try:
            session = await store.read(session_id)
        except SessionLookupError as e:
            logger.warning(f"Session lookup failed on {path}, treating as signed out: {e}")
            session = None

        if session is None:
            logger.info(f"Stale session cookie {session_id[:8]}... on {path}")
            if public_only:
                response = await call_next(request)
                # Keep a session the handler just created (sign-in over a stale cookie)
                if not _sets_cookie(response, SESSION_COOKIE_KEY):
                    clear_session_cookie(response, secure)
                return response
            response = RedirectResponse(url=settings.sign_in_path, status_code=307)
            clear_session_cookie(response, secure)
            return response

        if path == "/" or public_only:
            # A form POST to sign-in must land on the GET-only landing route
            status_code = 307 if request.method in ("GET", "HEAD") else 303
            return RedirectResponse(url=f"/{session.user_id}", status_code=status_code)

        request.state.user_session = session

        refreshed = False
        if settings.session_sliding_expiration:
            try:
                refreshed = await store.refresh_expiry(session_id) is not None
            except SessionLookupError as e:
                logger.warning(f"Session refresh failed on {path}: {e}")

        response = await call_next(request)

        # Sign-out may have cleared the cookie; don't resurrect it
        if refreshed and not _sets_cookie(response, SESSION_COOKIE_KEY):
            set_session_cookie(response, session_id, store.ttl_seconds, secure)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
