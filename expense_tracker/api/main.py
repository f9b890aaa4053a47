"""
FastAPI app for the Expense Tracker authentication core.

Run with:
    python -m expense_tracker.api.main
or:
    uvicorn expense_tracker.api.main:create_app --factory
"""
import logging
import re
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_tracker.api.middleware import SecurityHeadersMiddleware, SessionGateMiddleware
from expense_tracker.api.routes import auth, oauth, pages
from expense_tracker.core.auth.session import SessionStore, build_session_store
from expense_tracker.core.config import Settings, get_settings
from expense_tracker.core.database import get_session_factory, init_db

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("api.errors")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=settings.log_format)
    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _sanitize_error_message(message: str) -> str:
    """
    Scrub potential secrets from exception messages before logging.

    Covers database URLs with passwords, client secrets, OAuth codes and
    tokens, and session ids.
    """
    sanitized = re.sub(
        r'(postgresql|postgres|mysql|sqlite)://[^:]+:[^@]+@',
        r'\1://[USER]:[REDACTED]@',
        message,
        flags=re.IGNORECASE
    )
    sensitive_patterns = [
        (r'(GOOGLE_CLIENT_SECRET|GITHUB_CLIENT_SECRET)[=:\s]+[^\s,;]+', r'\1=[REDACTED]'),
        (r'(client_secret|code_verifier|access_token|password|secret|token|code)["\']?\s*[=:]\s*["\']?[^"\'\s,;&]+',
         r'\1=[REDACTED]'),
    ]
    for pattern, replacement in sensitive_patterns:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    # Long hex strings: session ids, state, verifiers
    sanitized = re.sub(r'\b[0-9a-f]{64,}\b', '[REDACTED_TOKEN]', sanitized)
    return sanitized


async def global_exception_handler(request: Request, exc: Exception):
    """
    Log detailed errors internally, return a generic message to the client.
    """
    error_id = str(uuid.uuid4())
    error_logger.error(
        f"Error {error_id}: {type(exc).__name__}: {_sanitize_error_message(str(exc))}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error_id": error_id,
        }
    )


def create_app(settings: Optional[Settings] = None, session_store: Optional[SessionStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment)
        session_store: Session store to use (defaults to the configured backend)
    """
    settings = settings or get_settings()
    configure_logging(settings)

    init_db(settings.database_url)
    if session_store is None:
        session_store = build_session_store(settings, get_session_factory())

    app = FastAPI(
        title="Expense Tracker",
        description="Expense tracking with OAuth and password sign-in",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.session_store = session_store

    app.add_exception_handler(Exception, global_exception_handler)

    # Last added runs first: CORS, then security headers, then the gate
    app.add_middleware(SessionGateMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=3600,
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # pages last: its /{user_id} route would shadow the others
    app.include_router(oauth.router)
    app.include_router(auth.router)
    app.include_router(pages.router)

    configured = [name for name, cid in (("google", settings.google_client_id),
                                         ("github", settings.github_client_id)) if cid]
    logger.info(f"OAuth providers configured: {', '.join(configured) or 'none'}")
    return app


def run():
    """Entry point: load .env and serve with uvicorn."""
    from dotenv import load_dotenv
    import uvicorn

    load_dotenv()
    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.api_port)


if __name__ == "__main__":
    run()
