"""
Server-side Session Store

Sessions live in a key/value backend under "session:<id>" with a TTL.
The browser only ever holds the opaque id in an http-only cookie; every
request resolves it through the store, so deleting the record revokes the
session immediately.
"""
import logging
import secrets
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.requests import Request
from starlette.responses import Response

from expense_tracker.core.auth.errors import SessionLookupError
from expense_tracker.core.config import Settings
from expense_tracker.core.database.models import SessionRecord

logger = logging.getLogger(__name__)

SESSION_EXPIRATION_SECONDS = 60 * 60 * 24 * 7
SESSION_COOKIE_KEY = "session_id"
SESSION_KEY_PREFIX = "session:"


class UserSession(BaseModel):
    """Minimal identity stored per session."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    user_id: str = Field(alias="userId")


# ============================================================================
# Backends
# ============================================================================

class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryBackend:
    """
    Thread-safe in-memory key/value storage with per-key expiry.

    Single-process only; data is lost on restart.
    """

    def __init__(self, clock: Callable[[], float] = time.time, cleanup_interval: int = 60):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = 0.0

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._maybe_cleanup()
            self._entries[key] = (value, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _maybe_cleanup(self) -> None:
        """Drop expired entries if interval has passed."""
        now = self._clock()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired session entries")

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


class DatabaseBackend:
    """
    SQLAlchemy-backed key/value storage.

    Rows past expires_at are treated as absent. A read deletes the expired
    row it hits; writes purge all expired rows once per cleanup interval.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = datetime.utcnow,
        cleanup_interval: int = 300,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup: Optional[datetime] = None

    async def get(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            record = db.get(SessionRecord, key)
            if record is None:
                return None
            if record.expires_at <= self._clock():
                db.delete(record)
                db.commit()
                return None
            return record.value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._maybe_cleanup()
        expires_at = self._clock() + timedelta(seconds=ttl)
        with self._session_factory() as db:
            record = db.get(SessionRecord, key)
            if record is None:
                db.add(SessionRecord(key=key, value=value, expires_at=expires_at))
            else:
                record.value = value
                record.expires_at = expires_at
            db.commit()

    async def delete(self, key: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(SessionRecord).where(SessionRecord.key == key))
            db.commit()

    def purge_expired(self) -> int:
        """Delete all expired rows. Returns number removed."""
        with self._session_factory() as db:
            expired = db.execute(
                select(SessionRecord.key).where(SessionRecord.expires_at <= self._clock())
            ).scalars().all()
            if expired:
                db.execute(delete(SessionRecord).where(SessionRecord.key.in_(expired)))
                db.commit()
            return len(expired)

    def _maybe_cleanup(self) -> None:
        """Purge expired rows if interval has passed."""
        now = self._clock()
        if self._last_cleanup is not None and (now - self._last_cleanup).total_seconds() < self._cleanup_interval:
            return

        self._last_cleanup = now
        removed = self.purge_expired()
        if removed:
            logger.info(f"Purged {removed} expired session records")


# ============================================================================
# Store
# ============================================================================

class SessionStore:
    """Create, read, refresh and delete sessions on a key/value backend."""

    def __init__(self, backend: KeyValueBackend, ttl_seconds: int = SESSION_EXPIRATION_SECONDS):
        self.backend = backend
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    async def create(self, user_id: str) -> str:
        """Store a new session for user_id and return its id."""
        session_id = secrets.token_hex(32)
        payload = UserSession(id=session_id, user_id=user_id)
        await self._write(payload)
        logger.info(f"Session created: {session_id[:8]}... for user {user_id}")
        return session_id

    async def read(self, session_id: str) -> Optional[UserSession]:
        """
        Look up a session.

        Returns None if the session is absent, expired, or its payload is not
        a valid session record.

        Raises:
            SessionLookupError: If the backend fails
        """
        try:
            raw = await self.backend.get(self._key(session_id))
        except (SQLAlchemyError, OSError) as e:
            raise SessionLookupError(f"Session backend unavailable: {e}") from e

        if raw is None:
            return None

        try:
            session = UserSession.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding malformed session payload for {session_id[:8]}...")
            return None

        if session.id != session_id:
            logger.warning(f"Session payload id mismatch for {session_id[:8]}...")
            return None
        return session

    async def refresh_expiry(self, session_id: str) -> Optional[UserSession]:
        """Rewrite the session with a renewed TTL. Returns None if there is nothing to refresh."""
        session = await self.read(session_id)
        if session is None:
            return None
        await self._write(session)
        logger.debug(f"Session expiry refreshed: {session_id[:8]}...")
        return session

    async def delete(self, session_id: str) -> None:
        """Remove the session. Deleting an absent session is a no-op."""
        try:
            await self.backend.delete(self._key(session_id))
        except (SQLAlchemyError, OSError) as e:
            raise SessionLookupError(f"Session backend unavailable: {e}") from e
        logger.info(f"Session deleted: {session_id[:8]}...")

    async def _write(self, session: UserSession) -> None:
        try:
            await self.backend.set(
                self._key(session.id),
                session.model_dump_json(by_alias=True),
                self.ttl_seconds,
            )
        except (SQLAlchemyError, OSError) as e:
            raise SessionLookupError(f"Session backend unavailable: {e}") from e


def build_session_store(settings: Settings, session_factory: Optional[sessionmaker] = None) -> SessionStore:
    """Select the backend from configuration."""
    if settings.session_backend == "database":
        if session_factory is None:
            raise ValueError("Database session backend requires a session factory")
        backend = DatabaseBackend(session_factory)
    elif settings.session_backend == "memory":
        backend = MemoryBackend()
    else:
        raise ValueError(f"Unknown session backend: {settings.session_backend}")

    logger.info(f"Session store using {settings.session_backend} backend")
    return SessionStore(backend, ttl_seconds=settings.session_expiration_seconds)


# ============================================================================
# Cookie binding
# ============================================================================

def get_session_id(request: Request) -> Optional[str]:
    """Extract session ID from cookie."""
    return request.cookies.get(SESSION_COOKIE_KEY)


def set_session_cookie(response: Response, session_id: str, max_age: int, secure: bool = True) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_KEY,
        value=session_id,
        max_age=max_age,
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response, secure: bool = True) -> None:
    response.delete_cookie(SESSION_COOKIE_KEY, secure=secure, httponly=True, samesite="lax")


async def create_user_session(store: SessionStore, user_id: str, response: Response, secure: bool = True) -> str:
    """Create a session and set its cookie on the response."""
    session_id = await store.create(user_id)
    set_session_cookie(response, session_id, store.ttl_seconds, secure)
    return session_id


async def get_user_from_session(store: SessionStore, request: Request) -> Optional[UserSession]:
    """
    Resolve the session cookie to a session.

    Backend failures degrade to "not signed in".
    """
    session_id = get_session_id(request)
    if not session_id:
        return None

    try:
        return await store.read(session_id)
    except SessionLookupError as e:
        logger.warning(f"Session lookup failed, treating request as signed out: {e}")
        return None


async def update_user_session_expiration(
    store: SessionStore,
    request: Request,
    response: Response,
    secure: bool = True,
) -> Optional[UserSession]:
    """Slide the session TTL and the cookie Max-Age forward from now."""
    session_id = get_session_id(request)
    if not session_id:
        return None

    try:
        session = await store.refresh_expiry(session_id)
    except SessionLookupError as e:
        logger.warning(f"Session refresh failed: {e}")
        return None

    if session is not None:
        set_session_cookie(response, session_id, store.ttl_seconds, secure)
    return session


async def remove_user_from_session(
    store: SessionStore,
    request: Request,
    response: Response,
    secure: bool = True,
) -> None:
    """Delete the session record and clear the cookie. Idempotent."""
    session_id = get_session_id(request)
    if session_id:
        try:
            await store.delete(session_id)
        except SessionLookupError as e:
            logger.warning(f"Session delete failed, clearing cookie anyway: {e}")
    clear_session_cookie(response, secure)
