"""
Ephemeral OAuth tokens: CSRF state and PKCE code verifier.

Both are single-use random strings held by the browser in short-lived
cookies. Storage goes through the EphemeralTokenStore protocol so the flow
can run against a plain dict in tests.
"""
import base64
import hashlib
import hmac
import logging
import secrets
from typing import Dict, Optional, Protocol, Tuple

from starlette.requests import Request
from starlette.responses import Response

from expense_tracker.core.auth.errors import MissingCodeVerifierError

logger = logging.getLogger(__name__)

STATE_COOKIE_KEY = "oauth_state"
CODE_VERIFIER_COOKIE_KEY = "oauth_code_verifier"
COOKIE_EXPIRATION_SECONDS = 60 * 10

TOKEN_BYTES = 64


class EphemeralTokenStore(Protocol):
    """Where state and verifier live between the redirect and the callback."""

    def get(self, name: str) -> Optional[str]:
        ...

    def set(self, name: str, value: str, max_age: int) -> None:
        ...

    def delete(self, name: str) -> None:
        ...


class MemoryTokenStore:
    """Dict-backed token store. Ignores max_age."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def set(self, name: str, value: str, max_age: int) -> None:
        self.values[name] = value

    def delete(self, name: str) -> None:
        self.values.pop(name, None)


class CookieTokenStore:
    """
    Cookie-backed token store for one request/response cycle.

    Reads come from the inbound request. Writes are buffered and copied
    onto the outgoing response by apply(), since handlers usually build
    their RedirectResponse only after the URL is known. Buffered writes are
    visible to later reads on the same instance.
    """

    def __init__(self, request: Request, secure: bool = True):
        self.request = request
        self.secure = secure
        self._pending: Dict[str, Tuple[Optional[str], int]] = {}

    def get(self, name: str) -> Optional[str]:
        if name in self._pending:
            return self._pending[name][0]
        return self.request.cookies.get(name)

    def set(self, name: str, value: str, max_age: int) -> None:
        self._pending[name] = (value, max_age)

    def delete(self, name: str) -> None:
        self._pending[name] = (None, 0)

    def apply(self, response: Response) -> Response:
        """Write buffered cookies onto the response."""
        for name, (value, max_age) in self._pending.items():
            if value is None:
                response.delete_cookie(name, secure=self.secure, httponly=True, samesite="lax")
            else:
                response.set_cookie(
                    key=name,
                    value=value,
                    max_age=max_age,
                    secure=self.secure,
                    httponly=True,
                    samesite="lax",
                )
        return response


def generate_token() -> str:
    """High-entropy random token (64 bytes, hex encoded)."""
    return secrets.token_hex(TOKEN_BYTES)


def code_challenge(code_verifier: str) -> str:
    """PKCE S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def issue_state(tokens: EphemeralTokenStore, max_age: int = COOKIE_EXPIRATION_SECONDS) -> str:
    """Create a CSRF state token and store it, replacing any previous one."""
    state = generate_token()
    tokens.set(STATE_COOKIE_KEY, state, max_age)
    return state


def validate_state(tokens: EphemeralTokenStore, candidate: Optional[str]) -> bool:
    """
    Compare the callback state against the stored one.

    Does not consume the stored value; the next sign-in overwrites it.
    """
    stored = tokens.get(STATE_COOKIE_KEY)
    if not stored or not candidate:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def issue_code_verifier(tokens: EphemeralTokenStore, max_age: int = COOKIE_EXPIRATION_SECONDS) -> str:
    """Create a PKCE code verifier and store it, replacing any previous one."""
    verifier = generate_token()
    tokens.set(CODE_VERIFIER_COOKIE_KEY, verifier, max_age)
    return verifier


def get_code_verifier(tokens: EphemeralTokenStore) -> str:
    """
    Read the stored PKCE verifier.

    Raises:
        MissingCodeVerifierError: If no verifier is stored
    """
    verifier = tokens.get(CODE_VERIFIER_COOKIE_KEY)
    if not verifier:
        raise MissingCodeVerifierError()
    return verifier


def clear_flow_tokens(tokens: EphemeralTokenStore) -> None:
    """Drop state and verifier once a callback has been handled."""
    tokens.delete(STATE_COOKIE_KEY)
    tokens.delete(CODE_VERIFIER_COOKIE_KEY)
