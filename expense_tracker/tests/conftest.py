"""
Test fixtures for the Expense Tracker auth core.

The app runs against an in-memory SQLite database and the memory session
backend. Provider token and userinfo calls go to FakeOAuthProvider through
httpx.MockTransport; it checks PKCE the way a real authorization server does.
"""
import itertools
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from expense_tracker.api.dependencies import get_oauth_http_client
from expense_tracker.api.main import create_app
from expense_tracker.core.auth.tokens import code_challenge
from expense_tracker.core.config import Settings
from expense_tracker.core.database.models import Base


GOOGLE_PROFILE = {
    "sub": "google-user-123",
    "email": "jane@example.com",
    "name": "Jane Doe",
    "given_name": "Jane",
}

GITHUB_PROFILE = {
    "id": 4242,
    "email": "octo@example.com",
    "name": None,
    "login": "octocat",
}


class FakeOAuthProvider:
    """
    Authorization server stand-in.

    authorize() plays the consent screen: it records the code challenge sent
    in the authorization URL and returns (code, state) for the callback. The
    token endpoint only issues a token when sha256(code_verifier) matches the
    recorded challenge, and each code works once.
    """

    def __init__(self, profile: Optional[Dict[str, Any]] = None):
        self.profile = profile if profile is not None else dict(GOOGLE_PROFILE)
        self.token_status = 200
        self.token_body: Any = {"access_token": "provider-access-token", "token_type": "Bearer"}
        self.userinfo_status = 200
        self.requests: List[httpx.Request] = []
        self._challenges: Dict[str, str] = {}
        self._codes = itertools.count(1)

    def authorize(self, auth_url: str) -> Tuple[str, str]:
        params = {k: v[0] for k, v in parse_qs(urlparse(auth_url).query).items()}
        assert params["code_challenge_method"] == "S256"
        code = f"auth-code-{next(self._codes)}"
        self._challenges[code] = params["code_challenge"]
        return code, params["state"]

    @property
    def token_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def userinfo_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            challenge = self._challenges.pop(form.get("code", ""), None)
            verifier = form.get("code_verifier")
            if challenge is None or not verifier or code_challenge(verifier) != challenge:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(self.token_status, json=self.token_body)

        if request.headers.get("Authorization") != "Bearer provider-access-token":
            return httpx.Response(401, json={"error": "invalid_token"})
        return httpx.Response(self.userinfo_status, json=self.profile)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    """Settings for an https test server with both providers configured."""
    return Settings(
        database_url="sqlite:///:memory:",
        session_backend="memory",
        oauth_redirect_url_base="https://testserver/api/oauth/",
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        github_client_id="github-client-id",
        github_client_secret="github-client-secret",
        allowed_origins="https://testserver",
        cookie_secure=True,
    )


@pytest.fixture
def fake_provider():
    return FakeOAuthProvider()


@pytest.fixture
def app(settings, fake_provider):
    """Application wired to the fake provider."""
    application = create_app(settings)

    async def override_oauth_client():
        async with fake_provider.client() as client:
            yield client

    application.dependency_overrides[get_oauth_http_client] = override_oauth_client
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Test client on https so Secure cookies round-trip."""
    return TestClient(app, base_url="https://testserver")


@pytest.fixture
def session_store(app):
    return app.state.session_store


@pytest.fixture(scope="function")
def test_db():
    """Standalone in-memory database session for repository tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session_factory():
    """Session factory over a fresh in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def oauth_sign_in(client, fake_provider):
    """Drive a complete OAuth round trip and return the callback response."""
    def _sign_in(name: str = "google") -> httpx.Response:
        start = client.get(f"/oauth/{name}", follow_redirects=False)
        assert start.status_code == 303
        code, state = fake_provider.authorize(start.headers["location"])
        return client.get(
            f"/api/oauth/{name}",
            params={"code": code, "state": state},
            follow_redirects=False,
        )
    return _sign_in
