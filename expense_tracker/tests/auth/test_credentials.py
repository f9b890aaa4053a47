"""
Email/password sign-up, sign-in and sign-out tests
"""
from unittest.mock import patch

import pytest

from expense_tracker.core.auth.passwords import hash_password

SIGN_UP = {"name": "Jane Doe", "email": "jane@example.com", "password": "hunter22"}


@pytest.fixture(autouse=True)
def fast_bcrypt():
    """Low bcrypt cost so the suite stays quick."""
    with patch(
        "expense_tracker.api.routes.auth.hash_password",
        side_effect=lambda password: hash_password(password, rounds=4),
    ):
        yield


class TestSignUp:

    def test_sign_up_creates_session(self, client):
        response = client.post("/sign-up", json=SIGN_UP)
        assert response.status_code == 200
        assert response.json() == {"success": True, "error": None}
        assert client.cookies.get("session_id")

        landing = client.get("/", follow_redirects=False).headers["location"]
        body = client.get(landing).json()
        assert body["email"] == "jane@example.com"
        assert body["name"] == "Jane Doe"

    def test_duplicate_email(self, client):
        client.post("/sign-up", json=SIGN_UP)
        client.post("/sign-out")

        response = client.post("/sign-up", json={**SIGN_UP, "email": "JANE@example.com"})
        assert response.status_code == 409
        assert response.json() == {"success": False, "error": "Email already in use"}

    def test_email_used_by_oauth_account(self, client, oauth_sign_in):
        oauth_sign_in("google")
        client.post("/sign-out")

        response = client.post("/sign-up", json=SIGN_UP)
        assert response.status_code == 409

    @pytest.mark.parametrize("body", [
        {**SIGN_UP, "name": "J"},
        {**SIGN_UP, "email": "not-an-email"},
        {**SIGN_UP, "password": "short"},
        {"email": "jane@example.com", "password": "hunter22"},
    ])
    def test_validation(self, client, body):
        response = client.post("/sign-up", json=body)
        assert response.status_code == 422
        assert client.cookies.get("session_id") is None


class TestSignIn:

    def test_sign_in(self, client):
        client.post("/sign-up", json=SIGN_UP)
        client.post("/sign-out")
        assert client.cookies.get("session_id") is None

        response = client.post("/sign-in", json={"email": "jane@example.com", "password": "hunter22"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.cookies.get("session_id")

    def test_wrong_password(self, client):
        client.post("/sign-up", json=SIGN_UP)
        client.post("/sign-out")

        response = client.post("/sign-in", json={"email": "jane@example.com", "password": "wrong-pass"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Sign in failed"}
        assert client.cookies.get("session_id") is None

    def test_unknown_email(self, client):
        response = client.post("/sign-in", json={"email": "nobody@example.com", "password": "hunter22"})
        assert response.status_code == 401
        assert response.json()["error"] == "Sign in failed"

    def test_oauth_only_user_cannot_use_password(self, client, oauth_sign_in):
        oauth_sign_in("google")
        client.post("/sign-out")

        response = client.post("/sign-in", json={"email": "jane@example.com", "password": "hunter22"})
        assert response.status_code == 401


class TestSignOut:

    def test_sign_out_revokes_session(self, client):
        client.post("/sign-up", json=SIGN_UP)
        landing = client.get("/", follow_redirects=False).headers["location"]

        response = client.post("/sign-out")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.cookies.get("session_id") is None

        response = client.get(landing, follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in"

    def test_sign_out_without_session(self, client):
        response = client.post("/sign-out", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in"
