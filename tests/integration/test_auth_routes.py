"""
Integration tests for authentication routes -- login, logout, session handling.
"""
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SECRET_KEY", "integration-test-secret-key")

from starlette.testclient import TestClient

pytestmark = pytest.mark.integration


class TestLoginPage:
    def test_login_page_loads(self, client):
        response = client.get("/login")
        assert response.status_code == 200
        assert 'name="email"' in response.text
        assert 'name="password"' in response.text

    def test_root_sends_anonymous_to_login(self, client):
        response = client.get("/", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"


class TestLoginFlow:
    def test_valid_login_sets_cookie(self, app, create_user):
        user = create_user("TRAINEE")
        c = TestClient(app, raise_server_exceptions=False)
        response = c.post("/login", data={"email": user["email"], "password": user["password"]},
                          follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"
        assert "tms_session" in response.cookies

    def test_email_is_case_insensitive(self, app, create_user):
        user = create_user("TRAINEE")
        c = TestClient(app, raise_server_exceptions=False)
        response = c.post("/login", data={"email": user["email"].upper(), "password": user["password"]},
                          follow_redirects=False)
        assert response.status_code == 302

    def test_invalid_password_rerenders_login(self, client, users):
        response = client.post(
            "/login",
            data={"email": users["trainee"]["email"], "password": "wrong_password"},
            follow_redirects=False,
        )
        assert response.status_code == 401
        assert "Invalid email or password" in response.text
        assert "tms_session" not in response.cookies

    def test_nonexistent_email(self, client):
        response = client.post(
            "/login",
            data={"email": "nobody@tms.test", "password": "password"},
            follow_redirects=False,
        )
        assert response.status_code == 401

    def test_missing_password_is_bad_request(self, client):
        response = client.post("/login", data={"email": "nobody@tms.test"}, follow_redirects=False)
        assert response.status_code == 400

    def test_logged_in_user_skips_login_page(self, trainee_client):
        response = trainee_client.get("/login", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"


class TestLogout:
    def test_logout_ends_session(self, login, create_user):
        user = create_user("TRAINEE")
        c = login(user["email"])
        assert c.get("/dashboard", follow_redirects=False).status_code == 200

        token = c.cookies.get("tms_session")
        response = c.get("/logout", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"

        # The old cookie no longer works even if replayed
        c.cookies.set("tms_session", token)
        assert c.get("/dashboard", follow_redirects=False).headers["location"] == "/login"

    def test_new_login_replaces_old_session(self, login, create_user):
        user = create_user("TRAINEE")
        first = login(user["email"])
        second = login(user["email"])
        assert second.get("/dashboard", follow_redirects=False).status_code == 200
        assert first.get("/dashboard", follow_redirects=False).status_code == 302

    def test_tampered_cookie_is_anonymous(self, app):
        c = TestClient(app, raise_server_exceptions=False)
        c.cookies.set("tms_session", "forged-value")
        assert c.get("/dashboard", follow_redirects=False).headers["location"] == "/login"
