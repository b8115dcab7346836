"""Tests for AuthMiddleware - session validation and user context."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from auth.types import Session
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc
from utils.user_context import get_current_permissions, get_current_user_id


def make_session(token, user_id, permissions=()):
    now = now_utc()
    return Session(
        token=token,
        user_id=user_id,
        permissions=list(permissions),
        created_at=now,
        expires_at=now + timedelta(hours=1),
        last_activity_at=now,
    )


@pytest.fixture
def mock_session_manager():
    """Mock SessionManager."""
    return Mock(spec=SessionManager)


@pytest.fixture
def app_with_middleware(mock_session_manager):
    """FastAPI app with auth middleware."""
    app = FastAPI()

    app.add_middleware(
        AuthMiddleware,
        session_manager=mock_session_manager,
    )

    @app.get("/api/conversions/protected")
    async def protected_route(request: Request):
        return {
            "user_id": str(request.state.user_id),
            "context_user_id": str(get_current_user_id()),
            "permissions": sorted(get_current_permissions()),
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/docs")
    async def docs():
        return {"docs": True}

    @app.get("/openapi.json")
    async def openapi():
        return {"openapi": "3.0"}

    return app


@pytest.fixture
def client(app_with_middleware):
    return TestClient(app_with_middleware)


class TestPublicPaths:
    """Test that public paths skip authentication."""

    def test_health_endpoint_no_cookie_succeeds(self, client):
        """Health endpoint works without auth."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_docs_endpoint_no_cookie_succeeds(self, client):
        assert client.get("/docs").status_code == 200

    def test_openapi_endpoint_no_cookie_succeeds(self, client):
        assert client.get("/openapi.json").status_code == 200

    def test_public_path_with_invalid_cookie_still_succeeds(self, client, mock_session_manager):
        """Public paths ignore invalid session cookies."""
        mock_session_manager.validate_session.side_effect = SessionExpiredError("expired")

        response = client.get("/health", cookies={"session_token": "invalid-token"})

        assert response.status_code == 200
        mock_session_manager.validate_session.assert_not_called()


class TestProtectedPaths:
    """Test protected path authentication."""

    def test_no_cookie_returns_401(self, client):
        """Protected path without cookie returns 401."""
        response = client.get("/api/conversions/protected")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_invalid_session_returns_401(self, client, mock_session_manager):
        mock_session_manager.validate_session.side_effect = SessionExpiredError("expired")

        response = client.get("/api/conversions/protected", cookies={"session_token": "invalid-token"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXPIRED"

    def test_valid_session_sets_user_in_request_state(self, client, mock_session_manager, test_user_id):
        mock_session_manager.validate_session.return_value = make_session("valid-token", test_user_id)

        response = client.get("/api/conversions/protected", cookies={"session_token": "valid-token"})

        assert response.status_code == 200
        assert response.json()["user_id"] == str(test_user_id)
        assert response.json()["context_user_id"] == str(test_user_id)

    def test_session_manager_called_with_token(self, client, mock_session_manager, test_user_id):
        mock_session_manager.validate_session.return_value = make_session("the-token-value", test_user_id)

        client.get("/api/conversions/protected", cookies={"session_token": "the-token-value"})

        mock_session_manager.validate_session.assert_called_once_with("the-token-value")


class TestUserContext:
    """Test user context lifecycle."""

    def test_permissions_reach_user_context(self, client, mock_session_manager, test_user_id):
        """Session permissions are visible to conversion checks."""
        mock_session_manager.validate_session.return_value = make_session(
            "token", test_user_id, ["lead:update_any", "deal:update_any"]
        )

        response = client.get("/api/conversions/protected", cookies={"session_token": "token"})

        assert response.json()["permissions"] == ["deal:update_any", "lead:update_any"]

    def test_context_cleared_after_request(self, client, mock_session_manager, test_user_id):
        mock_session_manager.validate_session.return_value = make_session(
            "token", test_user_id, ["lead:update_any"]
        )

        client.get("/api/conversions/protected", cookies={"session_token": "token"})

        assert get_current_permissions() == frozenset()
        with pytest.raises(RuntimeError):
            get_current_user_id()

    def test_different_users_get_correct_context(
        self, client, mock_session_manager, test_user_id, test_user_b_id
    ):
        """Different sessions return correct user IDs."""
        mock_session_manager.validate_session.return_value = make_session("token-a", test_user_id)
        response_a = client.get("/api/conversions/protected", cookies={"session_token": "token-a"})

        mock_session_manager.validate_session.return_value = make_session("token-b", test_user_b_id)
        response_b = client.get("/api/conversions/protected", cookies={"session_token": "token-b"})

        assert response_a.json()["user_id"] == str(test_user_id)
        assert response_b.json()["user_id"] == str(test_user_b_id)


class TestCookieName:
    """Test session cookie configuration."""

    def test_reads_from_session_token_cookie(self, client, mock_session_manager, test_user_id):
        """Reads token from 'session_token' cookie specifically."""
        mock_session_manager.validate_session.return_value = make_session("correct-token", test_user_id)

        response_wrong = client.get("/api/conversions/protected", cookies={"session": "wrong-cookie-name"})
        assert response_wrong.status_code == 401

        response_right = client.get("/api/conversions/protected", cookies={"session_token": "correct-token"})
        assert response_right.status_code == 200

    def test_custom_cookie_name(self, mock_session_manager, test_user_id):
        app = FastAPI()
        app.add_middleware(AuthMiddleware, session_manager=mock_session_manager, cookie_name="crm_sid")

        @app.get("/api/ping")
        async def ping():
            return {"ok": True}

        mock_session_manager.validate_session.return_value = make_session("sid", test_user_id)

        response = TestClient(app).get("/api/ping", cookies={"crm_sid": "sid"})

        assert response.status_code == 200
