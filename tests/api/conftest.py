"""API test fixtures - authenticated TestClient over a mocked conversion engine."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from auth.session import SessionManager
from auth.types import Session
from core.conversion import (
    BulkConversionCoordinator,
    ConversionEngine,
    ConversionHistoryRecorder,
    ConversionValidator,
    DealToLeadConverter,
    LeadToDealConverter,
    TransitionPlanner,
)
from utils.timezone import now_utc

ALL_CONVERSION_PERMISSIONS = ["lead:update_any", "deal:update_any"]


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def engine():
    """ConversionEngine whose parts are spec'd mocks; tests set return values."""
    return ConversionEngine(
        validator=Mock(spec=ConversionValidator),
        planner=Mock(spec=TransitionPlanner),
        history=Mock(spec=ConversionHistoryRecorder),
        forward=Mock(spec=LeadToDealConverter),
        backward=Mock(spec=DealToLeadConverter),
        bulk=Mock(spec=BulkConversionCoordinator),
    )


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def session_permissions():
    """Override in a test module to change the caller's capabilities."""
    return ALL_CONVERSION_PERMISSIONS


@pytest.fixture
def mock_session_manager(test_user_id, session_permissions):
    now = now_utc()
    mock = Mock(spec=SessionManager)
    mock.validate_session.return_value = Session(
        token="test-token",
        user_id=test_user_id,
        permissions=session_permissions,
        created_at=now,
        expires_at=now + timedelta(hours=24),
        last_activity_at=now,
    )
    return mock


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(engine, mock_session_manager):
    """The production app wiring over the mocked engine."""
    return create_app(engine, mock_session_manager)


@pytest.fixture
def client(app):
    """Authenticated test client."""
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set("session_token", "test-token")
    return c


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)
