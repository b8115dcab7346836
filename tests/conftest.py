"""Shared test fixtures for the conversion engine test suite."""

import pytest
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary test user - use for ownership/permission tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test user's ID."""
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Context manager that sets primary test user context."""
    with user_context(test_user_id):
        yield test_user_id


@pytest.fixture
def as_test_user_b(test_user_b_id):
    """Context manager that sets secondary test user context."""
    with user_context(test_user_b_id):
        yield test_user_b_id
