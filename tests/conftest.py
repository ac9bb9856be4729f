"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from hustly.services.inventory_cache import InventoryCache, reset_inventory_cache  # noqa: E402
from tests.utils.helpers import FakeClock, make_supabase_client  # noqa: E402
from tests.utils.factories import create_listing_row  # noqa: E402

TEST_USER_ID = "7f9c2ba4-e88f-4e2f-9a43-2f1a5c6b8d01"
TEST_ACCESS_TOKEN = "test-access-token"


@pytest.fixture
def user_id():
    return TEST_USER_ID


@pytest.fixture
def access_token():
    return TEST_ACCESS_TOKEN


@pytest.fixture
def listing_rows():
    """Three raw backend rows for the test tenant."""
    return [
        create_listing_row(TEST_USER_ID, status="active", price=45),
        create_listing_row(TEST_USER_ID, status="draft", price="12.50"),
        create_listing_row(TEST_USER_ID, status="sold", price=None, photos=None, keywords=None),
    ]


@pytest.fixture
def mock_supabase_client(listing_rows):
    """Mock Supabase client whose listings query returns ``listing_rows``."""
    return make_supabase_client(data=listing_rows, user_id=TEST_USER_ID)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def cache(fake_clock):
    """Private cache on the fake clock."""
    return InventoryCache(ttl_seconds=30, stale_seconds=600, max_entries=10, clock=fake_clock)


@pytest.fixture(autouse=True)
def reset_process_cache():
    """The process-wide cache never leaks between tests."""
    reset_inventory_cache()
    yield
    reset_inventory_cache()


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def mock_user_response():
    response = MagicMock()
    response.user = MagicMock(id=TEST_USER_ID)
    return response
