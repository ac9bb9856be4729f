"""End-to-end tests: controller, query executor and cache against a mocked Supabase client."""

import pytest
from unittest.mock import AsyncMock
from postgrest.exceptions import APIError

from hustly.models.inventory import InventoryFilters
from hustly.services.inventory_cache import InventoryCache
from hustly.services.inventory_controller import (
    AUTH_ERROR_MESSAGE,
    CACHED_DATA_MESSAGE,
    InventoryController,
    InventoryState,
)
from hustly.services.inventory_query import InventoryQuery
from hustly.services.listing_operations import update_listing


@pytest.fixture
def controller_for(fake_clock):
    def _make(client, token, cache=None):
        return InventoryController(
            InventoryQuery(client, token, timeout_seconds=1),
            filters=InventoryFilters(status_filter="all"),
            cache=cache,
            cache_scope="session",
            clock=fake_clock,
            sleep=AsyncMock(),
        )
    return _make


@pytest.mark.integration
@pytest.mark.asyncio
async def test_outage_after_success_serves_cached_listings(mock_supabase_client, access_token, fake_clock, controller_for):
    cache = InventoryCache(ttl_seconds=30, stale_seconds=600, max_entries=10, clock=fake_clock)
    controller = controller_for(mock_supabase_client, access_token, cache)

    await controller.fetch_inventory()
    loaded = list(controller.listings)
    assert controller.state == InventoryState.SUCCEEDED
    assert len(loaded) == 3

    mock_supabase_client.query.execute.side_effect = APIError(
        {"message": "canceling statement due to statement timeout", "code": "57014"}
    )
    fake_clock.advance(45)
    await controller.refetch()

    # One original call plus the attempt and its retry
    assert mock_supabase_client.query.execute.call_count == 3
    assert controller.state == InventoryState.FAILED_WITH_CACHE
    assert controller.using_fallback is True
    assert controller.listings == loaded
    assert controller.error.startswith(CACHED_DATA_MESSAGE)
    assert controller.stats.total_items == 3


@pytest.mark.integration
@pytest.mark.asyncio
async def test_expired_session_is_not_masked_by_cache(mock_supabase_client, access_token, fake_clock, controller_for):
    cache = InventoryCache(ttl_seconds=30, stale_seconds=600, max_entries=10, clock=fake_clock)
    controller = controller_for(mock_supabase_client, access_token, cache)
    await controller.fetch_inventory()

    mock_supabase_client.auth.get_user.return_value = None
    fake_clock.advance(45)
    await controller.refetch()

    assert controller.state == InventoryState.FAILED_EMPTY
    assert controller.listings == []
    assert controller.error == AUTH_ERROR_MESSAGE
    assert controller.using_fallback is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_mutation_invalidates_cached_inventory(mock_supabase_client, access_token, fake_clock, controller_for):
    first = controller_for(mock_supabase_client, access_token)
    await first.fetch_inventory()
    first.dispose()

    await update_listing(mock_supabase_client, access_token, "listing-1", {"price": 60})

    fake_clock.advance(10)
    second = controller_for(mock_supabase_client, access_token)
    await second.fetch_inventory()

    assert mock_supabase_client.query.execute.call_count == 3
    assert second.state == InventoryState.SUCCEEDED
