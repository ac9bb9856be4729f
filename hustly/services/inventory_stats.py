"""Inventory stats rollups."""

from typing import Iterable

from hustly.models.inventory import InventoryStats
from hustly.models.listing import Listing, ListingStatus


def compute_inventory_stats(listings: Iterable[Listing]) -> InventoryStats:
    """Totals over the currently displayed listings; empty input gives all zeros."""
    total_items = 0
    total_value = 0.0
    active_items = 0
    draft_items = 0

    for listing in listings:
        total_items += 1
        total_value += listing.price or 0
        if listing.status == ListingStatus.ACTIVE:
            active_items += 1
        elif listing.status == ListingStatus.DRAFT:
            draft_items += 1

    return InventoryStats(
        total_items=total_items,
        total_value=total_value,
        active_items=active_items,
        draft_items=draft_items,
    )
