"""Listing mutations (update, status change, delete) with inventory cache invalidation."""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Optional

from supabase import Client

from hustly.models.listing import ListingStatus
from hustly.services.inventory_cache import get_inventory_cache
from hustly.services.supabase_client import (
    LISTINGS_TABLE,
    resolve_authenticated_user,
    run_with_timeout,
)
from hustly.utils.config import InventoryConfig
from hustly.utils.errors import QueryTimeoutError, SupabaseError
from hustly.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

IMMUTABLE_FIELDS = {"id", "user_id", "created_at"}


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def compute_days_to_sell(listed_date: Any, sold_date: Any) -> Optional[int]:
    """Whole days between listing and sale; None if either date is unusable."""
    listed = _parse_date(listed_date)
    sold = _parse_date(sold_date)
    if listed is None or sold is None:
        return None
    return max(0, (sold - listed).days)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _execute(query, operation: str) -> list[dict]:
    try:
        response = await run_with_timeout(query.execute, InventoryConfig.MUTATION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        raise QueryTimeoutError(f"{operation} timed out") from e
    except Exception as e:
        raise SupabaseError(f"Failed to {operation}: {e}") from e
    return response.data if response and response.data else []


def _validate_updates(updates: dict) -> None:
    forbidden = IMMUTABLE_FIELDS.intersection(updates)
    if forbidden:
        raise ValueError(f"Immutable fields cannot be updated: {', '.join(sorted(forbidden))}")

    if "title" in updates and not str(updates["title"] or "").strip():
        raise ValueError("Title is required")

    if "price" in updates:
        try:
            price = float(updates["price"])
        except (TypeError, ValueError):
            raise ValueError("Price must be a number") from None
        if price < 0:
            raise ValueError("Price must be non-negative")


async def _apply_update(client: Client, user_id: str, listing_id: str, updates: dict) -> dict:
    payload = {**updates, "updated_at": _now_iso()}
    query = (
        client.table(LISTINGS_TABLE)
        .update(payload)
        .eq("id", listing_id)
        .eq("user_id", user_id)
    )
    rows = await _execute(query, "update listing")
    if not rows:
        raise SupabaseError(f"Failed to update listing: {listing_id}")

    get_inventory_cache().invalidate()
    logger.info(
        "Listing updated",
        listing_id=listing_id,
        user_id=mask_user_id(user_id),
        fields=sorted(updates),
    )
    return rows[0]


async def update_listing(
    client: Client,
    access_token: Optional[str],
    listing_id: str,
    updates: dict,
) -> dict:
    """Update fields of a listing owned by the authenticated tenant."""
    if not listing_id:
        raise ValueError("listing_id is required")
    _validate_updates(updates)

    user_id = await resolve_authenticated_user(client, access_token)
    return await _apply_update(client, user_id, listing_id, updates)


async def update_listing_status(
    client: Client,
    access_token: Optional[str],
    listing_id: str,
    status: str,
    additional_data: Optional[dict] = None,
) -> dict:
    """
    Transition a listing's status.

    Activating stamps listed_date. Marking sold stamps sold_date and derives
    days_to_sell from the stored listed_date (or created_at) when not given.
    """
    if not listing_id:
        raise ValueError("listing_id is required")
    try:
        new_status = ListingStatus(str(status).strip().lower())
    except ValueError:
        raise ValueError(f"Invalid listing status: {status}") from None

    updates: dict[str, Any] = {**(additional_data or {}), "status": new_status.value}
    _validate_updates(updates)

    user_id = await resolve_authenticated_user(client, access_token)

    if new_status == ListingStatus.ACTIVE:
        updates.setdefault("listed_date", date.today().isoformat())

    if new_status == ListingStatus.SOLD:
        updates.setdefault("sold_date", date.today().isoformat())
        if updates.get("days_to_sell") is None:
            listed = updates.get("listed_date")
            if not listed:
                query = (
                    client.table(LISTINGS_TABLE)
                    .select("listed_date, created_at")
                    .eq("id", listing_id)
                    .eq("user_id", user_id)
                    .limit(1)
                )
                rows = await _execute(query, "load listing dates")
                if rows:
                    listed = rows[0].get("listed_date") or rows[0].get("created_at")
            days = compute_days_to_sell(listed, updates["sold_date"])
            if days is not None:
                updates["days_to_sell"] = days

    return await _apply_update(client, user_id, listing_id, updates)


async def delete_listing(client: Client, access_token: Optional[str], listing_id: str) -> None:
    """Hard delete a listing owned by the authenticated tenant."""
    if not listing_id:
        raise ValueError("listing_id is required")

    user_id = await resolve_authenticated_user(client, access_token)
    query = (
        client.table(LISTINGS_TABLE)
        .delete()
        .eq("id", listing_id)
        .eq("user_id", user_id)
    )
    rows = await _execute(query, "delete listing")
    if not rows:
        raise SupabaseError(f"Failed to delete listing: {listing_id}")

    get_inventory_cache().invalidate()
    logger.info("Listing deleted", listing_id=listing_id, user_id=mask_user_id(user_id))
