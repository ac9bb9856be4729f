"""Inventory query executor - one tenant-scoped, filtered read against the listings table."""

import asyncio
import math
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from hustly.models.inventory import ALL, FetchErrorKind, FetchResult, InventoryFilters
from hustly.models.listing import Listing
from hustly.services.supabase_client import (
    LISTINGS_TABLE,
    resolve_authenticated_user,
    run_with_timeout,
)
from hustly.utils.config import InventoryConfig
from hustly.utils.errors import AuthenticationRequiredError, QueryTimeoutError
from hustly.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_user_id,
    sanitize_search_term,
)

logger = get_structured_logger(__name__)

# Postgres statement timeout
TIMEOUT_ERROR_CODES = {"57014"}
# PostgREST JWT errors and Postgres insufficient_privilege
AUTH_ERROR_CODES = {"PGRST301", "PGRST302", "42501"}

ARRAY_COLUMNS = ("photos", "keywords")


def safe_parse_price(value: Any) -> float:
    """Parse a price column; absent, invalid or negative values become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(price) or math.isinf(price) or price < 0:
        return 0.0
    return price


def coerce_string_list(value: Any) -> list[str]:
    """Null or non-array becomes []; arrays keep only their non-empty string elements."""
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str) and item]
    return []


def coerce_measurements(value: Any) -> dict:
    """JSON measurements column: numbers become strings, non-scalar values are dropped."""
    if not isinstance(value, dict):
        return {}
    measurements = {}
    for name, raw in value.items():
        if isinstance(raw, str):
            measurements[name] = raw
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            measurements[name] = str(raw)
    return measurements


def normalize_listing_row(row: dict, user_id: Optional[str] = None) -> Listing:
    """
    Normalize one heterogeneous backend row into a Listing.

    The remote store may return null for array and numeric columns; after this
    step photos/keywords are always lists and price is a non-negative float.
    """
    data = dict(row)

    for column in ARRAY_COLUMNS:
        data[column] = coerce_string_list(data.get(column))

    data["price"] = safe_parse_price(data.get("price"))

    title = data.get("title")
    data["title"] = title.strip() if isinstance(title, str) and title.strip() else "Untitled"

    data["measurements"] = coerce_measurements(data.get("measurements"))

    if not data.get("user_id") and user_id:
        data["user_id"] = user_id

    if not data.get("updated_at"):
        data["updated_at"] = data.get("created_at")

    data["id"] = str(data.get("id", ""))
    return Listing.model_validate(data)


def classify_exception(error: BaseException) -> FetchResult:
    """Map an exception raised during a query onto the fetch failure taxonomy."""
    if isinstance(error, AuthenticationRequiredError):
        return FetchResult.failure(FetchErrorKind.AUTHENTICATION, str(error) or "No authenticated user")

    if isinstance(error, (asyncio.TimeoutError, QueryTimeoutError, httpx.TimeoutException)):
        return FetchResult.failure(FetchErrorKind.TIMEOUT, "Database query timeout")

    if isinstance(error, APIError):
        code = str(error.code) if error.code is not None else ""
        message = error.message or str(error)
        if code in TIMEOUT_ERROR_CODES:
            return FetchResult.failure(FetchErrorKind.TIMEOUT, message)
        if code in AUTH_ERROR_CODES:
            return FetchResult.failure(FetchErrorKind.AUTHENTICATION, message)
        return FetchResult.failure(FetchErrorKind.BACKEND, message)

    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code in (401, 403):
        return FetchResult.failure(FetchErrorKind.AUTHENTICATION, "No authenticated user")

    return FetchResult.failure(FetchErrorKind.BACKEND, str(error) or type(error).__name__)


class InventoryQuery:
    """
    Executes a single filtered read for the authenticated tenant.

    Never retries; every expected failure comes back as a FetchResult so the
    degradation controller can branch on it.
    """

    def __init__(
        self,
        client: Client,
        access_token: Optional[str],
        timeout_seconds: float = InventoryConfig.QUERY_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds

    def build_query(self, user_id: str, filters: InventoryFilters):
        """Build the PostgREST request for one filter set."""
        query = (
            self.client.table(LISTINGS_TABLE)
            .select("*")
            .eq("user_id", user_id)
        )

        if filters.status_filter and filters.status_filter != ALL:
            query = query.eq("status", filters.status_filter)

        if filters.category_filter and filters.category_filter != ALL:
            query = query.eq("category", filters.category_filter)

        search = filters.normalized_search()
        if search:
            query = query.ilike("title", f"%{search}%")

        return query.order("created_at", desc=True).limit(filters.effective_limit())

    async def execute(self, filters: InventoryFilters) -> FetchResult:
        """Run the query and normalize its rows."""
        try:
            user_id = await resolve_authenticated_user(
                self.client, self.access_token, timeout_seconds=self.timeout_seconds
            )
            query = self.build_query(user_id, filters)

            with log_timing(
                "inventory_query",
                logger=logger,
                user_id=mask_user_id(user_id),
                status_filter=filters.status_filter,
                category_filter=filters.category_filter,
                search_term=sanitize_search_term(filters.normalized_search()),
                limit=filters.effective_limit(),
            ):
                response = await run_with_timeout(query.execute, self.timeout_seconds)

        except Exception as e:
            result = classify_exception(e)
            logger.warning(
                "Inventory query failed",
                failure_kind=result.kind.value,
                error=result.message,
                error_type=type(e).__name__,
            )
            return result

        rows = response.data if response and response.data else []
        listings = []
        skipped = 0
        for row in rows:
            if not isinstance(row, dict):
                skipped += 1
                continue
            try:
                listings.append(normalize_listing_row(row, user_id))
            except ValidationError as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed listing row",
                    listing_id=str(row.get("id")),
                    error=str(e),
                )

        logger.info(
            "Inventory query succeeded",
            user_id=mask_user_id(user_id),
            row_count=len(listings),
            skipped_rows=skipped,
        )
        return FetchResult.success(listings)
