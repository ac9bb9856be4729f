"""Inventory degradation controller - retries, cache fallback, and offline mode around the query executor."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from hustly.models.inventory import FetchErrorKind, FetchResult, InventoryFilters, InventoryStats, Notice
from hustly.models.listing import Listing
from hustly.services.inventory_cache import InventoryCache, get_inventory_cache
from hustly.services.inventory_stats import compute_inventory_stats
from hustly.utils.config import InventoryConfig
from hustly.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

AUTH_ERROR_MESSAGE = "Please log in to view your inventory"
CONNECTION_ERROR_MESSAGE = "Database connection issues. Please try again."
CACHED_DATA_MESSAGE = "Showing cached data due to connection issues"


class InventoryState(str, Enum):
    """Controller states."""
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    FAILED_WITH_CACHE = "failed_with_cache"
    FAILED_EMPTY = "failed_empty"
    OFFLINE = "offline"


class InventoryExecutor(Protocol):
    async def execute(self, filters: InventoryFilters) -> FetchResult:
        ...


class InventoryController:
    """
    Owns the displayed inventory for one filter set and decides how to degrade.

    At most one backend fetch is in flight per controller. Repeat requests
    are absorbed by the in-flight guard, the fresh cache, and the debounce
    window. Failed fetches are retried with linear backoff, then fall back to
    stale cached data or an explicit error. Authentication failures are never
    masked with cached data. After ``dispose()`` every late result is ignored.
    """

    def __init__(
        self,
        query: InventoryExecutor,
        filters: Optional[InventoryFilters] = None,
        cache: Optional[InventoryCache] = None,
        cache_scope: str = "",
        debounce_seconds: float = InventoryConfig.DEBOUNCE_SECONDS,
        refetch_guard_seconds: float = InventoryConfig.REFETCH_GUARD_SECONDS,
        max_timeout_retries: int = InventoryConfig.MAX_TIMEOUT_RETRIES,
        retry_backoff_seconds: float = InventoryConfig.RETRY_BACKOFF_SECONDS,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.query = query
        self.filters = filters or InventoryFilters()
        self.cache = cache if cache is not None else get_inventory_cache()
        self.cache_scope = cache_scope
        self.debounce_seconds = debounce_seconds
        self.refetch_guard_seconds = refetch_guard_seconds
        self.max_timeout_retries = InventoryConfig.clamp_timeout_retries(max_timeout_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

        self._state = InventoryState.IDLE
        self._listings: list[Listing] = []
        self._stats = compute_inventory_stats(self._listings)
        self._loading = False
        self._error: Optional[str] = None
        self._using_fallback = False
        self._notice: Optional[Notice] = None
        self._retry_count = 0

        self._alive = True
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_key: Optional[str] = None
        self._last_fetch_started: Optional[float] = None
        self._last_fetch_completed: Optional[float] = None
        self._last_completed_key: Optional[str] = None
        self._state_before_fetch = InventoryState.IDLE

    # Exposed state

    @property
    def listings(self) -> list[Listing]:
        return self._listings

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def using_fallback(self) -> bool:
        return self._using_fallback

    @property
    def stats(self) -> InventoryStats:
        return self._stats

    @property
    def state(self) -> InventoryState:
        return self._state

    @property
    def notice(self) -> Optional[Notice]:
        return self._notice

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def cache_key(self) -> str:
        fingerprint = self.filters.fingerprint()
        return f"{self.cache_scope}:{fingerprint}" if self.cache_scope else fingerprint

    def snapshot(self) -> dict:
        """Serializable view of the exposed state."""
        return {
            "listings": [listing.model_dump(mode="json") for listing in self._listings],
            "loading": self._loading,
            "error": self._error,
            "usingFallback": self._using_fallback,
            "stats": self._stats.model_dump(by_alias=True),
            "state": self._state.value,
            "notice": self._notice.model_dump() if self._notice else None,
        }

    # Operations

    async def fetch_inventory(self, filters: Optional[InventoryFilters] = None) -> None:
        """Automatic fetch: guarded by in-flight, fresh cache, and debounce checks."""
        if not self._alive:
            logger.debug("Skipping fetch - controller disposed")
            return

        if filters is not None:
            self.filters = filters
        key = self.cache_key()

        if await self._join_or_supersede(key):
            return

        if self._state == InventoryState.OFFLINE:
            self._serve_offline(key)
            return

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Serving inventory from fresh cache", cache_key=key, listing_count=len(cached))
            self._set_listings(cached)
            self._error = None
            self._using_fallback = False
            self._loading = False
            self._state = InventoryState.SUCCEEDED
            return

        if self._is_debounced(key):
            logger.debug("Skipping fetch - too frequent (debounced)", cache_key=key)
            return

        await self._start_fetch(key)

    async def refetch(self) -> None:
        """Manual retry: bypasses cache and debounce, leaves offline mode."""
        if not self._alive:
            return

        key = self.cache_key()
        if await self._join_or_supersede(key):
            return

        now = self._clock()
        if self._last_fetch_started is not None and now - self._last_fetch_started < self.refetch_guard_seconds:
            logger.debug("Skipping refetch - previous fetch just started")
            return

        logger.info("Manual refetch triggered", previous_state=self._state.value)
        self._using_fallback = False
        self._error = None
        self._notice = None
        await self._start_fetch(key)

    def force_offline_mode(self) -> bool:
        """Serve cached data without touching the backend; no-op with a notice when nothing is cached."""
        if not self._alive:
            return False

        key = self.cache_key()
        entry = self.cache.get_stale(key)
        if entry is None:
            logger.warning("Offline mode requested but no cached data available", cache_key=key)
            self._notice = Notice(
                severity="error",
                title="No Cached Data Available",
                message="Unable to load any inventory data offline.",
            )
            return False

        if self.is_fetching:
            self._inflight.cancel()
        self._inflight = None
        self._inflight_key = None

        self._set_listings(entry.listings)
        self._using_fallback = True
        self._error = None
        self._loading = False
        self._state = InventoryState.OFFLINE
        self._notice = Notice(
            severity="info",
            title="Using Cached Data",
            message=f"Showing {len(entry.listings)} cached listings to avoid timeouts.",
        )
        logger.info("Offline mode forced", listing_count=len(entry.listings))
        return True

    def dismiss_notice(self) -> None:
        self._notice = None

    def invalidate_cache(self) -> None:
        """Drop the cached result for the current filters."""
        self.cache.invalidate(self.cache_key())

    def dispose(self) -> None:
        """Stop reacting to results; any in-flight fetch becomes a no-op."""
        self._alive = False
        if self.is_fetching:
            self._inflight.cancel()
        logger.debug("Inventory controller disposed")

    # Internals

    async def _join_or_supersede(self, key: str) -> bool:
        """Join a running fetch for the same key; cancel one for stale filters."""
        if not self.is_fetching:
            return False

        if self._inflight_key == key:
            logger.debug("Joining in-flight fetch", cache_key=key)
            await self._join(self._inflight)
            return True

        logger.info("Superseding in-flight fetch for previous filters")
        self._inflight.cancel()
        self._inflight = None
        self._inflight_key = None
        # The cancelled fetch never reaches its finally-branch reset
        self._loading = False
        self._state = self._state_before_fetch
        return False

    async def _join(self, task: asyncio.Task) -> None:
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # Superseded or disposed: the result is aborted
            logger.debug("Inventory fetch aborted", failure_kind=FetchErrorKind.ABORTED.value)

    async def _start_fetch(self, key: str) -> None:
        self._last_fetch_started = self._clock()
        self._state_before_fetch = self._state
        task = asyncio.create_task(self._run_fetch(key, self.filters))
        self._inflight = task
        self._inflight_key = key
        await self._join(task)

    def _owns_fetch(self) -> bool:
        return self._alive and self._inflight is asyncio.current_task()

    async def _run_fetch(self, key: str, filters: InventoryFilters) -> None:
        self._state = InventoryState.FETCHING
        self._loading = True
        self._retry_count = 0

        try:
            while True:
                result = await self.query.execute(filters)

                if not self._owns_fetch():
                    logger.debug("Dropping late inventory result", failure_kind=FetchErrorKind.ABORTED.value)
                    return

                if result.ok:
                    self._apply_success(key, result.data)
                    return

                if result.kind == FetchErrorKind.ABORTED:
                    return

                if result.kind == FetchErrorKind.AUTHENTICATION:
                    self._apply_auth_failure(result)
                    return

                if self._should_retry(result.kind):
                    self._retry_count += 1
                    delay = self.retry_backoff_seconds * self._retry_count
                    logger.info(
                        "Inventory fetch failed, will retry",
                        failure_kind=result.kind.value,
                        attempt=self._retry_count,
                        delay_seconds=delay,
                    )
                    await self._sleep(delay)
                    if not self._owns_fetch():
                        return
                    continue

                self._apply_failure(key, result)
                return
        finally:
            if self._owns_fetch():
                self._loading = False
                self._last_fetch_completed = self._clock()
                self._last_completed_key = key
                self._inflight = None
                self._inflight_key = None

    def _should_retry(self, kind: FetchErrorKind) -> bool:
        if kind == FetchErrorKind.TIMEOUT:
            return self._retry_count < self.max_timeout_retries
        if kind == FetchErrorKind.BACKEND:
            return self._retry_count < 1
        return False

    def _is_debounced(self, key: str) -> bool:
        if self._last_fetch_completed is None or self._last_completed_key != key:
            return False
        return self._clock() - self._last_fetch_completed < self.debounce_seconds

    def _set_listings(self, listings: list[Listing]) -> None:
        self._listings = list(listings)
        self._stats = compute_inventory_stats(self._listings)

    def _apply_success(self, key: str, listings: list[Listing]) -> None:
        self.cache.set(key, listings)
        self._set_listings(listings)
        self._error = None
        self._using_fallback = False
        self._retry_count = 0
        self._notice = None
        self._state = InventoryState.SUCCEEDED
        logger.info("Inventory data loaded and cached", listing_count=len(listings))

    def _apply_auth_failure(self, result: FetchResult) -> None:
        self._set_listings([])
        self._using_fallback = False
        self._error = AUTH_ERROR_MESSAGE
        self._state = InventoryState.FAILED_EMPTY
        self._notice = Notice(
            severity="error",
            title="Authentication Required",
            message=AUTH_ERROR_MESSAGE,
        )
        logger.warning("Inventory fetch rejected: no authenticated user", error=result.message)

    def _apply_failure(self, key: str, result: FetchResult) -> None:
        entry = self.cache.get_stale(key)
        if entry is not None:
            self._set_listings(entry.listings)
            self._using_fallback = True
            self._error = f"{CACHED_DATA_MESSAGE}: {result.message}"
            self._state = InventoryState.FAILED_WITH_CACHE
            self._notice = Notice(
                severity="warning",
                title="Using Cached Data",
                message=f"Showing {len(entry.listings)} cached listings due to connection issues.",
                retryable=True,
            )
            logger.warning(
                "Serving cached inventory after failed fetch",
                failure_kind=result.kind.value,
                listing_count=len(entry.listings),
            )
            return

        self._set_listings([])
        self._using_fallback = False
        self._error = CONNECTION_ERROR_MESSAGE
        self._state = InventoryState.FAILED_EMPTY
        self._notice = Notice(
            severity="error",
            title="Unable to Load Inventory",
            message=CONNECTION_ERROR_MESSAGE,
            retryable=True,
        )
        logger.error(
            "Inventory fetch failed with no cached data",
            failure_kind=result.kind.value,
            error=result.message,
        )

    def _serve_offline(self, key: str) -> None:
        entry = self.cache.get_stale(key)
        if entry is None:
            self._notice = Notice(
                severity="warning",
                title="Offline Mode",
                message="No cached data for these filters while offline.",
                retryable=True,
            )
            return
        self._set_listings(entry.listings)
        self._using_fallback = True
        self._error = None
        self._loading = False
        logger.debug("Serving inventory from cache while offline", cache_key=key, listing_count=len(entry.listings))
