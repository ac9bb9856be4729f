"""Supabase client wrapper with async context manager support."""

import asyncio
import os
import time
from typing import Any, Optional

import httpx
from supabase import create_client, Client
from supabase.client import ClientOptions

from hustly.utils.config import InventoryConfig
from hustly.utils.errors import (
    AuthenticationRequiredError,
    ConfigurationError,
    QueryTimeoutError,
    SupabaseError,
)
from hustly.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

LISTINGS_TABLE = "listings"

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        # Serverless: no session persistence, tokens arrive per request
        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", supabase_url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the Supabase client singleton."""
    global _client
    if _client:
        # supabase-py has no explicit close
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False


async def run_with_timeout(func, timeout_seconds: float, *args: Any) -> Any:
    """
    Run a blocking supabase-py call in a worker thread, raced against a timer.

    On timeout the worker thread is abandoned; its eventual result is ignored.
    """
    return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout_seconds)


def _raise_for_auth_exception(error: Exception) -> None:
    """Translate a GoTrue/httpx failure during user lookup into a typed error."""
    if isinstance(error, httpx.TimeoutException):
        raise QueryTimeoutError(f"Authentication lookup timed out: {error}") from error

    status = getattr(error, "status", None)
    if isinstance(status, int) and 400 <= status < 500:
        raise AuthenticationRequiredError("No authenticated user") from error

    raise SupabaseError(f"Failed to resolve authenticated user: {error}") from error


async def resolve_authenticated_user(
    client: Client,
    access_token: Optional[str],
    timeout_seconds: Optional[float] = None,
) -> str:
    """
    Resolve an access token to the tenant (user) ID.

    A missing token, an invalid token, or a token without a user is a hard
    failure, never an empty tenant.
    """
    if not access_token:
        raise AuthenticationRequiredError("No authenticated user")

    timeout = timeout_seconds if timeout_seconds is not None else InventoryConfig.QUERY_TIMEOUT_SECONDS
    try:
        response = await run_with_timeout(client.auth.get_user, timeout, access_token)
    except asyncio.TimeoutError as e:
        raise QueryTimeoutError("Authentication lookup timed out") from e
    except Exception as e:
        _raise_for_auth_exception(e)

    user = getattr(response, "user", None) if response else None
    user_id = getattr(user, "id", None) if user else None
    if not user_id:
        raise AuthenticationRequiredError("No authenticated user")

    logger.debug("Resolved authenticated user", user_id=mask_user_id(str(user_id)))
    return str(user_id)


async def check_database_health(client: Client, timeout_seconds: Optional[float] = None) -> dict:
    """
    Probe the listings table with the cheapest possible query.

    Returns {"healthy", "response_time_ms", "error"}; never raises.
    """
    timeout = timeout_seconds if timeout_seconds is not None else InventoryConfig.DB_HEALTH_TIMEOUT_SECONDS
    start = time.perf_counter()

    def _probe():
        return client.table(LISTINGS_TABLE).select("id").limit(1).execute()

    try:
        await run_with_timeout(_probe, timeout)
        healthy, error = True, None
    except asyncio.TimeoutError:
        healthy, error = False, "Connection test timeout"
    except Exception as e:
        healthy, error = False, str(e)

    elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
    if healthy:
        logger.info("Database health check passed", response_time_ms=elapsed_ms)
    else:
        logger.warning("Database health check failed", response_time_ms=elapsed_ms, error=error)

    return {"healthy": healthy, "response_time_ms": elapsed_ms, "error": error}
