"""Inventory endpoint for Vercel: read listings with cache fallback, update and delete listings."""

from http.server import BaseHTTPRequestHandler
import asyncio
import hashlib
import json
from typing import Optional
from urllib.parse import parse_qs, urlparse

from hustly.models.inventory import ALL, InventoryFilters
from hustly.services.inventory_controller import InventoryController, InventoryState, AUTH_ERROR_MESSAGE
from hustly.services.inventory_query import InventoryQuery
from hustly.services.listing_operations import delete_listing, update_listing, update_listing_status
from hustly.services.supabase_client import get_supabase_client
from hustly.utils.config import InventoryConfig
from hustly.utils.errors import AuthenticationRequiredError, QueryTimeoutError, SupabaseError
from hustly.utils.logging import correlation_context, get_structured_logger, setup_logging
from hustly.utils.logging_config import LoggingConfig

setup_logging()
logger = get_structured_logger(__name__)


def _get_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


def parse_filters(query: dict) -> InventoryFilters:
    """Build a filter set from query string parameters."""
    def first(name: str) -> Optional[str]:
        values = query.get(name)
        return values[0] if values else None

    try:
        limit = int(first("limit") or InventoryConfig.DEFAULT_LIMIT)
    except ValueError:
        limit = InventoryConfig.DEFAULT_LIMIT

    return InventoryFilters(
        search_term=first("search"),
        status_filter=first("status") or ALL,
        category_filter=first("category") or ALL,
        limit=limit,
    )


def cache_scope_for(access_token: Optional[str]) -> str:
    """Per-session cache namespace so tenants never share entries."""
    if not access_token:
        return "anonymous"
    return hashlib.sha256(access_token.encode("utf-8")).hexdigest()[:16]


async def load_inventory(client, access_token: Optional[str], filters: InventoryFilters, refresh: bool = False) -> dict:
    """Run one controller cycle and return its exposed state."""
    controller = InventoryController(
        InventoryQuery(client, access_token),
        filters=filters,
        cache_scope=cache_scope_for(access_token),
    )
    try:
        if refresh:
            await controller.refetch()
        else:
            await controller.fetch_inventory()
        return controller.snapshot()
    finally:
        controller.dispose()


def status_code_for(snapshot: dict) -> int:
    if snapshot["state"] == InventoryState.FAILED_EMPTY.value:
        return 401 if snapshot["error"] == AUTH_ERROR_MESSAGE else 503
    return 200


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for inventory reads and mutations."""

    def _send_json(self, status: int, payload: dict) -> None:
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode('utf-8'))

    def _access_token(self) -> Optional[str]:
        auth = self.headers.get("Authorization") or self.headers.get("authorization") or ""
        if auth.lower().startswith("bearer "):
            return auth[7:].strip() or None
        return None

    def _query(self) -> dict:
        return parse_qs(urlparse(self.path).query)

    def _correlation_id(self) -> Optional[str]:
        return self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)

    def do_GET(self):
        """List inventory for the authenticated tenant."""
        with correlation_context(self._correlation_id()):
            try:
                query = self._query()
                filters = parse_filters(query)
                refresh = (query.get("refresh") or ["0"])[0] in ("1", "true")

                client = get_supabase_client()
                snapshot = _get_loop().run_until_complete(
                    load_inventory(client, self._access_token(), filters, refresh=refresh)
                )
                self._send_json(status_code_for(snapshot), snapshot)
            except SupabaseError as e:
                logger.error("Inventory request failed", error=str(e), exc_info=True)
                self._send_json(500, {"error": "service unavailable"})
            except Exception as e:
                logger.error("Error processing inventory request", error=str(e), exc_info=True)
                self._send_json(500, {"error": "internal server error"})

    def do_PATCH(self):
        """Update a listing's fields, or its status when the body carries one."""
        with correlation_context(self._correlation_id()):
            listing_id = (self._query().get("id") or [None])[0]
            try:
                content_length = int(self.headers.get('Content-Length', 0))
                raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
                body = json.loads(raw_body) if raw_body else {}
                if not isinstance(body, dict):
                    raise ValueError("Request body must be a JSON object")

                client = get_supabase_client()
                token = self._access_token()
                status = body.pop("status", None)
                if status is not None:
                    coro = update_listing_status(client, token, listing_id, status, body)
                else:
                    coro = update_listing(client, token, listing_id, body)

                row = _get_loop().run_until_complete(coro)
                self._send_json(200, {"ok": True, "listing": row})
            except Exception as e:
                self._send_mutation_error(e, "update")

    def do_DELETE(self):
        """Hard delete a listing."""
        with correlation_context(self._correlation_id()):
            listing_id = (self._query().get("id") or [None])[0]
            try:
                client = get_supabase_client()
                _get_loop().run_until_complete(delete_listing(client, self._access_token(), listing_id))
                self._send_json(200, {"ok": True})
            except Exception as e:
                self._send_mutation_error(e, "delete")

    def _send_mutation_error(self, error: Exception, operation: str) -> None:
        if isinstance(error, AuthenticationRequiredError):
            self._send_json(401, {"error": f"Please log in to {operation} listings"})
        elif isinstance(error, (ValueError, json.JSONDecodeError)):
            self._send_json(400, {"error": str(error)})
        elif isinstance(error, QueryTimeoutError):
            logger.warning(f"Listing {operation} timed out", error=str(error))
            self._send_json(504, {"error": f"Cannot {operation} listings while offline. Changes were not saved."})
        else:
            logger.error(f"Listing {operation} failed", error=str(error), exc_info=True)
            self._send_json(500, {"error": f"Failed to {operation} listing"})
