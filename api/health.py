"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import asyncio
import json
from urllib.parse import parse_qs, urlparse


def _get_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


def _database_health() -> dict:
    """Run the database probe; configuration problems report as unhealthy."""
    from hustly.services.supabase_client import check_database_health, get_supabase_client
    from hustly.utils.errors import SupabaseError

    try:
        client = get_supabase_client()
    except SupabaseError as e:
        return {"healthy": False, "response_time_ms": None, "error": str(e)}
    return _get_loop().run_until_complete(check_database_health(client))


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        """Handle GET request; ?deep=1 also probes the database."""
        response = {"status": "ok", "service": "hustly-inventory"}
        status_code = 200

        query = parse_qs(urlparse(self.path).query)
        if (query.get("deep") or ["0"])[0] in ("1", "true"):
            database = _database_health()
            response["database"] = database
            if not database["healthy"]:
                response["status"] = "degraded"
                status_code = 503

        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(response).encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
