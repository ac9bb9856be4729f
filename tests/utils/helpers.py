"""Test helper functions."""

import asyncio
import json
from io import BytesIO
from typing import Any, Dict, Iterable, Optional, Tuple
from unittest.mock import MagicMock

from hustly.models.inventory import FetchErrorKind, FetchResult, InventoryFilters

QUERY_BUILDER_METHODS = ("select", "eq", "ilike", "order", "limit", "update", "delete", "insert", "is_", "lt")


def make_query_mock(data: Optional[list] = None, error: Optional[Exception] = None) -> MagicMock:
    """Chainable PostgREST builder mock; every builder method returns the same mock."""
    query = MagicMock()
    for method in QUERY_BUILDER_METHODS:
        getattr(query, method).return_value = query

    if error is not None:
        query.execute.side_effect = error
    else:
        query.execute.return_value = MagicMock(data=data if data is not None else [])
    return query


def make_supabase_client(
    data: Optional[list] = None,
    error: Optional[Exception] = None,
    user_id: Optional[str] = "user-123",
) -> MagicMock:
    """Mock Supabase client with an authenticated user and a listings query."""
    client = MagicMock()
    query = make_query_mock(data=data, error=error)
    client.table.return_value = query
    client.query = query

    if user_id is None:
        client.auth.get_user.return_value = None
    else:
        client.auth.get_user.return_value = MagicMock(user=MagicMock(id=user_id))
    return client


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedQuery:
    """Query executor stand-in that returns scripted results and counts calls."""

    def __init__(self, results: Iterable[FetchResult] = ()):
        self.results = list(results)
        self.calls: list[InventoryFilters] = []
        self.gate: Optional[asyncio.Event] = None

    async def execute(self, filters: InventoryFilters) -> FetchResult:
        self.calls.append(filters)
        if self.gate is not None:
            await self.gate.wait()
        if not self.results:
            return FetchResult.success([])
        if len(self.results) == 1:
            return self.results[0]
        return self.results.pop(0)

    @property
    def call_count(self) -> int:
        return len(self.calls)


def timeout_result() -> FetchResult:
    return FetchResult.failure(FetchErrorKind.TIMEOUT, "Database query timeout")


def backend_error_result(message: str = "relation does not exist") -> FetchResult:
    return FetchResult.failure(FetchErrorKind.BACKEND, message)


def auth_error_result() -> FetchResult:
    return FetchResult.failure(FetchErrorKind.AUTHENTICATION, "No authenticated user")


def create_vercel_request(
    method: str = "GET",
    path: str = "/api/inventory",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """Raw HTTP request bytes for instantiating a BaseHTTPRequestHandler."""
    payload = json.dumps(body).encode("utf-8") if body is not None else b""
    header_lines = dict(headers or {})
    if payload:
        header_lines.setdefault("Content-Type", "application/json")
        header_lines["Content-Length"] = str(len(payload))

    head = f"{method} {path} HTTP/1.1\r\n"
    head += "".join(f"{name}: {value}\r\n" for name, value in header_lines.items())
    return head.encode("utf-8") + b"\r\n" + payload


class MockSocket:
    """Socket stand-in: serves one raw request and captures everything sent back."""

    def __init__(self, request: bytes):
        self.request = request
        self.sent = bytearray()

    def makefile(self, *args, **kwargs):
        return BytesIO(self.request)

    def sendall(self, data):
        self.sent.extend(data)

    def close(self):
        pass


def invoke_handler(handler_cls, request: bytes) -> Tuple[int, Dict[str, Any]]:
    """Run a BaseHTTPRequestHandler over one request; return (status, json body)."""
    sock = MockSocket(request)
    handler_cls(sock, ("127.0.0.1", 8000), None)

    head, _, body = bytes(sock.sent).partition(b"\r\n\r\n")
    status = int(head.split(b" ", 2)[1])
    return status, json.loads(body.decode("utf-8")) if body else {}
