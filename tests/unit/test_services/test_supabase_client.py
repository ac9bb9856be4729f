"""Tests for Supabase client helpers."""

import time
import pytest
from unittest.mock import MagicMock, patch

from hustly.services import supabase_client
from hustly.services.supabase_client import (
    check_database_health,
    close_supabase_client,
    get_supabase_client,
    resolve_authenticated_user,
)
from hustly.utils.errors import AuthenticationRequiredError, ConfigurationError, QueryTimeoutError, SupabaseError
from tests.utils.helpers import make_supabase_client


@pytest.fixture(autouse=True)
def reset_client_singleton():
    supabase_client._client = None
    yield
    supabase_client._client = None


@pytest.mark.unit
def test_get_supabase_client_requires_configuration(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)

    with pytest.raises(ConfigurationError):
        get_supabase_client()


@pytest.mark.unit
def test_get_supabase_client_rejects_anon_key_only(monkeypatch):
    """Reads filter by user_id server-side; an anon-role client would see no rows under RLS."""
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")

    with patch("hustly.services.supabase_client.create_client") as mock_create:
        with pytest.raises(ConfigurationError, match="SUPABASE_SERVICE_ROLE_KEY"):
            get_supabase_client()

    mock_create.assert_not_called()


@pytest.mark.unit
def test_get_supabase_client_is_singleton(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")

    with patch("hustly.services.supabase_client.create_client", return_value=MagicMock()) as mock_create:
        first = get_supabase_client()
        second = get_supabase_client()

    assert first is second
    mock_create.assert_called_once()
    assert mock_create.call_args[0][:2] == ("https://test.supabase.co", "test-key")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_supabase_client_drops_singleton():
    supabase_client._client = MagicMock()

    await close_supabase_client()

    assert supabase_client._client is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_authenticated_user(mock_supabase_client, access_token, user_id):
    assert await resolve_authenticated_user(mock_supabase_client, access_token) == user_id
    mock_supabase_client.auth.get_user.assert_called_once_with(access_token)


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, ""])
async def test_resolve_without_token(mock_supabase_client, token):
    with pytest.raises(AuthenticationRequiredError):
        await resolve_authenticated_user(mock_supabase_client, token)

    mock_supabase_client.auth.get_user.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_without_user():
    client = make_supabase_client(user_id=None)

    with pytest.raises(AuthenticationRequiredError):
        await resolve_authenticated_user(client, "expired-token")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_rejected_token():
    class AuthApiError(Exception):
        status = 401

    client = make_supabase_client()
    client.auth.get_user.side_effect = AuthApiError("invalid JWT")

    with pytest.raises(AuthenticationRequiredError):
        await resolve_authenticated_user(client, "bad-token")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_server_failure_is_not_auth():
    client = make_supabase_client()
    client.auth.get_user.side_effect = RuntimeError("gotrue unavailable")

    with pytest.raises(SupabaseError) as exc_info:
        await resolve_authenticated_user(client, "token")

    assert not isinstance(exc_info.value, AuthenticationRequiredError)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resolve_times_out():
    client = make_supabase_client()
    client.auth.get_user.side_effect = lambda token: time.sleep(0.5)

    with pytest.raises(QueryTimeoutError):
        await resolve_authenticated_user(client, "token", timeout_seconds=0.1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_database_health_ok(mock_supabase_client):
    result = await check_database_health(mock_supabase_client)

    assert result["healthy"] is True
    assert result["error"] is None
    assert result["response_time_ms"] >= 0
    mock_supabase_client.query.select.assert_called_once_with("id")
    mock_supabase_client.query.limit.assert_called_once_with(1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_database_health_failure():
    client = make_supabase_client(error=RuntimeError("connection refused"))

    result = await check_database_health(client)

    assert result == {"healthy": False, "response_time_ms": result["response_time_ms"], "error": "connection refused"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_database_health_timeout():
    client = make_supabase_client()
    client.query.execute.side_effect = lambda: time.sleep(0.5)

    result = await check_database_health(client, timeout_seconds=0.1)

    assert result["healthy"] is False
    assert result["error"] == "Connection test timeout"
