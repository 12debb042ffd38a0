"""Tests for SupabaseClient (weeklybot/supabase/client.py).

Covers: query params, headers, retry on 429/5xx/timeouts, SupabaseAPIError on 4xx.

SupabaseClient is synchronous (httpx.Client), so all tests are sync.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from weeklybot.errors import StoreError
from weeklybot.supabase.client import MAX_RETRIES, SupabaseAPIError, SupabaseClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_response(status_code: int = 200, json_data=None, text: str = "", content: bytes | None = None):
    """Build a mock httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.is_success = 200 <= status_code < 300
    resp.json.return_value = json_data if json_data is not None else []
    resp.text = text
    resp.content = content if content is not None else b"[]"
    return resp


@pytest.fixture
def client():
    return SupabaseClient(url="https://proj.supabase.co/", key="service-key")


@pytest.fixture
def mock_http(client):
    with patch.object(client, "_get_client") as gc:
        http = MagicMock()
        gc.return_value = http
        yield http


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("weeklybot.supabase.client.time.sleep") as sleep:
        yield sleep


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_headers_carry_service_key(client):
    headers = client._headers
    assert headers["apikey"] == "service-key"
    assert headers["Authorization"] == "Bearer service-key"


def test_real_client_uses_rest_base_url(client):
    http = client._get_client()
    try:
        assert str(http.base_url) == "https://proj.supabase.co/rest/v1/"
    finally:
        client.close()


# ---------------------------------------------------------------------------
# Params
# ---------------------------------------------------------------------------

def test_params_encode_filters():
    params = SupabaseClient._params(
        {"is_active": ("eq", True), "sent_at": ("gte", "2026-10-19T00:00:00+00:00")},
        select="*",
        order="sent_at.desc",
        limit=1,
    )
    assert params == {
        "select": "*",
        "is_active": "eq.true",
        "sent_at": "gte.2026-10-19T00:00:00+00:00",
        "order": "sent_at.desc",
        "limit": "1",
    }


def test_params_empty():
    assert SupabaseClient._params(None) == {}


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def test_select(client, mock_http):
    rows = [{"id": "a"}]
    mock_http.request.return_value = _make_response(200, rows)

    assert client.select("weekly_notifications", {"is_active": ("eq", True)}) == rows
    method, path = mock_http.request.call_args.args
    assert (method, path) == ("GET", "/weekly_notifications")
    assert mock_http.request.call_args.kwargs["params"]["is_active"] == "eq.true"


def test_insert_asks_for_representation(client, mock_http):
    mock_http.request.return_value = _make_response(201, [{"notification_id": "a"}])

    rows = client.insert("sent_notifications", {"notification_id": "a"})

    assert rows == [{"notification_id": "a"}]
    kwargs = mock_http.request.call_args.kwargs
    assert kwargs["json"] == {"notification_id": "a"}
    assert kwargs["headers"] == {"Prefer": "return=representation"}


def test_no_content_returns_empty_list(client, mock_http):
    mock_http.request.return_value = _make_response(204, content=b"")
    assert client.delete("sent_notifications", {"sent_at": ("lt", "x")}) == []


def test_delete_requires_filters(client, mock_http):
    with pytest.raises(ValueError):
        client.delete("sent_notifications", {})
    mock_http.request.assert_not_called()


# ---------------------------------------------------------------------------
# Retry / errors
# ---------------------------------------------------------------------------

def test_retry_on_500_then_success(client, mock_http, no_sleep):
    mock_http.request.side_effect = [_make_response(500, text="oops"), _make_response(200, [{"id": 1}])]

    assert client.select("t") == [{"id": 1}]
    assert mock_http.request.call_count == 2
    no_sleep.assert_called_once_with(1.0)


def test_retry_on_429_backoff_doubles(client, mock_http, no_sleep):
    mock_http.request.side_effect = [
        _make_response(429),
        _make_response(429),
        _make_response(200, []),
    ]

    client.select("t")

    assert [c.args[0] for c in no_sleep.call_args_list] == [1.0, 2.0]


def test_persistent_500_raises(client, mock_http):
    mock_http.request.return_value = _make_response(503, text="unavailable")

    with pytest.raises(SupabaseAPIError) as exc_info:
        client.select("t")

    assert exc_info.value.status_code == 503
    assert mock_http.request.call_count == MAX_RETRIES


def test_4xx_not_retried(client, mock_http):
    mock_http.request.return_value = _make_response(401, text="invalid key")

    with pytest.raises(SupabaseAPIError, match="401"):
        client.select("t")

    assert mock_http.request.call_count == 1


def test_timeout_retried_then_raises(client, mock_http):
    mock_http.request.side_effect = httpx.ReadTimeout("slow")

    with pytest.raises(SupabaseAPIError, match="timed out"):
        client.select("t")

    assert mock_http.request.call_count == MAX_RETRIES


def test_network_error_recovers(client, mock_http):
    mock_http.request.side_effect = [httpx.ConnectError("refused"), _make_response(200, [])]
    assert client.select("t") == []


def test_api_error_is_store_error():
    assert isinstance(SupabaseAPIError(500, "x"), StoreError)
