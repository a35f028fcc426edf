"""
Tests del cliente Binance Alpha.
No requieren base de datos ni red: el httpx.AsyncClient se inyecta como mock.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from sync.alpha_client import (
    KLINES_PATH,
    TOKEN_LIST_PATH,
    AlphaAPIError,
    AlphaNoDataError,
    AlphaTokenNotFoundError,
    BinanceAlphaClient,
    parse_klines,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

BASE_URL = "https://www.binance.com"

TOKEN_LIST = {
    "success": True,
    "data": [
        {"symbol": "KOGE", "name": "BNB48 Club Token", "alphaId": "ALPHA_22"},
        {"symbol": "ZKJ", "name": "Polyhedra Network", "alphaId": "ALPHA_175"},
    ],
}

# [openTime, open, high, low, close, volume, closeTime, quoteVolume, ...]
KLINES = {
    "success": True,
    "data": [
        ["1773014400000", "47.9", "48.2", "47.5", "48.0", "1000", "1773100799999", "48000.5", "10"],
        ["1773100800000", "48.0", "48.9", "47.8", "48.6", "1200", "1773187199999", "58320.25", "12"],
    ],
}


def make_mock_response(json_body: object, status_code: int = 200) -> MagicMock:
    """Crea un MagicMock de httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.reason_phrase = "Too Many Requests" if status_code == 429 else "OK"
    resp.json.return_value = json_body
    return resp


def make_client(mock_responses: list) -> tuple[BinanceAlphaClient, AsyncMock]:
    """
    Crea un BinanceAlphaClient con un http_client mockeado.
    mock_responses: valores que retornará .get() en orden.
    """
    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.get = AsyncMock(side_effect=mock_responses)
    mock_http.aclose = AsyncMock()
    return BinanceAlphaClient(base_url=BASE_URL, http_client=mock_http), mock_http


# ---------------------------------------------------------------------------
# Tests: parse_klines
# ---------------------------------------------------------------------------


def test_parse_klines_uses_quote_volume_and_close():
    fetched = parse_klines(KLINES["data"])
    assert fetched.volume_yesterday == Decimal("48000.5")
    assert fetched.volume_today == Decimal("58320.25")
    assert fetched.price == Decimal("48.6")


def test_parse_klines_single_row_has_only_yesterday():
    fetched = parse_klines(KLINES["data"][:1])
    assert fetched.volume_yesterday == Decimal("48000.5")
    assert fetched.volume_today is None
    assert fetched.price is None


def test_parse_klines_empty():
    assert parse_klines([]) is None


# ---------------------------------------------------------------------------
# Tests: resolución de alphaId
# ---------------------------------------------------------------------------


async def test_alpha_id_lookup_is_case_insensitive():
    client, _ = make_client([make_mock_response(TOKEN_LIST)])
    assert await client.get_alpha_id("koge") == "ALPHA_22"


async def test_token_list_is_cached_per_instance():
    client, mock_http = make_client([make_mock_response(TOKEN_LIST)])
    await client.get_alpha_id("KOGE")
    await client.get_alpha_id("ZKJ")
    assert mock_http.get.call_count == 1


async def test_unknown_symbol_returns_none():
    client, _ = make_client([make_mock_response(TOKEN_LIST)])
    assert await client.get_alpha_id("NOPE") is None


# ---------------------------------------------------------------------------
# Tests: snapshot de volumen
# ---------------------------------------------------------------------------


async def test_volume_snapshot_requests_usdt_pair():
    client, mock_http = make_client([make_mock_response(TOKEN_LIST), make_mock_response(KLINES)])
    snapshot = await client.get_volume_snapshot("ZKJ")

    assert snapshot.symbol == "ALPHA_175USDT"
    assert snapshot.raw == KLINES
    assert snapshot.volume.volume_today == Decimal("58320.25")

    first_call, second_call = mock_http.get.call_args_list
    assert first_call.args[0] == TOKEN_LIST_PATH
    assert second_call.args[0] == KLINES_PATH
    assert second_call.kwargs["params"] == {"interval": "1d", "limit": 2, "symbol": "ALPHA_175USDT"}


async def test_volume_snapshot_unknown_symbol_is_404():
    client, _ = make_client([make_mock_response(TOKEN_LIST)])
    with pytest.raises(AlphaTokenNotFoundError) as exc_info:
        await client.get_volume_snapshot("NOPE")
    assert exc_info.value.status_code == 404


async def test_volume_snapshot_without_klines_is_404():
    empty = {"success": True, "data": []}
    client, _ = make_client([make_mock_response(TOKEN_LIST), make_mock_response(empty)])
    with pytest.raises(AlphaNoDataError):
        await client.get_volume_snapshot("KOGE")


async def test_fetch_volume_is_soft_on_missing_data():
    client, _ = make_client([make_mock_response(TOKEN_LIST)])
    assert await client.fetch_volume("NOPE") is None


# ---------------------------------------------------------------------------
# Tests: errores y reintentos
# ---------------------------------------------------------------------------


async def test_http_error_raises_alpha_api_error():
    client, _ = make_client([make_mock_response({}, status_code=500)])
    with pytest.raises(AlphaAPIError) as exc_info:
        await client.get_token_list()
    assert exc_info.value.upstream_status == 500


async def test_rate_limit_is_retried_with_backoff():
    client, mock_http = make_client(
        [make_mock_response({}, status_code=429), make_mock_response(TOKEN_LIST)]
    )
    with patch("sync.alpha_client.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        tokens = await client.get_token_list()

    assert len(tokens) == 2
    assert mock_http.get.call_count == 2
    mock_sleep.assert_awaited_once_with(BinanceAlphaClient.BASE_BACKOFF)


async def test_network_errors_exhaust_retries():
    errors = [httpx.ConnectError("boom")] * BinanceAlphaClient.MAX_RETRIES
    client, mock_http = make_client(errors)
    with patch("sync.alpha_client.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(AlphaAPIError):
            await client.get_token_list()
    assert mock_http.get.call_count == BinanceAlphaClient.MAX_RETRIES


async def test_network_errors_propagate_from_fetch_volume():
    errors = [httpx.ReadTimeout("slow")] * BinanceAlphaClient.MAX_RETRIES
    client, _ = make_client(errors)
    with patch("sync.alpha_client.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(AlphaAPIError):
            await client.fetch_volume("KOGE")


async def test_context_manager_closes_http_client():
    client, mock_http = make_client([])
    async with client:
        pass
    mock_http.aclose.assert_awaited_once()
