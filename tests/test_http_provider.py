import asyncio
from types import SimpleNamespace

import pytest
import requests

from zonebreak.config import AppSettings
from zonebreak.data.providers import StockApiClient, UpstreamError, normalize_ranked_symbols

BASE_URL = "https://stocks.example.test/api"


class DummyResponse:
    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class DummySession:
    def __init__(self, responses):
        self.responses = responses
        self.calls: list[SimpleNamespace] = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append(SimpleNamespace(url=url, params=params, timeout=timeout))
        response = self.responses.get(url)
        if response is None:  # pragma: no cover - unexpected endpoint
            raise AssertionError(f"Unexpected endpoint in dummy session: {url}")
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def _client(responses) -> tuple[StockApiClient, DummySession]:
    session = DummySession(responses)
    return StockApiClient(BASE_URL, session=session, timeout=5), session


def test_price_history_parses_bars_and_uppercases_symbol():
    payload = {
        "prices": [
            {"date": "2024-01-03", "open": 101, "high": 103, "low": 100, "close": 102, "volume": 5_000},
            {"date": "2024-01-02", "open": 100, "high": 101, "low": 99, "close": 100.5, "volume": 4_000},
        ]
    }
    client, session = _client({f"{BASE_URL}/analyze": DummyResponse(payload)})

    bars = client.price_history(" aapl ", 365)

    assert [bar.close for bar in bars] == [102, 100.5]
    call = session.calls[0]
    assert call.params == {"symbol": "AAPL", "days": 365}
    assert call.timeout == 5
    client.close()
    assert session.closed


def test_price_history_treats_not_found_as_no_data():
    client, _ = _client({f"{BASE_URL}/analyze": DummyResponse({"error": "unknown"}, status_code=404)})
    assert client.price_history("ZZZZ", 30) == []


def test_server_errors_are_flagged():
    client, _ = _client({f"{BASE_URL}/analyze": DummyResponse({}, status_code=503)})
    with pytest.raises(UpstreamError) as excinfo:
        client.price_history("AAPL", 30)
    assert excinfo.value.status_code == 503
    assert excinfo.value.is_server_error


def test_client_errors_are_not_server_errors():
    client, _ = _client({f"{BASE_URL}/analyze": DummyResponse({}, status_code=429)})
    with pytest.raises(UpstreamError) as excinfo:
        client.price_history("AAPL", 30)
    assert excinfo.value.status_code == 429
    assert not excinfo.value.is_server_error


def test_transport_failures_carry_no_status():
    client, _ = _client({f"{BASE_URL}/analyze": requests.ConnectionError("refused")})
    with pytest.raises(UpstreamError) as excinfo:
        client.price_history("AAPL", 30)
    assert excinfo.value.status_code is None
    assert not excinfo.value.is_server_error


def test_malformed_body_raises_upstream_error():
    client, _ = _client({f"{BASE_URL}/analyze": DummyResponse(ValueError("not json"))})
    with pytest.raises(UpstreamError):
        client.price_history("AAPL", 30)


def test_ranked_symbols_are_normalized_and_limited():
    payload = [{"symbol": "aapl"}, {"symbol": "MSFT"}, {"symbol": "aapl"}, {"name": "no symbol"}, {"symbol": "nvda"}]
    client, session = _client({f"{BASE_URL}/top-market-cap": DummyResponse(payload)})

    assert client.ranked_symbols(2) == ["AAPL", "MSFT"]
    assert session.calls[0].params == {"limit": 2}


def test_async_wrappers_delegate_to_blocking_calls():
    client, _ = _client(
        {
            f"{BASE_URL}/analyze": DummyResponse(
                [{"date": "2024-01-02", "open": 1, "high": 1, "low": 1, "close": 1, "volume": 10}]),
            f"{BASE_URL}/top-market-cap": DummyResponse({"symbols": ["aapl"]}),
        }
    )

    async def scenario():
        bars = await client.fetch_price_history("AAPL", 10)
        symbols = await client.fetch_ranked_symbols(10)
        return bars, symbols

    bars, symbols = asyncio.run(scenario())
    assert len(bars) == 1
    assert symbols == ["AAPL"]


def test_rate_limit_records_calls():
    session = DummySession({f"{BASE_URL}/top-market-cap": DummyResponse(["AAPL"])})
    client = StockApiClient(BASE_URL, session=session, rate_limit_per_minute=10)
    client.ranked_symbols(5)
    client.ranked_symbols(5)
    assert len(client._call_timestamps) == 2


def test_normalize_ranked_symbols_variants():
    assert normalize_ranked_symbols(["aapl", " msft ", "AAPL", ""]) == ["AAPL", "MSFT"]
    assert normalize_ranked_symbols({"symbols": [{"symbol": "tsla"}]}) == ["TSLA"]
    assert normalize_ranked_symbols({"unexpected": True}) == []
    assert normalize_ranked_symbols(None) == []


def test_from_settings_requires_base_url(monkeypatch):
    monkeypatch.delenv("ZONEBREAK_API_URL", raising=False)
    settings = AppSettings(_env_file=None)
    with pytest.raises(RuntimeError, match="ZONEBREAK_API_URL"):
        StockApiClient.from_settings(settings)

    configured = AppSettings(_env_file=None, ZONEBREAK_API_URL=BASE_URL + "/", ZONEBREAK_API_TIMEOUT=7)
    client = StockApiClient.from_settings(configured, session=DummySession({}))
    assert client.base_url == BASE_URL
    assert client.timeout == 7


def test_constructor_rejects_blank_url():
    with pytest.raises(ValueError):
        StockApiClient("")
