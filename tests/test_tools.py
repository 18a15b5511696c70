import asyncio

import httpx
import pytest

from etf_designer.config import Settings
from etf_designer.tools import PriceHistoryClient, PriceHistoryUnavailable


def _client(handler, call_interval=0.0):
    return PriceHistoryClient(
        api_key="demo",
        base_url="https://alphavantage.test",
        call_interval=call_interval,
        transport=httpx.MockTransport(handler),
    )


def test_fetch_price_history(alpha_vantage_payload):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            200, json=alpha_vantage_payload("IBM", {"2024-01-02": 11.0, "2024-01-01": 10.0})
        )

    async def run():
        client = _client(handler)
        try:
            return await client.fetch_price_history("IBM")
        finally:
            await client.close()

    history = asyncio.run(run())
    assert history.symbol == "IBM"
    assert [(p.date, p.price) for p in history.prices] == [
        ("2024-01-01", 10.0),
        ("2024-01-02", 11.0),
    ]

    (request,) = requests
    assert request.url.path == "/query"
    assert request.url.params["function"] == "TIME_SERIES_DAILY"
    assert request.url.params["symbol"] == "IBM"
    assert request.url.params["outputsize"] == "compact"
    assert request.url.params["apikey"] == "demo"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream exploded"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute."}),
        httpx.Response(200, json={"Error Message": "Invalid API call."}),
        httpx.Response(200, json={"Meta Data": {"2. Symbol": "IBM"}, "Time Series (Daily)": {}}),
    ],
)
def test_fetch_price_history_failures(response):
    async def run():
        client = _client(lambda request: response)
        try:
            await client.fetch_price_history("IBM")
        finally:
            await client.close()

    with pytest.raises(PriceHistoryUnavailable) as excinfo:
        asyncio.run(run())
    assert excinfo.value.symbol == "IBM"


def test_transport_errors_are_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        client = _client(handler)
        try:
            await client.fetch_price_history("IBM")
        finally:
            await client.close()

    with pytest.raises(PriceHistoryUnavailable, match="request failed"):
        asyncio.run(run())


def test_calls_are_spaced_by_interval(alpha_vantage_payload, monkeypatch):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr("etf_designer.tools.asyncio.sleep", fake_sleep)

    def handler(request):
        symbol = request.url.params["symbol"]
        return httpx.Response(200, json=alpha_vantage_payload(symbol, {"2024-01-01": 1.0}))

    async def run():
        client = _client(handler, call_interval=60.0)
        try:
            await client.fetch_price_history("AAA")
            await client.fetch_price_history("BBB")
        finally:
            await client.close()

    asyncio.run(run())
    # No wait before the first call, close to the full interval before the second.
    assert len(sleeps) == 1
    assert 59.0 < sleeps[0] <= 60.0


def test_close_releases_connection():
    async def run():
        client = _client(lambda request: httpx.Response(200, json={}))
        assert not client.is_closed
        await client.close()
        return client

    assert asyncio.run(run()).is_closed


def test_from_settings_requires_api_key():
    assert PriceHistoryClient.from_settings(Settings(alphavantage_api_key=None)) is None


def test_from_settings():
    async def run():
        client = PriceHistoryClient.from_settings(
            Settings(alphavantage_api_key="demo", price_call_interval=0.5)
        )
        try:
            return client.api_key, client.call_interval
        finally:
            await client.close()

    assert asyncio.run(run()) == ("demo", 0.5)
