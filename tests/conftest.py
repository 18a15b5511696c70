import asyncio
from types import SimpleNamespace

import pytest

from etf_designer.models import Holding, PriceHistory, PricePoint
from etf_designer.tools import PriceHistoryUnavailable


class FakeStream:
    """Async iterator of narration chunks, closable like `openai.AsyncStream`."""

    def __init__(self, chunks, stall=0.0):
        self.chunks = list(chunks)
        self.stall = stall
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.stall:
            await asyncio.sleep(self.stall)
        if not self.chunks:
            raise StopAsyncIteration
        delta = SimpleNamespace(content=self.chunks.pop(0))
        return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])

    async def close(self):
        self.closed = True


class FakeCompletions:
    """Stands in for `AsyncOpenAI().chat.completions`.

    Non-streaming calls return `holdings_text`; streaming calls yield the
    narration chunks, each after `stall` seconds.
    """

    def __init__(self, holdings_text, narration_chunks=("Here is your ETF.",), stall=0.0):
        self.holdings_text = holdings_text
        self.narration_chunks = list(narration_chunks)
        self.stall = stall
        self.calls = []
        self.streams = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            stream = FakeStream(self.narration_chunks, stall=self.stall)
            self.streams.append(stream)
            return stream
        message = SimpleNamespace(content=self.holdings_text)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self, holdings_text, narration_chunks=("Here is your ETF.",), stall=0.0):
        self.completions = FakeCompletions(holdings_text, narration_chunks, stall)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True


class FakePriceClient:
    """In-memory price client; symbols missing from `histories` fail."""

    def __init__(self, histories, delay=0.0):
        self.histories = histories
        self.delay = delay
        self.requested = []
        self.closed = False

    async def fetch_price_history(self, symbol, outputsize="compact"):
        self.requested.append((symbol, outputsize))
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol not in self.histories:
            raise PriceHistoryUnavailable(symbol, "no price data returned")
        return self.histories[symbol]

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_openai():
    return FakeOpenAI


@pytest.fixture
def fake_price_client():
    return FakePriceClient


def _make_history(symbol, points):
    return PriceHistory(
        symbol=symbol,
        prices=[PricePoint(date=date, price=price) for date, price in points],
    )


def _make_holding(symbol, weight):
    return Holding(symbol=symbol, name=symbol, weight=weight)


def _alpha_vantage_payload(symbol, closes):
    """A TIME_SERIES_DAILY payload with string-encoded numbers."""
    return {
        "Meta Data": {
            "1. Information": "Daily Prices (open, high, low, close) and Volumes",
            "2. Symbol": symbol,
            "3. Last Refreshed": max(closes) if closes else "",
            "4. Output Size": "Compact",
            "5. Time Zone": "US/Eastern",
        },
        "Time Series (Daily)": {
            date: {
                "1. open": f"{close:.4f}",
                "2. high": f"{close + 1:.4f}",
                "3. low": f"{close - 1:.4f}",
                "4. close": f"{close:.4f}",
                "5. volume": "1000",
            }
            for date, close in closes.items()
        },
    }


@pytest.fixture
def make_history():
    return _make_history


@pytest.fixture
def make_holding():
    return _make_holding


@pytest.fixture
def alpha_vantage_payload():
    return _alpha_vantage_payload
