"""
Price-history lookup against Alpha Vantage.

`PriceHistoryClient` wraps one `httpx.AsyncClient` and is meant to live for
exactly one /v1/query request: open it when the stream starts, close it when
the stream ends, whatever the outcome.
"""

import asyncio
import logging
from typing import Any, Literal

import httpx

from .config import Settings
from .models import PriceHistory
from .prices import TIME_SERIES_KEY, to_price_history

logger = logging.getLogger(__name__)

OutputSize = Literal["compact", "full"]

# Alpha Vantage answers throttled or invalid calls with HTTP 200 and one of these.
PROVIDER_NOTICE_KEYS = ("Error Message", "Information", "Note")


class PriceHistoryUnavailable(Exception):
    """Raised when no usable history could be fetched for a symbol."""

    def __init__(self, symbol: str, reason: str):
        super().__init__(f"Price history unavailable for {symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class PriceHistoryClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        call_interval: float = 1.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.call_interval = call_interval
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )
        self._last_call_time: float | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "PriceHistoryClient | None":
        """A client, or None when the provider is not configured."""
        if not settings.price_tool_available:
            logger.warning(
                "ALPHAVANTAGE_API_KEY environment variable not set, "
                "price history lookups are disabled."
            )
            return None
        return cls(
            api_key=settings.alphavantage_api_key,
            base_url=settings.alphavantage_base_url,
            call_interval=settings.price_call_interval,
            timeout=settings.price_request_timeout,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def _rate_limit(self) -> None:
        loop = asyncio.get_running_loop()
        if self._last_call_time is not None:
            elapsed = loop.time() - self._last_call_time
            if elapsed < self.call_interval:
                await asyncio.sleep(self.call_interval - elapsed)
        self._last_call_time = loop.time()

    async def fetch_daily_series(
        self, symbol: str, outputsize: OutputSize = "compact"
    ) -> dict[str, Any]:
        """Raw TIME_SERIES_DAILY payload for `symbol`."""
        await self._rate_limit()
        params = {
            "function": "TIME_SERIES_DAILY",
            "symbol": symbol,
            "outputsize": outputsize,
            "datatype": "json",
            "apikey": self.api_key,
        }
        try:
            response = await self._client.get("/query", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise PriceHistoryUnavailable(symbol, f"request failed ({e})") from e
        except ValueError as e:
            raise PriceHistoryUnavailable(symbol, "response is not valid JSON") from e

        if not isinstance(payload, dict):
            raise PriceHistoryUnavailable(symbol, "unexpected response format")
        if TIME_SERIES_KEY not in payload:
            for key in PROVIDER_NOTICE_KEYS:
                if key in payload:
                    raise PriceHistoryUnavailable(symbol, str(payload[key])[:200])
        return payload

    async def fetch_price_history(
        self, symbol: str, outputsize: OutputSize = "compact"
    ) -> PriceHistory:
        logger.info("Fetching price history for %s (%s)", symbol, outputsize)
        payload = await self.fetch_daily_series(symbol, outputsize)
        history = to_price_history(symbol, payload)
        if not history.prices:
            raise PriceHistoryUnavailable(symbol, "no price data returned")
        return history

    async def close(self) -> None:
        """Release the connection. Failures are logged, never raised."""
        try:
            await self._client.aclose()
        except Exception:
            logger.exception("Error closing price history client")
