"""
Adapter for Alpha Vantage `TIME_SERIES_DAILY` payloads.

A payload looks like::

    {
        "Meta Data": {"2. Symbol": "IBM", ...},
        "Time Series (Daily)": {
            "2025-03-11": {
                "1. open": "94.9800",
                "2. high": "95.3800",
                "3. low": "93.5800",
                "4. close": "94.7300",
                "5. volume": "21734793"
            },
            ...
        }
    }

Numbers usually arrive as strings. Nothing in here raises on a bad payload;
missing data comes back as an empty mapping or an empty series.
"""

import logging
import math
from typing import Any

from .models import DailyPrice, PriceHistory, PricePoint

logger = logging.getLogger(__name__)

META_DATA_KEY = "Meta Data"
SYMBOL_KEY = "2. Symbol"
TIME_SERIES_KEY = "Time Series (Daily)"
UNKNOWN_SYMBOL = "UNKNOWN"

FIELD_KEYS = {
    "open": "1. open",
    "high": "2. high",
    "low": "3. low",
    "close": "4. close",
    "volume": "5. volume",
}


def _to_number(value: Any) -> float:
    # Unparsable values become NaN rather than failing the whole payload.
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def parse_alpha_vantage_response(data: Any) -> dict[str, list[DailyPrice]]:
    if not isinstance(data, dict):
        logger.warning("Invalid Alpha Vantage response data")
        return {}

    meta_data = data.get(META_DATA_KEY)
    ticker = meta_data.get(SYMBOL_KEY) if isinstance(meta_data, dict) else None

    time_series = data.get(TIME_SERIES_KEY)
    if not isinstance(time_series, dict):
        logger.warning("No time series data found for %s", ticker or "unknown symbol")
        return {ticker: []} if ticker else {}
    if not ticker:
        logger.warning("Alpha Vantage response has no symbol in its meta data")
        ticker = UNKNOWN_SYMBOL

    prices: list[DailyPrice] = []
    for date, day in time_series.items():
        if not isinstance(day, dict):
            logger.warning("Skipping malformed entry for %s on %s", ticker, date)
            continue
        prices.append(
            DailyPrice(
                date=date,
                **{field: _to_number(day.get(key)) for field, key in FIELD_KEYS.items()},
            )
        )

    # ISO dates sort correctly as strings.
    prices.sort(key=lambda price: price.date)
    return {ticker: prices}


def to_price_history(symbol: str, data: Any) -> PriceHistory:
    """Close-price history for `symbol`, keyed the way the holdings are."""
    parsed = parse_alpha_vantage_response(data)
    daily = next(iter(parsed.values()), [])
    return PriceHistory(
        symbol=symbol,
        prices=[
            PricePoint(date=day.date, price=day.close)
            for day in daily
            if math.isfinite(day.close)
        ],
    )
