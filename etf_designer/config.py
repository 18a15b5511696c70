"""
Runtime configuration for the ETF designer agent.

Values come from the environment (optionally a local `.env` file). The
OpenAI key is picked up by the `openai` SDK itself, so it is not read here.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(".env")

ALPHAVANTAGE_BASE_URL = "https://www.alphavantage.co"


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    alphavantage_api_key: str | None = None
    alphavantage_base_url: str = ALPHAVANTAGE_BASE_URL
    # "compact" returns roughly the latest 100 trading days, "full" everything.
    price_output_size: str = "compact"
    # Minimum seconds between two provider calls (free tier is rate limited).
    price_call_interval: float = 1.0
    price_request_timeout: float = 30.0
    holdings_model: str = "o1-mini"
    narration_model: str = "gpt-4o"
    # Ceiling for a whole /v1/query request, in seconds.
    request_timeout: float = 300.0

    @property
    def price_tool_available(self) -> bool:
        return bool(self.alphavantage_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        output_size = os.environ.get("PRICE_OUTPUT_SIZE", "compact")
        if output_size not in ("compact", "full"):
            raise ValueError(
                f"PRICE_OUTPUT_SIZE must be 'compact' or 'full', got {output_size!r}"
            )
        return cls(
            alphavantage_api_key=os.environ.get("ALPHAVANTAGE_API_KEY") or None,
            alphavantage_base_url=os.environ.get(
                "ALPHAVANTAGE_BASE_URL", ALPHAVANTAGE_BASE_URL
            ),
            price_output_size=output_size,
            price_call_interval=_float_env("PRICE_CALL_INTERVAL", 1.0),
            price_request_timeout=_float_env("PRICE_REQUEST_TIMEOUT", 30.0),
            holdings_model=os.environ.get("HOLDINGS_MODEL", "o1-mini"),
            narration_model=os.environ.get("NARRATION_MODEL", "gpt-4o"),
            request_timeout=_float_env("REQUEST_TIMEOUT", 300.0),
        )
