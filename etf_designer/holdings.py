import logging
import math
import re

import openai

from .models import GeneratedHoldings, Holding
from .prompts import HOLDINGS_PROMPT

logger = logging.getLogger(__name__)

# Allows symbols like AAPL, NOVN.SW or ERIC-B.ST, with an optional "%" suffix.
HOLDING_PATTERN = re.compile(r"([A-Z0-9.\-]+):\s*(\d+(?:\.\d+)?)\s*%?")

# Checked in order, first hit wins.
REGION_KEYWORDS = [
    ("non-us", "NON-US"),
    ("europe", "EU"),
    ("asia", "ASIA"),
    ("emerging", "EM"),
]
SECTOR_KEYWORDS = [
    ("pharma", "PHARMA"),
    ("tech", "TECH"),
    ("energy", "ENERGY"),
    ("finance", "FINANCE"),
]


def parse_holdings(text: str) -> list[Holding]:
    """Extract `SYMBOL: WEIGHT%` lines from free-form model output.

    Lines that do not match are skipped. The symbol doubles as the name until
    something better is known.
    """
    holdings: list[Holding] = []
    for line in text.strip().splitlines():
        match = HOLDING_PATTERN.search(line.strip())
        if not match:
            continue
        try:
            weight = float(match.group(2))
        except ValueError:
            continue
        if not math.isfinite(weight):
            continue
        symbol = match.group(1).upper()
        holdings.append(Holding(symbol=symbol, name=symbol, weight=weight))
    return holdings


def normalize_weights(holdings: list[Holding]) -> list[Holding]:
    """Rescale weights so they sum to 100, rounded to 2 decimals.

    A zero total (no holdings, or all weights zero) leaves the input as is.
    """
    total = sum(holding.weight for holding in holdings)
    if total <= 0:
        return holdings
    # round() is half-to-even on exact binary ties (0.625 -> 0.62).
    return [
        holding.model_copy(update={"weight": round(holding.weight / total * 100, 2)})
        for holding in holdings
    ]


def generate_etf_name(query: str) -> str:
    lowered = query.lower()
    region = next(
        (label for keyword, label in REGION_KEYWORDS if keyword in lowered), "GLOBAL"
    )
    sector = next(
        (label for keyword, label in SECTOR_KEYWORDS if keyword in lowered), "GENERAL"
    )
    return f"{region}-{sector} ETF"


def build_holdings_prompt(query: str) -> str:
    return HOLDINGS_PROMPT.format(query=query)


async def generate_etf_holdings(
    query: str, client: openai.AsyncOpenAI, model: str
) -> GeneratedHoldings:
    """Ask the model for holdings and turn its answer into a normalized set.

    An answer without a single parsable line yields no holdings and an
    `-EMPTY` suffixed name instead of an error.
    """
    logger.info("Generating holdings for query: %s", query)
    response = await client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": build_holdings_prompt(query)}],
        stream=False,
    )
    text = response.choices[0].message.content or ""
    logger.debug("Raw holdings output: %s", text)

    holdings = parse_holdings(text)
    etf_name = generate_etf_name(query)
    if not holdings:
        logger.warning("Could not parse any holdings from the model response.")
        return GeneratedHoldings(etf_name=f"{etf_name}-EMPTY", holdings=[])

    normalized = normalize_weights(holdings)
    logger.info(
        "Normalized holdings: %s",
        ", ".join(f"{h.symbol}={h.weight}" for h in normalized),
    )
    return GeneratedHoldings(etf_name=etf_name, holdings=normalized)
