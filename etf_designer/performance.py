import logging

from .models import Holding, PerformancePoint, PerformanceResult, PriceHistory

logger = logging.getLogger(__name__)

CALCULATION_ERROR = "Failed to calculate ETF performance"
# Reported for dates on which no holding has a usable price.
NEUTRAL_INDEX = 100.0


def _prices_by_date(history: PriceHistory) -> dict[str, float]:
    # The first point wins when a date is repeated.
    prices: dict[str, float] = {}
    for point in history.prices:
        prices.setdefault(point.date, point.price)
    return prices


def calculate_etf_performance(
    etf_name: str,
    holdings: list[Holding],
    price_histories: list[PriceHistory],
) -> PerformanceResult:
    """
    Weighted base-100 performance of the holdings over their common dates.

    The series starts at the latest of the holdings' first recorded dates.
    Each holding is indexed to 100 on that date; holdings without a positive
    price there are left out entirely. On every later date the index is the
    weighted average over the holdings that have a price on that exact date,
    or 100 when none do.
    """
    logger.info("Calculating performance for ETF: %s", etf_name)
    if not price_histories or not holdings:
        logger.warning(
            "Cannot calculate performance with empty price histories or holdings."
        )
        return PerformanceResult()

    try:
        histories = {history.symbol: history for history in price_histories}
        price_lookup = {
            symbol: _prices_by_date(history) for symbol, history in histories.items()
        }

        dates = sorted(
            {point.date for history in price_histories for point in history.prices}
        )
        if not dates:
            logger.warning("No dates found in price histories.")
            return PerformanceResult()

        common_start_date = dates[0]
        for holding in holdings:
            history = histories.get(holding.symbol)
            if history and history.prices:
                first_date = history.prices[0].date
                if first_date > common_start_date:
                    common_start_date = first_date
        dates = [date for date in dates if date >= common_start_date]

        if not dates:
            logger.warning("No common dates found for calculation after filtering.")
            return PerformanceResult()

        base_date = dates[0]
        initial_prices: dict[str, float] = {}
        for holding in holdings:
            initial_price = price_lookup.get(holding.symbol, {}).get(base_date)
            if initial_price is not None and initial_price > 0:
                initial_prices[holding.symbol] = initial_price
            else:
                logger.warning(
                    "Missing or invalid initial price for %s on %s",
                    holding.symbol,
                    base_date,
                )

        performance: list[PerformancePoint] = []
        for date in dates:
            weighted_value = 0.0
            total_weight = 0.0
            for holding in holdings:
                initial_price = initial_prices.get(holding.symbol)
                if initial_price is None:
                    continue
                price = price_lookup[holding.symbol].get(date)
                if price is None:
                    continue
                indexed = price / initial_price * 100
                weighted_value += indexed * (holding.weight / 100)
                total_weight += holding.weight / 100

            value = weighted_value / total_weight if total_weight > 0 else NEUTRAL_INDEX
            # Same half-to-even rounding as the weights.
            performance.append(PerformancePoint(date=date, value=round(value, 2)))

        return PerformanceResult(etf_performance=performance)
    except Exception:
        logger.exception("Error calculating ETF performance for %s", etf_name)
        return PerformanceResult(error=CALCULATION_ERROR)
