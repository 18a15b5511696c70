from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    # Snake-case attributes, camelCase on the wire (etfName, etfPerformance).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Holding(_WireModel):
    symbol: str
    name: str
    weight: float
    country: str | None = None


class PricePoint(_WireModel):
    date: str
    price: float


class PriceHistory(_WireModel):
    symbol: str
    prices: list[PricePoint] = Field(default_factory=list)


class DailyPrice(_WireModel):
    """One day of a TIME_SERIES_DAILY payload."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float


class PerformancePoint(_WireModel):
    date: str
    value: float


class PerformanceResult(_WireModel):
    etf_performance: list[PerformancePoint] = Field(default_factory=list)
    error: str | None = None


class GeneratedHoldings(_WireModel):
    etf_name: str
    holdings: list[Holding] = Field(default_factory=list)


class ETFResult(_WireModel):
    etf_name: str
    holdings: list[Holding] = Field(default_factory=list)
    etf_performance: list[PerformancePoint] = Field(default_factory=list)
    error: str | None = None
    note: str | None = None
