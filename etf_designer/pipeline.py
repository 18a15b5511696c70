"""
ETF design pipeline.

query -> holdings -> per-symbol price histories -> performance -> narration.

Everything is streamed back as OpenBB SSE events: status steps while work
happens, a holdings table and a performance chart as artifacts, then the
model's narration as message chunks. The price history client is owned by the
caller; this module only uses it.
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Awaitable, TypeVar

import openai
from openai.types.chat import (
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)
from openbb_ai import chart, message_chunk, reasoning_step, table
from openbb_ai.models import MessageArtifactSSE, MessageChunkSSE, StatusUpdateSSE

from .config import Settings
from .holdings import generate_etf_holdings
from .models import ETFResult, PriceHistory
from .performance import calculate_etf_performance
from .prompts import SYSTEM_PROMPT
from .tools import PriceHistoryClient, PriceHistoryUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

PipelineEvent = MessageChunkSSE | StatusUpdateSSE | MessageArtifactSSE

NO_HOLDINGS_NOTE = "No holdings could be parsed from the model response for this query."
TOOL_UNAVAILABLE_NOTE = (
    "Performance could not be calculated because the price history tool is unavailable."
)
NO_COMMON_DATES_NOTE = (
    "Performance could not be calculated because the price histories share no common dates."
)


async def _bounded(awaitable: Awaitable[T], deadline: float) -> T:
    """Await with whatever is left of the request deadline (loop time)."""
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise asyncio.TimeoutError("Request deadline exceeded")
    return await asyncio.wait_for(awaitable, timeout=remaining)


def missing_prices_note(symbols: list[str]) -> str:
    return (
        "Performance could not be calculated due to missing or incomplete "
        f"price data for: {', '.join(symbols)}."
    )


def build_narration_messages(
    query: str, result: ETFResult
) -> list[ChatCompletionMessageParam]:
    context = "## ETF RESULT\n"
    context += json.dumps(result.model_dump(by_alias=True, exclude_none=True), indent=2)
    if result.note or result.error:
        context += "\n\n## NOTES\n"
        for line in (result.note, result.error):
            if line:
                context += f"- {line}\n"
    return [
        ChatCompletionSystemMessageParam(role="system", content=SYSTEM_PROMPT),
        ChatCompletionUserMessageParam(
            role="user", content=f"User query: {query}\n\n{context}"
        ),
    ]


async def design_etf(
    query: str,
    client: openai.AsyncOpenAI,
    price_client: PriceHistoryClient | None,
    settings: Settings,
    deadline: float,
) -> AsyncGenerator[PipelineEvent, None]:
    yield reasoning_step(
        event_type="INFO",
        message="Generating ETF holdings...",
        details={"query": query},
    )
    try:
        generated = await _bounded(
            generate_etf_holdings(query, client, settings.holdings_model), deadline
        )
    except openai.OpenAIError:
        logger.exception("Holdings generation failed")
        yield reasoning_step(
            event_type="ERROR", message="The text generation service is unavailable."
        )
        yield message_chunk(
            "I couldn't generate holdings for this ETF right now. Please try again later."
        )
        return

    result = ETFResult(etf_name=generated.etf_name, holdings=generated.holdings)

    if not result.holdings:
        yield reasoning_step(
            event_type="WARNING",
            message="Could not parse any holdings from the model response.",
            details={"etf_name": result.etf_name},
        )
        result.note = NO_HOLDINGS_NOTE
    else:
        yield table(
            data=[holding.model_dump(exclude_none=True) for holding in result.holdings],
            name=f"{result.etf_name} Holdings",
            description="Generated holdings with weights normalized to 100%.",
        )

        if price_client is None:
            yield reasoning_step(
                event_type="WARNING",
                message="Price history tool is unavailable, skipping performance.",
            )
            result.note = TOOL_UNAVAILABLE_NOTE
        else:
            # One symbol at a time, in holdings order, to stay inside the
            # provider's rate limit.
            histories: list[PriceHistory] = []
            failed: list[str] = []
            for holding in result.holdings:
                yield reasoning_step(
                    event_type="INFO",
                    message=f"Fetching price history for {holding.symbol}...",
                    details={
                        "symbol": holding.symbol,
                        "outputsize": settings.price_output_size,
                    },
                )
                try:
                    history = await _bounded(
                        price_client.fetch_price_history(
                            holding.symbol, settings.price_output_size
                        ),
                        deadline,
                    )
                except PriceHistoryUnavailable as e:
                    logger.warning(str(e))
                    failed.append(holding.symbol)
                    yield reasoning_step(
                        event_type="ERROR",
                        message=f"Failed to fetch price history for {holding.symbol}.",
                        details={"symbol": holding.symbol, "reason": e.reason},
                    )
                    continue
                histories.append(history)

            if failed:
                result.note = missing_prices_note(failed)
            else:
                yield reasoning_step(
                    event_type="INFO", message="Calculating ETF performance..."
                )
                performance = calculate_etf_performance(
                    result.etf_name, result.holdings, histories
                )
                result.etf_performance = performance.etf_performance
                result.error = performance.error
                if performance.error:
                    yield reasoning_step(event_type="ERROR", message=performance.error)
                elif not performance.etf_performance:
                    yield reasoning_step(
                        event_type="WARNING",
                        message="No common dates found across the price histories.",
                    )
                    result.note = NO_COMMON_DATES_NOTE
                else:
                    yield chart(
                        type="line",
                        data=[
                            point.model_dump() for point in performance.etf_performance
                        ],
                        x_key="date",
                        y_keys=["value"],
                        name=f"{result.etf_name} Performance",
                        description="Simulated weighted performance, indexed to 100.",
                    )

    async for event in narrate(query, result, client, settings, deadline):
        yield event


async def narrate(
    query: str,
    result: ETFResult,
    client: openai.AsyncOpenAI,
    settings: Settings,
    deadline: float,
) -> AsyncGenerator[MessageChunkSSE, None]:
    stream: Any = await _bounded(
        client.chat.completions.create(
            model=settings.narration_model,
            messages=build_narration_messages(query, result),
            stream=True,
        ),
        deadline,
    )
    try:
        while True:
            # Waiting for the next chunk counts against the deadline too.
            try:
                event = await _bounded(stream.__anext__(), deadline)
            except StopAsyncIteration:
                break
            if chunk := event.choices[0].delta.content:
                yield message_chunk(chunk)
    finally:
        await stream.close()
