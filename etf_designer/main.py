import asyncio
import logging
import os
from typing import AsyncGenerator

import openai
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openbb_ai import message_chunk, reasoning_step
from openbb_ai.models import QueryRequest
from sse_starlette.sse import EventSourceResponse

from .config import Settings
from .pipeline import design_etf
from .tools import PriceHistoryClient

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

INTERNAL_ERROR = "An internal server error occurred."

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/agents.json")
def get_copilot_description():
    """Agent descriptor for the OpenBB Workspace."""
    return JSONResponse(
        content={
            "etf_designer": {
                "name": "ETF Designer",
                "description": "Designs a synthetic ETF from a theme: weighted holdings plus a simulated, indexed performance history.",
                "image": "https://github.com/OpenBB-finance/copilot-for-terminal-pro/assets/14093308/7da2a512-93b9-478d-90bc-b8c3dd0cabcf",
                "endpoints": {"query": "/v1/query"},
                "features": {
                    "streaming": True,
                    "widget-dashboard-select": False,
                    "widget-dashboard-search": False,
                },
            }
        }
    )


def latest_user_query(request: QueryRequest) -> str | None:
    """Text of the most recent human message, if any."""
    for message in reversed(request.messages):
        if message.role == "human" and isinstance(message.content, str):
            return message.content
    return None


@app.post("/v1/query")
async def query(request: QueryRequest) -> EventSourceResponse:
    """Design an ETF from the latest user message and stream the result."""
    if not request.messages:
        return JSONResponse(
            status_code=400, content={"detail": "messages list cannot be empty"}
        )  # type: ignore[return-value]

    try:
        user_query = latest_user_query(request)
        settings = Settings.from_env()
    except Exception:
        logger.exception("Error in POST /v1/query")
        return JSONResponse(
            status_code=500, content={"error": INTERNAL_ERROR}
        )  # type: ignore[return-value]

    if not user_query:
        return JSONResponse(
            status_code=400, content={"detail": "no user message to design an ETF from"}
        )  # type: ignore[return-value]

    async def execution_loop() -> AsyncGenerator[dict, None]:
        deadline = asyncio.get_running_loop().time() + settings.request_timeout
        # Opened here so it lives exactly as long as the stream.
        price_client = PriceHistoryClient.from_settings(settings)
        try:
            async with openai.AsyncOpenAI() as client:
                async for event in design_etf(
                    user_query, client, price_client, settings, deadline
                ):
                    yield event.model_dump(exclude_none=True)
        except asyncio.TimeoutError:
            logger.warning(
                "Request exceeded %ss, abandoning pending calls", settings.request_timeout
            )
            yield reasoning_step(
                event_type="ERROR", message="The request timed out."
            ).model_dump(exclude_none=True)
            yield message_chunk(
                "Designing this ETF took too long and was stopped. Please try again."
            ).model_dump(exclude_none=True)
        except openai.OpenAIError:
            logger.exception("Text generation service error")
            yield reasoning_step(
                event_type="ERROR", message="The text generation service is unavailable."
            ).model_dump(exclude_none=True)
            yield message_chunk(INTERNAL_ERROR).model_dump(exclude_none=True)
        except Exception:
            logger.exception("Error while designing ETF")
            yield reasoning_step(event_type="ERROR", message=INTERNAL_ERROR).model_dump(
                exclude_none=True
            )
            yield message_chunk(INTERNAL_ERROR).model_dump(exclude_none=True)
        finally:
            if price_client is not None:
                await price_client.close()

    return EventSourceResponse(
        content=execution_loop(),
        media_type="text/event-stream",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("etf_designer.main:app", host="0.0.0.0", port=7777, reload=True)
