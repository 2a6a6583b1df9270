"""Request phase — send transcript + state, open the event stream."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from streamflow.errors import ProducerRequestError, TransportError
from streamflow.pipeline.session_context import SessionContext
from streamflow.telemetry import get_tracer
from streamflow.transcript import Role, TranscriptEntry

logger = logging.getLogger(__name__)
tracer = get_tracer()


def _to_message(entry: TranscriptEntry) -> BaseMessage:
    if entry.role is Role.USER:
        return HumanMessage(content=entry.content)
    return AIMessage(content=entry.content)


def build_request_body(ctx: SessionContext) -> dict[str, Any]:
    """Return the JSON body the producer expects for the next turn."""
    messages = [_to_message(entry) for entry in ctx.transcript.entries]
    return {
        "input": {
            "messages": [{"type": m.type, "content": m.content} for m in messages],
            "uiState": ctx.merger.snapshot(),
        },
        "config": {"configurable": {"thread_id": ctx.thread_id}},
    }


def _error_text(raw: bytes, status_code: int) -> str:
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"HTTP {status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {status_code}"


@asynccontextmanager
async def open_event_stream(
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
) -> AsyncIterator[AsyncIterator[bytes]]:
    """POST *body* to *url* and yield the response's raw byte chunks.

    Raises ``ProducerRequestError`` for a non-2xx answer and ``TransportError``
    when the connection fails, including mid-stream.
    """
    with tracer.start_as_current_span("streamflow.request", attributes={"http.url": url}):
        try:
            async with client.stream(
                "POST",
                url,
                json=body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if not response.is_success:
                    raw = await response.aread()
                    message = _error_text(raw, response.status_code)
                    logger.error("[Transport] Producer answered %d: %s", response.status_code, message)
                    raise ProducerRequestError(message, status_code=response.status_code)
                logger.info("[Transport] Stream opened (%d, %s).", response.status_code,
                            response.headers.get("content-type", "?"))
                yield response.aiter_bytes()
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
