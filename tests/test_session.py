"""ChatSession tests against an in-process producer served over ASGI.

Run:
    pytest tests/test_session.py -v
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from httpx import ASGITransport, AsyncClient

from streamflow.config import Settings
from streamflow.constants import GENERIC_FAILURE_MESSAGE, INITIALIZE_PROMPT
from streamflow.debug import StreamDebugLogger
from streamflow.session import ChatSession
from streamflow.transcript import Role
from wire import DONE_LINE, ai_message, chunk_message, content_item, data_line, notification, updates

API_URL = "http://test/api/chat"


def _settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"api_url": API_URL, "thread_id": "session-test", "notification_ttl": 60.0}
    values.update(overrides)
    return Settings(**values)


def _producer(turns: list[list[str]], captured: list[dict]) -> FastAPI:
    """A producer that answers the N-th request with the N-th list of lines."""
    app = FastAPI()

    @app.post("/api/chat")
    async def chat(request: Request):
        captured.append(await request.json())
        lines = turns[min(len(captured), len(turns)) - 1]

        async def body():
            for line in lines:
                yield line.encode("utf-8")

        return StreamingResponse(body(), media_type="text/event-stream")

    return app


def _session(app: FastAPI, **settings: Any) -> ChatSession:
    client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return ChatSession(_settings(**settings), client=client, debug=StreamDebugLogger())


GREETING = [
    data_line(chunk_message("Hel")),
    data_line(chunk_message("lo!")),
    data_line(updates(model={
        "uiState": {"recommendations": [content_item()], "recommendationReason": "Popular now"},
        "messages": [ai_message("Hello!")],
    })),
    DONE_LINE,
]


# ---------------------------------------------------------------------------
# 1. Successful turns
# ---------------------------------------------------------------------------


class TestSend:
    @pytest.mark.asyncio
    async def test_turn_updates_transcript_and_state(self):
        captured: list[dict] = []
        async with _session(_producer([GREETING], captured)) as session:
            outcome = await session.send("  hi  ")

            assert outcome is not None
            assert [(e.role, e.content) for e in session.transcript] == [
                (Role.USER, "hi"),
                (Role.ASSISTANT, "Hello!"),
            ]
            assert session.state.recommendation_reason == "Popular now"
            assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_request_body_carries_history_state_and_thread(self):
        captured: list[dict] = []
        async with _session(_producer([GREETING, [DONE_LINE]], captured)) as session:
            await session.send("hi")
            await session.send("more like this")

        first, second = captured
        assert first["input"]["messages"] == [{"type": "human", "content": "hi"}]
        assert first["input"]["uiState"]["recommendations"] == []
        assert second["input"]["messages"] == [
            {"type": "human", "content": "hi"},
            {"type": "ai", "content": "Hello!"},
            {"type": "human", "content": "more like this"},
        ]
        assert second["input"]["uiState"]["recommendationReason"] == "Popular now"
        assert second["config"] == {"configurable": {"thread_id": "session-test"}}

    @pytest.mark.asyncio
    async def test_initialize_sends_dashboard_prompt(self):
        captured: list[dict] = []
        async with _session(_producer([[DONE_LINE]], captured)) as session:
            await session.initialize()
        assert captured[0]["input"]["messages"][0]["content"] == INITIALIZE_PROMPT

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self):
        captured: list[dict] = []
        async with _session(_producer([GREETING], captured)) as session:
            assert await session.send("   ") is None
            assert session.transcript == ()
        assert captured == []

    @pytest.mark.asyncio
    async def test_input_while_loading_is_ignored(self):
        captured: list[dict] = []
        async with _session(_producer([GREETING], captured)) as session:
            session.context.is_loading = True
            assert await session.send("hi") is None
            assert session.transcript == ()
        assert captured == []


# ---------------------------------------------------------------------------
# 2. Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_http_error_adds_one_generic_message(self):
        app = FastAPI()

        @app.post("/api/chat")
        async def chat():
            return JSONResponse({"error": "Upstream exploded"}, status_code=500)

        async with _session(app) as session:
            assert await session.send("hi") is None
            assert [e.content for e in session.transcript] == ["hi", GENERIC_FAILURE_MESSAGE]
            assert session.is_loading is False
            assert session.context.metrics["transport_errors"] == 1
            assert session.last_error.code == "E_TRANSPORT_FAILED"
            assert session.last_error.message == "Upstream exploded"
            assert session.last_error.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_drop_mid_stream_keeps_partial_text(self):
        class _ResetAfterFirstChunk(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield data_line(chunk_message("Hel")).encode("utf-8")
                raise httpx.ReadError("connection reset by peer")

        def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                stream=_ResetAfterFirstChunk(),
            )

        client = AsyncClient(transport=httpx.MockTransport(reply))
        async with ChatSession(_settings(), client=client, debug=StreamDebugLogger()) as session:
            assert await session.send("hi") is None
            assert [e.content for e in session.transcript] == ["hi", "Hel", GENERIC_FAILURE_MESSAGE]
            assert session.is_loading is False
            assert session.last_error.details["status_code"] is None

    @pytest.mark.asyncio
    async def test_undecodable_line_does_not_abort_turn(self):
        turn = [
            data_line(updates(tools={"uiState": {"searchQuery": "a"}})),
            "data: " + "[" * 100_000 + "\n",
            data_line(updates(tools={"uiState": {"searchQuery": "b"}})),
            DONE_LINE,
        ]
        async with _session(_producer([turn], [])) as session:
            outcome = await session.send("search")
            assert outcome is not None
            assert outcome.node_updates == 2
            assert session.state.search_query == "b"
            assert session.last_error is None

    @pytest.mark.asyncio
    async def test_connection_failure_adds_one_generic_message(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = AsyncClient(transport=httpx.MockTransport(refuse))
        async with ChatSession(_settings(), client=client, debug=StreamDebugLogger()) as session:
            await session.send("hi")
            assert [e.content for e in session.transcript] == ["hi", GENERIC_FAILURE_MESSAGE]

    @pytest.mark.asyncio
    async def test_state_survives_a_failed_turn(self):
        captured: list[dict] = []
        app = _producer([GREETING], captured)
        async with _session(app) as session:
            await session.send("hi")
            session.settings = _settings(api_url="http://test/missing")
            await session.send("again")
            assert len(session.state.recommendations) == 1
            assert session.transcript[-1].content == GENERIC_FAILURE_MESSAGE


# ---------------------------------------------------------------------------
# 3. Notifications and search
# ---------------------------------------------------------------------------


class TestUserActions:
    @pytest.mark.asyncio
    async def test_dismiss_notification(self):
        turn = [data_line(updates(tools={"uiState": {"notifications": [notification("n1", "Added")]}})), DONE_LINE]
        async with _session(_producer([turn], [])) as session:
            await session.send("add to watchlist")
            assert [n.message for n in session.visible_notifications] == ["Added"]

            assert session.dismiss_notification("n1") is True
            assert session.visible_notifications == []
            assert session.state.notifications == []
            assert session.dismiss_notification("n1") is False

    @pytest.mark.asyncio
    async def test_clear_search(self):
        turn = [data_line(updates(tools={"uiState": {"searchQuery": "q", "searchResults": [content_item()]}})), DONE_LINE]
        async with _session(_producer([turn], [])) as session:
            await session.send("search q")
            session.clear_search()
            assert session.state.search_query is None
            assert session.state.search_results == []
