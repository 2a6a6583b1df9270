"""ChatSession — one conversation between the dashboard and the assistant.

Per turn:
  1. The user's text is appended to the transcript and a new turn starts
     (rolling buffer, open bubble and suppression are reset).
  2. Transcript + current state are POSTed to the producer.
  3. The event stream is consumed record by record until ``[DONE]``.

A turn that cannot reach the stream (connection failure, non-2xx answer, drop
mid-stream) ends with one generic assistant message; the transcript and state
built so far are kept as they are.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from streamflow.config import Settings, load_settings
from streamflow.constants import GENERIC_FAILURE_MESSAGE, INITIALIZE_PROMPT
from streamflow.debug import StreamDebugLogger, debug_logger
from streamflow.errors import StreamError, TransportError
from streamflow.pipeline.request_phase import build_request_body, open_event_stream
from streamflow.pipeline.session_context import SessionContext
from streamflow.pipeline.stream_phase import StreamOutcome, consume_stream
from streamflow.state.merger import NotificationMergePolicy
from streamflow.state.models import NotificationRecord, StateDocument
from streamflow.telemetry import get_tracer
from streamflow.transcript import TranscriptEntry

logger = logging.getLogger(__name__)
tracer = get_tracer()


class ChatSession:
    """Drives turns against the producer and exposes transcript + state to the UI."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        notification_policy: NotificationMergePolicy = NotificationMergePolicy.REPLACE,
        debug: StreamDebugLogger = debug_logger,
    ) -> None:
        self.settings = settings or load_settings()
        self.context = SessionContext.create(
            self.settings,
            notification_policy=notification_policy,
            debug=debug,
        )
        self.last_error: Optional[StreamError] = None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        logger.info("[Session] New thread: %s → %s", self.settings.thread_id, self.settings.api_url)

    async def __aenter__(self) -> ChatSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Views for the UI
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        return self.context.transcript.entries

    @property
    def state(self) -> StateDocument:
        return self.context.merger.state

    @property
    def visible_notifications(self) -> list[NotificationRecord]:
        return self.context.notifications.visible

    @property
    def is_loading(self) -> bool:
        return self.context.is_loading

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def send(self, text: str) -> Optional[StreamOutcome]:
        """Run one turn for *text*.

        Blank input and input arriving while a turn is in flight are ignored
        (returns ``None``). Transport failures are surfaced in the transcript,
        not raised.
        """
        ctx = self.context
        content = text.strip()
        if not content:
            logger.debug("[Session] Ignoring blank input.")
            return None
        if ctx.is_loading:
            logger.info("[Session] Turn in flight — ignoring input: %.80s", content)
            return None

        ctx.is_loading = True
        self.last_error = None
        ctx.metrics["turn_count"] += 1
        ctx.transcript.add_user(content)
        ctx.accumulator.start_turn()
        body = build_request_body(ctx)

        with tracer.start_as_current_span(
            "streamflow.turn",
            attributes={
                "thread.id": ctx.thread_id,
                "turn.number": ctx.metrics["turn_count"],
                "input.len": len(content),
            },
        ):
            try:
                async with open_event_stream(self._client, self.settings.api_url, body) as chunks:
                    return await consume_stream(chunks, ctx)
            except TransportError as exc:
                self._surface_transport_error(exc)
                return None
            finally:
                ctx.is_loading = False

    async def initialize(self) -> Optional[StreamOutcome]:
        """Ask the assistant to populate the dashboard (first load)."""
        return await self.send(INITIALIZE_PROMPT)

    def dismiss_notification(self, notification_id: str) -> bool:
        """User closed a toast. Returns ``False`` if the id was unknown."""
        if self.context.notifications.dismiss(notification_id):
            return True
        return self.context.merger.remove_notification(notification_id)

    def clear_search(self) -> None:
        self.context.merger.clear_search()

    async def aclose(self) -> None:
        """Cancel notification timers and release the HTTP client."""
        self.context.notifications.close()
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _surface_transport_error(self, exc: TransportError) -> StreamError:
        ctx = self.context
        ctx.metrics["transport_errors"] += 1
        envelope = StreamError(
            code=exc.code,
            message=str(exc),
            recoverable=True,
            thread_id=ctx.thread_id,
            details={"turn": ctx.metrics["turn_count"], "status_code": exc.status_code},
        )
        logger.error("[Session] Turn failed: %s", envelope.to_dict(), exc_info=True)
        ctx.accumulator.start_turn()
        ctx.transcript.add_assistant(GENERIC_FAILURE_MESSAGE)
        self.last_error = envelope
        return envelope
