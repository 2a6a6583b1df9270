"""Stream phase — decode, classify and dispatch every record in arrival order."""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterable, Optional

from streamflow.errors import ErrorCode, StreamError
from streamflow.pipeline.session_context import SessionContext
from streamflow.stream.events import EventMode, EventRecord, ProducerError, classify, decode_message_chunk
from streamflow.stream.frames import iter_payloads
from streamflow.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()


@dataclass
class StreamOutcome:
    token_deltas: int = 0
    node_updates: int = 0
    snapshots: int = 0
    ignored: int = 0
    producer_error: Optional[str] = None

    @property
    def records(self) -> int:
        return self.token_deltas + self.node_updates + self.snapshots


def dispatch_record(record: EventRecord, ctx: SessionContext, outcome: StreamOutcome) -> None:
    """Route one record to the accumulator or the merger."""
    if record.mode is EventMode.TOKEN_DELTA:
        outcome.token_deltas += 1
        chunk = decode_message_chunk(record, ctx.debug)
        if chunk is not None:
            ctx.accumulator.ingest_delta(chunk)
    elif record.mode is EventMode.NODE_UPDATE:
        outcome.node_updates += 1
        ctx.merger.ingest_record(record)
    else:
        outcome.snapshots += 1
        ctx.merger.ingest_snapshot(record)


def _surface_producer_error(error: ProducerError, ctx: SessionContext) -> None:
    ctx.metrics["producer_errors"] += 1
    envelope = StreamError(
        code=ErrorCode.E_PRODUCER_ERROR,
        message=error.message,
        recoverable=True,
        thread_id=ctx.thread_id,
    )
    logger.warning("[Stream] Producer reported an error: %s (thread=%s)", error.message, ctx.thread_id)
    ctx.merger.add_notification(envelope.to_notification())


async def consume_stream(chunks: AsyncIterable[bytes], ctx: SessionContext) -> StreamOutcome:
    """Drive the whole pipeline over *chunks* until ``[DONE]``, end of stream or an error record.

    Cancelling the awaiting task stops reading immediately; nothing is
    dispatched after the cancellation point.
    """
    outcome = StreamOutcome()
    with tracer.start_as_current_span("streamflow.stream", attributes={"thread.id": ctx.thread_id}) as span:
        async with aclosing(iter_payloads(chunks, ctx.debug)) as payloads:
            async for payload in payloads:
                event = classify(payload)
                if event is None:
                    outcome.ignored += 1
                    continue
                if isinstance(event, ProducerError):
                    outcome.producer_error = event.message
                    _surface_producer_error(event, ctx)
                    break
                dispatch_record(event, ctx, outcome)

        ctx.metrics["record_count"] += outcome.records
        span.set_attribute("stream.token_deltas", outcome.token_deltas)
        span.set_attribute("stream.node_updates", outcome.node_updates)
        span.set_attribute("stream.snapshots", outcome.snapshots)
        span.set_attribute("stream.ignored", outcome.ignored)
        span.set_attribute("stream.producer_error", outcome.producer_error is not None)

    logger.info(
        "[Stream] Done: %d deltas, %d updates, %d snapshots, %d ignored.",
        outcome.token_deltas,
        outcome.node_updates,
        outcome.snapshots,
        outcome.ignored,
    )
    return outcome
