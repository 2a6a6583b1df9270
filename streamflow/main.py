"""Command-line entry point — run one turn against a producer and print the result.

Usage:
    python -m streamflow "Show me sci-fi recommendations"
    python -m streamflow --init
    STREAMFLOW_API_URL=http://localhost:3000/api/chat python -m streamflow -v "What's trending?"
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
from typing import Sequence

from streamflow.config import load_settings
from streamflow.session import ChatSession
from streamflow.state.merger import NotificationMergePolicy
from streamflow.telemetry import init_telemetry

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="streamflow", description=__doc__.splitlines()[0])
    parser.add_argument("message", nargs="*", help="text to send as the user turn")
    parser.add_argument("--init", action="store_true", help="send the dashboard initialization prompt first")
    parser.add_argument("--url", help="producer endpoint (overrides STREAMFLOW_API_URL)")
    parser.add_argument(
        "--notifications",
        choices=[p.value for p in NotificationMergePolicy],
        default=NotificationMergePolicy.REPLACE.value,
        help="how notification patches combine with existing ones",
    )
    parser.add_argument("--trace", action="store_true", help="export OpenTelemetry spans")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def _print_session(session: ChatSession) -> None:
    for entry in session.transcript:
        print(f"{entry.role.value:>9}: {entry.content}")

    state = session.state
    print()
    print(f"featured: {state.featured_content.title if state.featured_content else '-'}")
    print(f"recommendations: {len(state.recommendations)}  trending: {len(state.trending)}  "
          f"search: {len(state.search_results)}  continue watching: {len(state.continue_watching)}")
    for notification in session.visible_notifications:
        print(f"[{notification.kind.value}] {notification.message}")


async def _run(args: argparse.Namespace) -> int:
    settings = load_settings()
    if args.url:
        settings = dataclasses.replace(settings, api_url=args.url)

    async with ChatSession(settings, notification_policy=NotificationMergePolicy(args.notifications)) as session:
        if args.init:
            await session.initialize()
        text = " ".join(args.message)
        if text:
            await session.send(text)
        _print_session(session)
        return 1 if session.context.metrics["transport_errors"] else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.trace:
        init_telemetry()
    if not args.message and not args.init:
        logger.error("Nothing to send: pass a message or --init.")
        return 2
    return asyncio.run(_run(args))
