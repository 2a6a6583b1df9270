"""Runtime settings for the stream client.

Values come from the process environment, pre-populated from a local ``.env``
file when one exists (``.env`` never overrides variables that are already
set). Unparseable numbers fall back to their defaults with a warning.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import load_dotenv

from streamflow.constants import (
    DEFAULT_API_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RESPONSE_NODE,
    ENV_API_URL,
    ENV_NOTIFICATION_TTL,
    ENV_REQUEST_TIMEOUT,
    ENV_RESPONSE_NODE,
    ENV_THREAD_ID,
    NOTIFICATION_TTL_SECONDS,
)
from streamflow.utils import generate_thread_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Everything a ``ChatSession`` needs to know about its environment."""

    api_url: str = DEFAULT_API_URL
    response_node: str = DEFAULT_RESPONSE_NODE
    notification_ttl: float = NOTIFICATION_TTL_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    thread_id: str = field(default_factory=generate_thread_id)


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[Config] %s=%r is not a number — using %s.", key, raw, default)
        return default
    if value <= 0:
        logger.warning("[Config] %s must be positive (got %s) — using %s.", key, value, default)
        return default
    return value


def load_settings(env: Mapping[str, str] | None = None, *, use_dotenv: bool = True) -> Settings:
    """Build :class:`Settings` from *env* (defaults to ``os.environ``).

    When *env* is omitted and *use_dotenv* is true, ``.env`` is loaded first.
    """
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = os.environ

    thread_id = env.get(ENV_THREAD_ID, "") or generate_thread_id()
    settings = Settings(
        api_url=env.get(ENV_API_URL, "") or DEFAULT_API_URL,
        response_node=env.get(ENV_RESPONSE_NODE, "") or DEFAULT_RESPONSE_NODE,
        notification_ttl=_read_float(env, ENV_NOTIFICATION_TTL, NOTIFICATION_TTL_SECONDS),
        request_timeout=_read_float(env, ENV_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT),
        thread_id=thread_id,
    )
    logger.debug("[Config] Loaded settings: %s", settings)
    return settings
