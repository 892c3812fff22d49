"""
Opik tracing helpers.

Tracing is opt-in (ChatSettings.tracing_enabled): when off, nothing here touches
Opik, so the core runs without a configured backend.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import opik
from opik import opik_context, track

logger = logging.getLogger(__name__)

T = TypeVar("T")


def configure_tracing() -> None:
    """Configure the Opik client (reads OPIK_* env vars / ~/.opik.config)."""
    opik.configure()
    logger.info("Opik tracing configured")


def traced(name: str, fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Wrap a coroutine function in an Opik span.

    Inputs and outputs are not captured: request bodies may contain user text
    and streamed replies are delivered through callbacks anyway.
    """
    return track(name=name, capture_input=False, capture_output=False)(fn)


def annotate_span(*, name: str | None = None, metadata: dict[str, Any]) -> None:
    """Attach metadata to the current span. Only call inside a `traced` function."""
    kwargs: dict[str, Any] = {"metadata": metadata}
    if name is not None:
        kwargs["name"] = name
    opik_context.update_current_span(**kwargs)
