"""
Filter pipeline: an ordered chain of text-transforming middleware.

A stage that raises is logged and skipped; the next stage receives the last
successfully produced text. Stages may return a string or an awaitable.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

from domain.errors import AsyncStageInSyncPipelineError, FilterStageError

logger = logging.getLogger(__name__)

FAILED_STAGES_KEY = "failed_stages"


@dataclass
class FilterContext:
    """Shared state handed to every stage of one pipeline run."""

    original_response: str
    current_response: str
    feature: str
    preset_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class FilterMiddleware(ABC):
    """Base class for pipeline stages."""

    name: str = "Middleware"

    @abstractmethod
    def process(self, response: str, context: FilterContext) -> str | Awaitable[str]:
        """Return the transformed response (or an awaitable resolving to it)."""
        raise NotImplementedError

    def validate(self) -> bool | str:
        """Return True when the stage is usable, or a reason string."""
        return True


def _discard_awaitable(value: Any) -> None:
    close = getattr(value, "close", None)
    if callable(close):
        close()
        return
    cancel = getattr(value, "cancel", None)
    if callable(cancel):
        cancel()


class FilterPipeline:
    """Chains middleware to post-process response text."""

    def __init__(self, middleware: list[FilterMiddleware] | None = None) -> None:
        self._middleware: list[FilterMiddleware] = []
        for mw in middleware or []:
            self.use(mw)

    def use(self, middleware: FilterMiddleware) -> "FilterPipeline":
        result = middleware.validate()
        if result is not True:
            raise FilterStageError(middleware.name, f"validation failed: {result}")
        self._middleware.append(middleware)
        logger.debug("Added middleware: %s", middleware.name)
        return self

    def remove(self, name: str) -> bool:
        for i, mw in enumerate(self._middleware):
            if mw.name == name:
                del self._middleware[i]
                logger.debug("Removed middleware: %s", name)
                return True
        return False

    def clear(self) -> None:
        self._middleware = []

    def middleware_names(self) -> list[str]:
        return [mw.name for mw in self._middleware]

    def __len__(self) -> int:
        return len(self._middleware)

    async def execute(
        self,
        response: str,
        feature: str = "Unknown",
        preset_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        context = self._make_context(response, feature, preset_id, metadata)
        filtered = response

        for mw in list(self._middleware):
            context.current_response = filtered
            try:
                result = mw.process(filtered, context)
                if inspect.isawaitable(result):
                    result = await result
                filtered = self._accept(mw, filtered, result)
            except Exception:
                self._record_failure(mw, context)

        context.current_response = filtered
        return filtered

    def execute_sync(
        self,
        response: str,
        feature: str = "Unknown",
        preset_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Run the pipeline without an event loop.

        Raises:
            AsyncStageInSyncPipelineError: if any stage returns an awaitable.
        """
        context = self._make_context(response, feature, preset_id, metadata)
        filtered = response

        for mw in list(self._middleware):
            context.current_response = filtered
            try:
                result = mw.process(filtered, context)
            except Exception:
                self._record_failure(mw, context)
                continue

            if inspect.isawaitable(result):
                _discard_awaitable(result)
                raise AsyncStageInSyncPipelineError(mw.name)

            try:
                filtered = self._accept(mw, filtered, result)
            except FilterStageError:
                self._record_failure(mw, context)

        context.current_response = filtered
        return filtered

    @staticmethod
    def _make_context(
        response: str,
        feature: str,
        preset_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> FilterContext:
        return FilterContext(
            original_response=response,
            current_response=response,
            feature=feature,
            preset_id=preset_id,
            metadata=metadata if metadata is not None else {},
        )

    @staticmethod
    def _accept(mw: FilterMiddleware, before: str, result: Any) -> str:
        if not isinstance(result, str):
            raise FilterStageError(mw.name, f"returned {type(result).__name__}, expected str")
        if result != before:
            logger.debug("%s transformed response (%d -> %d chars)", mw.name, len(before), len(result))
        return result

    @staticmethod
    def _record_failure(mw: FilterMiddleware, context: FilterContext) -> None:
        logger.exception('Error in middleware "%s"; continuing with previous text', mw.name)
        context.metadata.setdefault(FAILED_STAGES_KEY, []).append(mw.name)
