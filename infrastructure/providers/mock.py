"""Mock provider adapter for testing and offline runs."""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from domain.schemas import ChatMessage
from infrastructure.config.models import ModelConfig

from .base import Bounds, ParameterLimits, ProviderAdapter, ProviderDescriptor, RequestOptions
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

MOCK_DESCRIPTOR = ProviderDescriptor(
    id="mock",
    display_name="Mock",
    description="Scripted replies without network calls",
    default_base_url="http://localhost",
    default_model="mock-model",
    models=("mock-model",),
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=2, default=0.7),
        max_tokens=Bounds(min=1, max=100000, default=4096),
    ),
)


@dataclass(frozen=True)
class MockScript:
    """What the mock stream does.

    chunks: deltas to emit; None echoes the last user message word by word
    delay_s: pause before each chunk
    stall_after: stop producing (but never finish) after this many chunks
    error: raise RuntimeError(error) once all chunks are emitted
    """

    chunks: tuple[str, ...] | None = None
    delay_s: float = 0.0
    stall_after: int | None = None
    error: str | None = None


class MockAdapter(ProviderAdapter):
    """Mock adapter for testing without real API calls."""

    descriptor = MOCK_DESCRIPTOR

    def __init__(self, config: ModelConfig, *, script: MockScript | None = None, client: Any = None) -> None:
        self.script = script or MockScript()
        super().__init__(config, client=client)
        self.calls: list[tuple[list[ChatMessage], RequestOptions]] = []
        logger.info("Initialized Mock adapter (no real API calls will be made)")

    def _make_client(self) -> Any:
        return None

    def _chunks_for(self, messages: list[ChatMessage]) -> list[str]:
        if self.script.chunks is not None:
            return list(self.script.chunks)
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        words = f"Mock reply to: {last_user}".split(" ")
        return [w if i == 0 else f" {w}" for i, w in enumerate(words)]

    async def _iter_chunks(self, messages: list[ChatMessage], options: RequestOptions) -> AsyncIterator[str]:
        self.calls.append((messages, options))
        for i, chunk in enumerate(self._chunks_for(messages)):
            if self.script.stall_after is not None and i >= self.script.stall_after:
                break
            if self.script.delay_s:
                await asyncio.sleep(self.script.delay_s)
            yield chunk

        if self.script.stall_after is not None:
            logger.debug("Mock stream stalling after %d chunks", self.script.stall_after)
            await asyncio.Event().wait()

        if self.script.error is not None:
            raise RuntimeError(self.script.error)

    async def _complete(self, messages: list[ChatMessage], options: RequestOptions) -> str:
        parts = [chunk async for chunk in self._iter_chunks(messages, options)]
        return "".join(parts)


def register(registry: ProviderRegistry) -> None:
    registry.register(MOCK_DESCRIPTOR, MockAdapter.from_cfg)
