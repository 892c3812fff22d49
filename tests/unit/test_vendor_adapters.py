import asyncio
import types

import pytest

from domain.cancellation import CancelSignal
from domain.errors import CancelCause, ChatCoreError, EmptyConversationError, RequestCancelledError, VendorError
from domain.schemas import ChatMessage
from infrastructure.config.models import AnthropicReasoning, ModelConfig, MoonshotReasoning, XAIReasoning
from infrastructure.providers.anthropic import AnthropicAdapter
from infrastructure.providers.base import RequestOptions
from infrastructure.providers.deepseek import DEEPSEEK_WIRE
from infrastructure.providers.moonshot import MOONSHOT_WIRE
from infrastructure.providers.openai import OPENAI_WIRE
from infrastructure.providers.wire import OpenAICompatibleAdapter
from infrastructure.providers.xai import XAI_WIRE

MESSAGES = [
    ChatMessage(role="user", content="  Hello  "),
    ChatMessage(role="assistant", content=""),
    ChatMessage(role="user", content="How are you?"),
]


class FakeStream:
    """Async-iterable response with the close() the SDK streams expose."""

    def __init__(self, items, *, error: Exception | None = None) -> None:
        self._items = list(items)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for item in self._items:
            yield item
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        self.closed = True


def _openai_chunk(text: str | None):
    return types.SimpleNamespace(choices=[types.SimpleNamespace(delta=types.SimpleNamespace(content=text))])


def _fake_openai_client(stream: FakeStream, calls: list[dict]):
    async def create(**kwargs):
        calls.append(kwargs)
        if kwargs["stream"]:
            return stream
        message = types.SimpleNamespace(content="full reply")
        return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message)])

    return types.SimpleNamespace(chat=types.SimpleNamespace(completions=types.SimpleNamespace(create=create)))


def _compatible(wire, model: str, stream: FakeStream, calls: list[dict], **cfg) -> OpenAICompatibleAdapter:
    config = ModelConfig(provider=wire.descriptor.id, model=model, api_key="sk-test-123456", **cfg)
    return OpenAICompatibleAdapter(config, wire=wire, client=_fake_openai_client(stream, calls))


def test_compatible_stream_emits_deltas_in_order_and_closes_response() -> None:
    calls: list[dict] = []
    stream = FakeStream([_openai_chunk("Hel"), _openai_chunk(None), _openai_chunk("lo")])
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", stream, calls)
    received: list[str] = []

    asyncio.run(adapter.stream(MESSAGES, RequestOptions(system_prompt="Be brief", on_chunk=received.append)))

    assert received == ["Hel", "lo"]
    assert stream.closed
    request = calls[0]
    assert request["stream"] is True
    assert request["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hello"},
        {"role": "user", "content": "How are you?"},
    ]
    assert request["max_tokens"] == 4096
    assert request["temperature"] == 1


def test_compatible_send_returns_full_text() -> None:
    calls: list[dict] = []
    adapter = _compatible(OPENAI_WIRE, "gpt-4o-mini", FakeStream([]), calls)

    text = asyncio.run(adapter.send(MESSAGES, RequestOptions(max_tokens=100, temperature=0.2, stop_sequences=("END",))))

    assert text == "full reply"
    assert calls[0]["stream"] is False
    assert calls[0]["max_tokens"] == 100
    assert calls[0]["temperature"] == 0.2
    assert calls[0]["stop"] == ["END"]


def test_deepseek_reasoner_omits_temperature() -> None:
    calls: list[dict] = []
    adapter = _compatible(DEEPSEEK_WIRE, "deepseek-reasoner", FakeStream([]), calls)

    asyncio.run(adapter.send(MESSAGES))

    assert "temperature" not in calls[0]
    assert calls[0]["max_tokens"] == 4096


def test_vendor_payload_hooks() -> None:
    xai_calls: list[dict] = []
    xai = _compatible(XAI_WIRE, "grok-beta", FakeStream([]), xai_calls, reasoning=XAIReasoning(effort="high"))
    asyncio.run(xai.send(MESSAGES))
    assert xai_calls[0]["reasoning_effort"] == "high"

    kimi_calls: list[dict] = []
    kimi = _compatible(MOONSHOT_WIRE, "kimi-k2-thinking", FakeStream([]), kimi_calls, reasoning=MoonshotReasoning())
    asyncio.run(kimi.send(MESSAGES))
    assert kimi_calls[0]["extra_body"] == {"reasoning": True}


def test_stream_failure_is_wrapped_as_vendor_error() -> None:
    stream = FakeStream([_openai_chunk("partial")], error=RuntimeError("connection reset"))
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", stream, [])
    received: list[str] = []

    with pytest.raises(VendorError) as exc:
        asyncio.run(adapter.stream(MESSAGES, RequestOptions(on_chunk=received.append)))

    assert exc.value.provider == "openai"
    assert "connection reset" in str(exc.value)
    assert received == ["partial"]
    assert stream.closed


def test_stream_stops_after_signal_is_cancelled() -> None:
    signal = CancelSignal()
    stream = FakeStream([_openai_chunk("a"), _openai_chunk("b"), _openai_chunk("c")])
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", stream, [])
    received: list[str] = []

    def on_chunk(chunk: str) -> None:
        received.append(chunk)
        signal.cancel(CancelCause.USER)

    with pytest.raises(RequestCancelledError) as exc:
        asyncio.run(adapter.stream(MESSAGES, RequestOptions(on_chunk=on_chunk, signal=signal)))

    assert received == ["a"]
    assert exc.value.cause is CancelCause.USER


def test_already_cancelled_signal_makes_no_call() -> None:
    calls: list[dict] = []
    signal = CancelSignal()
    signal.cancel(CancelCause.SUPERSEDED)
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", FakeStream([]), calls)

    with pytest.raises(RequestCancelledError):
        asyncio.run(adapter.send(MESSAGES, RequestOptions(signal=signal)))

    assert calls == []


def test_empty_conversation_is_rejected() -> None:
    calls: list[dict] = []
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", FakeStream([]), calls)

    with pytest.raises(EmptyConversationError):
        asyncio.run(adapter.send([ChatMessage(role="user", content="   ")]))
    with pytest.raises(ChatCoreError):
        asyncio.run(adapter.stream([], RequestOptions(on_chunk=lambda c: None)))

    assert calls == []


def test_send_with_sink_streams_and_returns_accumulated_text() -> None:
    calls: list[dict] = []
    stream = FakeStream([_openai_chunk("x"), _openai_chunk(""), _openai_chunk("y")])
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", stream, calls)
    received: list[str] = []

    text = asyncio.run(adapter.send(MESSAGES, RequestOptions(on_chunk=received.append)))

    assert text == "xy"
    assert received == ["x", "y"]
    assert len(calls) == 1
    assert calls[0]["stream"] is True


class _ClosingClient:
    def __init__(self) -> None:
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1


def test_aclose_closes_sdk_client() -> None:
    client = _ClosingClient()
    config = ModelConfig(provider="openai", model="gpt-4o", api_key="sk-test-123456")
    adapter = OpenAICompatibleAdapter(config, wire=OPENAI_WIRE, client=client)

    asyncio.run(adapter.aclose())
    asyncio.run(adapter.aclose())

    assert client.close_calls == 2


def test_aclose_without_closable_client_is_a_no_op() -> None:
    adapter = _compatible(OPENAI_WIRE, "gpt-4o", FakeStream([]), [])

    asyncio.run(adapter.aclose())


def _anthropic(calls: list[dict], events, **cfg) -> AnthropicAdapter:
    stream = FakeStream(events)

    async def create(**kwargs):
        calls.append(kwargs)
        if kwargs.get("stream"):
            return stream
        blocks = [
            types.SimpleNamespace(type="thinking", thinking="..."),
            types.SimpleNamespace(type="text", text="Claude says hi"),
        ]
        return types.SimpleNamespace(content=blocks)

    client = types.SimpleNamespace(messages=types.SimpleNamespace(create=create))
    config = ModelConfig(provider="anthropic", model="claude-sonnet-4-20250514", api_key="sk-ant-test", **cfg)
    return AnthropicAdapter(config, client=client)


def _event(kind: str, delta_type: str | None = None, text: str = ""):
    delta = types.SimpleNamespace(type=delta_type, text=text) if delta_type else None
    return types.SimpleNamespace(type=kind, delta=delta)


def test_anthropic_stream_passes_only_text_deltas() -> None:
    calls: list[dict] = []
    events = [
        _event("message_start"),
        _event("content_block_delta", "thinking_delta"),
        _event("content_block_delta", "text_delta", "Hi"),
        _event("content_block_delta", "text_delta", " there"),
        _event("message_stop"),
    ]
    adapter = _anthropic(calls, events)
    received: list[str] = []

    asyncio.run(adapter.stream(MESSAGES, RequestOptions(system_prompt="sys", on_chunk=received.append)))

    assert received == ["Hi", " there"]
    assert calls[0]["system"] == "sys"
    assert calls[0]["temperature"] == 0.7
    assert "thinking" not in calls[0]


def test_anthropic_thinking_replaces_temperature() -> None:
    calls: list[dict] = []
    adapter = _anthropic(calls, [], max_tokens=4096, reasoning=AnthropicReasoning(budget_tokens=2048))

    text = asyncio.run(adapter.send(MESSAGES))

    assert text == "Claude says hi"
    assert calls[0]["thinking"] == {"type": "enabled", "budget_tokens": 2048}
    assert "temperature" not in calls[0]


def test_anthropic_thinking_skipped_when_call_budget_too_small() -> None:
    calls: list[dict] = []
    adapter = _anthropic(calls, [], max_tokens=4096, reasoning=AnthropicReasoning(budget_tokens=2048))

    asyncio.run(adapter.send(MESSAGES, RequestOptions(max_tokens=1024)))

    assert "thinking" not in calls[0]
    assert calls[0]["max_tokens"] == 1024
