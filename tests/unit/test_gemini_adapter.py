import asyncio
import json

import httpx
import pytest

from domain.errors import VendorError
from domain.schemas import ChatMessage
from infrastructure.config.models import GeminiReasoning, ModelConfig
from infrastructure.providers.base import RequestOptions
from infrastructure.providers.gemini import GeminiAdapter, to_gemini_contents


def _sse(*payloads: dict) -> bytes:
    return "".join(f"data: {json.dumps(p)}\r\n\r\n" for p in payloads).encode()


def _candidate(*parts: dict) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def _adapter(handler, **cfg) -> GeminiAdapter:
    config = ModelConfig(provider="gemini", model="gemini-2.5-flash", api_key="AIzaTestKey", **cfg)
    client = httpx.AsyncClient(
        base_url="https://generativelanguage.googleapis.com",
        transport=httpx.MockTransport(handler),
    )
    return GeminiAdapter(config, client=client)


def test_system_prompt_is_merged_into_first_user_turn() -> None:
    contents = to_gemini_contents(
        [
            ChatMessage(role="assistant", content="Earlier answer"),
            ChatMessage(role="user", content="Question"),
        ],
        "Be terse",
    )

    assert contents == [
        {"role": "model", "parts": [{"text": "Earlier answer"}]},
        {"role": "user", "parts": [{"text": "Be terse\n\nQuestion"}]},
    ]


def test_system_prompt_without_user_turn_becomes_its_own_turn() -> None:
    contents = to_gemini_contents([ChatMessage(role="assistant", content="Hi")], "Rules")

    assert contents[0] == {"role": "user", "parts": [{"text": "Rules"}]}
    assert len(contents) == 2


def test_stream_reads_sse_and_skips_thought_parts() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = _sse(
            _candidate({"text": "thinking...", "thought": True}),
            _candidate({"text": "Hello"}),
            _candidate({"text": ", world"}),
        )
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    adapter = _adapter(handler, reasoning=GeminiReasoning(budget_tokens=0))
    received: list[str] = []

    asyncio.run(
        adapter.stream(
            [ChatMessage(role="user", content="Hi")],
            RequestOptions(temperature=0.4, max_tokens=512, on_chunk=received.append),
        )
    )

    assert received == ["Hello", ", world"]
    request = seen[0]
    assert request.url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
    assert request.url.params["alt"] == "sse"
    payload = json.loads(request.content)
    assert payload["generationConfig"] == {
        "maxOutputTokens": 512,
        "temperature": 0.4,
        "thinkingConfig": {"thinkingBudget": 0},
    }


def test_http_error_surfaces_vendor_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "API key not valid"}})

    adapter = _adapter(handler)

    with pytest.raises(VendorError) as exc:
        asyncio.run(adapter.stream([ChatMessage(role="user", content="Hi")], RequestOptions(on_chunk=lambda c: None)))

    assert "API key not valid" in str(exc.value)


def test_send_uses_generate_content() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith(":generateContent")
        return httpx.Response(200, json=_candidate({"text": "Done"}))

    adapter = _adapter(handler)

    assert asyncio.run(adapter.send([ChatMessage(role="user", content="Hi")])) == "Done"
