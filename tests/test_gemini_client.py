"""Tests for GeminiClient key rotation, streaming and prompt optimisation (no network)."""
import json
from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors as genai_errors

from app.services.gemini import (
    QUOTA_EXHAUSTED_MESSAGE,
    AllKeysExhaustedError,
    GeminiClient,
    GeminiError,
    is_quota_limit_error,
)


def _quota_error():
    return genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    )


def _server_error():
    return genai_errors.ServerError(
        500, {"error": {"code": 500, "message": "backend error", "status": "INTERNAL"}}
    )


async def _chunks(items):
    for item in items:
        if isinstance(item, Exception):
            raise item
        yield SimpleNamespace(text=item)


class FakeSdk:
    """
    Stands in for ``genai.Client``: ``handler(api_key, **kwargs)`` returns the
    response text (or a list of chunk texts for streams) or raises.
    """

    def __init__(self, api_key, handler, calls):
        self.api_key = api_key
        self.handler = handler
        self.calls = calls
        self.aio = SimpleNamespace(
            models=SimpleNamespace(
                generate_content=self._generate_content,
                generate_content_stream=self._generate_content_stream,
            )
        )

    async def _generate_content(self, **kwargs):
        self.calls.append((self.api_key, kwargs))
        return SimpleNamespace(text=self.handler(self.api_key, **kwargs))

    async def _generate_content_stream(self, **kwargs):
        self.calls.append((self.api_key, kwargs))
        return _chunks(self.handler(self.api_key, **kwargs))


def _client(handler, keys=("k1", "k2"), calls=None, **kwargs):
    calls = calls if calls is not None else []
    kwargs.setdefault("flush_chars", 5)
    kwargs.setdefault("chunk_delay", 0)
    kwargs.setdefault("paying_api_key", "")
    return GeminiClient(
        api_keys=list(keys),
        model="gemini-test",
        client_factory=lambda api_key: FakeSdk(api_key, handler, calls),
        **kwargs,
    )


async def _collect(gen):
    return [json.loads(line) async for line in gen]


@pytest.mark.asyncio
async def test_generate_text_sends_expected_request():
    calls = []
    client = _client(lambda key, **kw: "xin chào", calls=calls)
    assert await client.generate_text("hello") == "xin chào"

    key, kwargs = calls[0]
    assert key == "k1"
    assert kwargs["model"] == "gemini-test"
    assert kwargs["contents"] == "hello"
    assert kwargs["config"].thinking_config.thinking_budget == 0


@pytest.mark.asyncio
async def test_generate_text_reuses_one_sdk_client_per_key():
    created = []

    def factory(api_key):
        created.append(api_key)
        return FakeSdk(api_key, lambda key, **kw: "ok", [])

    client = GeminiClient(api_keys=["k1"], model="m", client_factory=factory)
    await client.generate_text("a")
    await client.generate_text("b")
    assert created == ["k1"]


@pytest.mark.asyncio
async def test_generate_text_rotates_past_failing_key():
    calls = []

    def handler(key, **kwargs):
        if key == "k1":
            raise _quota_error()
        return "ok"

    client = _client(handler, calls=calls)
    assert await client.generate_text("hi") == "ok"
    assert [key for key, _ in calls] == ["k1", "k2"]
    assert client.current_key_index == 1

    # The next call starts from the key that worked
    assert await client.generate_text("again") == "ok"
    assert calls[-1][0] == "k2"


@pytest.mark.asyncio
async def test_generate_text_all_keys_fail():
    calls = []

    def handler(key, **kwargs):
        raise _server_error()

    client = _client(handler, keys=("a", "b", "c"), calls=calls)
    with pytest.raises(AllKeysExhaustedError) as exc_info:
        await client.generate_text("hi")
    assert str(exc_info.value).startswith("All API keys have hit quota limits or failed")
    assert [key for key, _ in calls] == ["a", "b", "c"]
    assert client.current_key_index == 0


@pytest.mark.asyncio
async def test_generate_text_rotates_past_non_json_body():
    calls = []

    def handler(key, **kwargs):
        if key == "k1":
            # What decoding an HTML proxy error page raises
            json.loads("<html>proxy error</html>")
        return "ok"

    client = _client(handler, calls=calls)
    assert await client.generate_text("hi") == "ok"
    assert [key for key, _ in calls] == ["k1", "k2"]


@pytest.mark.asyncio
async def test_generate_text_non_json_on_every_key_is_a_gemini_error():
    def handler(key, **kwargs):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    with pytest.raises(AllKeysExhaustedError):
        await _client(handler).generate_text("hi")


@pytest.mark.asyncio
async def test_generate_text_transport_error_rotates():
    def handler(key, **kwargs):
        if key == "k1":
            raise httpx.ConnectError("connection refused")
        return "ok"

    assert await _client(handler).generate_text("hi") == "ok"


@pytest.mark.asyncio
async def test_generate_text_empty_response_is_empty_string():
    client = _client(lambda key, **kw: None)
    assert await client.generate_text("hi") == ""


@pytest.mark.asyncio
async def test_generate_text_without_keys():
    client = _client(lambda key, **kw: "x", keys=())
    assert client.is_configured is False
    with pytest.raises(GeminiError):
        await client.generate_text("hi")


@pytest.mark.asyncio
async def test_stream_text_buffers_chunks():
    calls = []
    client = _client(lambda key, **kw: ["Hel", "lo wor", "ld"], calls=calls)
    lines = await _collect(client.stream_text("hi"))
    assert lines == [{"chunk": "Hello wor"}, {"chunk": "ld"}]
    assert calls[0][1]["config"].thinking_config.thinking_budget == 0


@pytest.mark.asyncio
async def test_stream_text_retries_next_key_before_output():
    def handler(key, **kwargs):
        if key == "k1":
            raise _quota_error()
        return ["Hello world"]

    client = _client(handler)
    assert await _collect(client.stream_text("hi")) == [{"chunk": "Hello world"}]
    assert client.current_key_index == 1


@pytest.mark.asyncio
async def test_stream_text_reports_exhausted_keys():
    def handler(key, **kwargs):
        raise _quota_error()

    client = _client(handler)
    assert await _collect(client.stream_text("hi")) == [{"error": QUOTA_EXHAUSTED_MESSAGE}]


@pytest.mark.asyncio
async def test_stream_text_interrupted_after_output():
    calls = []
    client = _client(
        lambda key, **kw: ["First part", ValueError("truncated chunk")],
        calls=calls,
        flush_chars=1,
    )
    lines = await _collect(client.stream_text("hi"))
    assert lines == [{"chunk": "First part"}, {"error": "Generation was interrupted"}]
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_optimize_image_prompt_uses_paying_key():
    calls = []
    client = _client(lambda key, **kw: "  A fox in a meadow  ", calls=calls, paying_api_key="paid")
    assert await client.optimize_image_prompt("fox", "A fox.") == "A fox in a meadow"
    assert [key for key, _ in calls] == ["paid"]
    assert "fox" in calls[0][1]["contents"]


@pytest.mark.asyncio
async def test_optimize_image_prompt_errors():
    with pytest.raises(GeminiError):
        await _client(lambda key, **kw: "x").optimize_image_prompt("a", "b")

    empty = _client(lambda key, **kw: "   ", paying_api_key="paid")
    with pytest.raises(GeminiError):
        await empty.optimize_image_prompt("a", "b")

    def not_json(key, **kwargs):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    with pytest.raises(GeminiError, match="Failed to optimize image prompt"):
        await _client(not_json, paying_api_key="paid").optimize_image_prompt("a", "b")


def test_is_quota_limit_error():
    assert is_quota_limit_error(_quota_error())
    assert not is_quota_limit_error(_server_error())
    assert is_quota_limit_error(RuntimeError("Resource has been exhausted (e.g. check quota)."))
    assert not is_quota_limit_error(RuntimeError("connection reset"))
