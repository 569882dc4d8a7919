# Tests for the inference client against an in-process fake upstream

import json

import httpx
import pytest

from advisor.errors import UpstreamInferenceError
from advisor.models import ChatMessage
from advisor.services.inference_client import InferenceClient

from conftest import completion_body, mock_http_client, stream_body

MESSAGES = [ChatMessage(role="system", content="be brief"), ChatMessage(role="user", content="hello")]


def make_client(handler, api_key="sk-test"):
    return InferenceClient(api_key=api_key, base_url="https://llm.test/v1", http_client=mock_http_client(handler))


@pytest.mark.asyncio
async def test_complete_sends_full_conversation_and_returns_content():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion_body('{"completed_codes": ["CS101"]}'))

    client = make_client(handler)
    out = await client.complete(MESSAGES, json_mode=True)

    assert out == '{"completed_codes": ["CS101"]}'
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["stream"] is False
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_text_mode_has_no_response_format_and_honours_model():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion_body("plain text"))

    out = await make_client(handler).complete(MESSAGES, model="gpt-4o")
    assert out == "plain text"
    assert "response_format" not in seen["body"]
    assert seen["body"]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=completion_body("x"))

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler, api_key=None).complete(MESSAGES)
    assert exc.value.stage == "missing_credential"
    assert calls == []


@pytest.mark.asyncio
async def test_http_status_error_captures_truncated_body():
    def handler(request):
        return httpx.Response(429, text="x" * 2000)

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler).complete(MESSAGES)
    assert exc.value.stage == "http_status"
    assert exc.value.status == 429
    assert exc.value.status_code == 502
    assert "x" * 500 in exc.value.detail
    assert "x" * 501 not in exc.value.detail


@pytest.mark.asyncio
async def test_embedded_application_error():
    def handler(request):
        return httpx.Response(200, json={"error": {"message": "model overloaded", "type": "server_error"}})

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler).complete(MESSAGES)
    assert exc.value.stage == "app_error"
    assert "model overloaded" in exc.value.detail


@pytest.mark.asyncio
async def test_zero_choices_is_empty_result():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler).complete(MESSAGES)
    assert exc.value.stage == "empty_result"


@pytest.mark.asyncio
async def test_non_json_body_is_decode_error():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler).complete(MESSAGES)
    assert exc.value.stage == "decode"


@pytest.mark.asyncio
async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamInferenceError) as exc:
        await make_client(handler).complete(MESSAGES)
    assert exc.value.stage == "transport"


@pytest.mark.asyncio
async def test_stream_yields_deltas_and_skips_noise():
    body = b": keep-alive\n\ndata: not-json\n\n" + stream_body(["Hel", "lo", "\nworld"]) + \
        b"data: " + json.dumps({"choices": [{"delta": {"content": "after done"}}]}).encode() + b"\n\n"

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    tokens = [t async for t in make_client(handler).stream_complete(MESSAGES)]
    assert tokens == ["Hel", "lo", "\nworld"]


@pytest.mark.asyncio
async def test_stream_skips_chunks_without_content():
    body = (
        b'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
        b'data: {"choices": [{"delta": {"content": "ok"}}]}\n\n'
        b"data: [DONE]\n\n"
    )

    def handler(request):
        return httpx.Response(200, content=body)

    assert [t async for t in make_client(handler).stream_complete(MESSAGES)] == ["ok"]


@pytest.mark.asyncio
async def test_stream_non_2xx_raises_http_status():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    with pytest.raises(UpstreamInferenceError) as exc:
        async for _ in make_client(handler).stream_complete(MESSAGES):
            pass
    assert exc.value.stage == "http_status"
    assert exc.value.status == 401
