# Inference Client - OpenAI-compatible chat completions
# Non-streaming calls for the generation pipelines, incremental deltas for the chat relay.
# No retries: every failure is surfaced to the caller, which decides to abort or degrade.

import json
import logging
import time
from contextlib import suppress
from typing import AsyncIterator, Dict, Optional, Sequence

import httpx

from ..config import DEFAULT_MODEL, DEFAULT_OPENAI_BASE
from ..errors import UpstreamInferenceError
from ..models import ChatMessage
from ..utils.metrics import inference_latency_seconds, inference_requests_total

logger = logging.getLogger(__name__)

ERROR_BODY_LIMIT = 500


def _truncate(s: str, n: int) -> str:
    if len(s) <= n:
        return s
    return s[:n] + "...(truncated)"


class InferenceClient:
    """
    Thin async client for a generative-completion service.

    - One persistent httpx.AsyncClient (injected for tests) with a multi-minute timeout
    - Optional strict-JSON response mode for the generation pipelines
    - Streaming mode yields text deltas and closes the upstream response when the consumer stops
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_OPENAI_BASE,
        default_model: str = DEFAULT_MODEL,
        timeout_s: float = 480.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model or DEFAULT_MODEL
        self.timeout_s = timeout_s
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s, connect=10.0))

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise UpstreamInferenceError("missing_credential", "no inference API key configured")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, messages: Sequence[ChatMessage], model: Optional[str], stream: bool, json_mode: bool) -> dict:
        payload = {
            "model": model or self.default_model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        """Send the whole conversation and return the first choice's content"""
        mode = "json" if json_mode else "text"
        headers = self._headers()
        payload = self._payload(messages, model, stream=False, json_mode=json_mode)
        logger.info(f"Inference request: model={payload['model']}, messages={len(messages)}, json_mode={json_mode}")

        t0 = time.perf_counter()
        try:
            resp = await self.client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            inference_requests_total.labels(mode=mode, outcome="transport").inc()
            raise UpstreamInferenceError("transport", f"failed to reach inference service: {e}")
        finally:
            inference_latency_seconds.observe(time.perf_counter() - t0)

        if resp.status_code >= 400:
            inference_requests_total.labels(mode=mode, outcome="http_status").inc()
            body = _truncate(resp.text, ERROR_BODY_LIMIT)
            raise UpstreamInferenceError(
                "http_status", f"inference service returned {resp.status_code}: {body}", status=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as e:
            inference_requests_total.labels(mode=mode, outcome="decode").inc()
            logger.error(f"Invalid inference response body: {_truncate(resp.text, ERROR_BODY_LIMIT)}")
            raise UpstreamInferenceError("decode", f"invalid inference response: {e}")
        if not isinstance(data, dict):
            inference_requests_total.labels(mode=mode, outcome="decode").inc()
            raise UpstreamInferenceError("decode", "inference response is not a JSON object")

        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            inference_requests_total.labels(mode=mode, outcome="app_error").inc()
            raise UpstreamInferenceError("app_error", f"{err.get('message')} ({err.get('type', 'unknown')})")

        choices = data.get("choices")
        if choices is not None and not isinstance(choices, list):
            inference_requests_total.labels(mode=mode, outcome="decode").inc()
            raise UpstreamInferenceError("decode", "'choices' is not a list")
        if not choices:
            inference_requests_total.labels(mode=mode, outcome="empty_result").inc()
            raise UpstreamInferenceError("empty_result", "inference response had no choices")

        try:
            content = choices[0]["message"].get("content") or ""
        except (KeyError, TypeError, AttributeError) as e:
            inference_requests_total.labels(mode=mode, outcome="decode").inc()
            raise UpstreamInferenceError("decode", f"unexpected choice shape: {e}")

        inference_requests_total.labels(mode=mode, outcome="success").inc()
        logger.info(f"Inference response (first 200 chars): {_truncate(content, 200)}")
        return content

    async def stream_complete(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream text deltas from the upstream.

        Only `data:` lines count, `[DONE]` ends the loop, and lines that don't decode are
        skipped so keep-alive noise never kills a stream. Leaving the async-with (normal end,
        aclose() or cancellation) closes the upstream response.
        """
        headers = self._headers()
        payload = self._payload(messages, model, stream=True, json_mode=False)
        try:
            async with self.client.stream("POST", self.url, headers=headers, json=payload) as r:
                if r.status_code >= 400:
                    body = (await r.aread()).decode("utf-8", errors="replace")
                    inference_requests_total.labels(mode="stream", outcome="http_status").inc()
                    raise UpstreamInferenceError(
                        "http_status",
                        f"inference service returned {r.status_code}: {_truncate(body, ERROR_BODY_LIMIT)}",
                        status=r.status_code,
                    )
                async for line in r.aiter_lines():
                    text = line.strip()
                    if not text.startswith("data:"):
                        continue
                    data = text[5:].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        break
                    try:
                        obj = json.loads(data)
                        delta = obj["choices"][0]["delta"].get("content")
                    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
                        continue
                    if delta:
                        yield delta
        except httpx.HTTPError as e:
            inference_requests_total.labels(mode="stream", outcome="transport").inc()
            raise UpstreamInferenceError("transport", f"inference stream failed: {e}")
        inference_requests_total.labels(mode="stream", outcome="success").inc()

    async def close(self):
        """Clean up the persistent HTTP client"""
        if self._owns_client:
            with suppress(Exception):
                await self.client.aclose()
