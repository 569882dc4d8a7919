# Streaming Relay - forwards upstream completion deltas to the browser as SSE
# One event per token, always terminated by [DONE] unless the client has gone away

import asyncio
import logging
import time
from typing import AsyncIterator, Optional, Sequence

from ..errors import UpstreamInferenceError
from ..models import ChatMessage
from ..utils.metrics import sse_disconnections_total, sse_events_sent, sse_stream_duration
from ..utils.sse import format_done_event, format_error_event, format_token_event
from .inference_client import InferenceClient

logger = logging.getLogger(__name__)

CLIENT_DISCONNECT_CHECK_INTERVAL = 0.5  # seconds

_END = None


async def relay_chat_stream(
    inference: InferenceClient,
    messages: Sequence[ChatMessage],
    request=None,
    model: Optional[str] = None,
    disconnect_check_interval: float = CLIENT_DISCONNECT_CHECK_INTERVAL,
) -> AsyncIterator[bytes]:
    """
    Relay a streamed completion as SSE bytes.

    The upstream is consumed by a background task feeding a queue while a second task
    watches `request.is_disconnected()`. When the client leaves, or this generator is
    cancelled or closed, both tasks are cancelled and awaited before returning, which
    closes the upstream response.
    """
    stream_start = time.time()
    token_count = 0
    queue: asyncio.Queue = asyncio.Queue()

    async def content_sender():
        nonlocal token_count
        try:
            async for delta in inference.stream_complete(messages, model=model):
                token_count += 1
                await queue.put(format_token_event(delta))
        except UpstreamInferenceError as e:
            logger.error(f"Upstream stream failed ({e.stage}): {e.detail}")
            await queue.put(format_error_event(e.message))
        except Exception as e:
            logger.exception(f"Unexpected error while relaying stream: {e}")
            await queue.put(format_error_event("stream failed"))
        await queue.put(format_done_event())
        await queue.put(_END)

    async def disconnect_checker():
        try:
            while True:
                await asyncio.sleep(disconnect_check_interval)
                if await request.is_disconnected():
                    logger.info("Client disconnected, terminating chat stream")
                    sse_disconnections_total.inc()
                    return
        except asyncio.CancelledError:
            return

    content_task = asyncio.create_task(content_sender())
    disconnect_task = None
    if request is not None and hasattr(request, "is_disconnected"):
        disconnect_task = asyncio.create_task(disconnect_checker())

    getter = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            waiters = {getter}
            if disconnect_task is not None:
                waiters.add(disconnect_task)
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

            if not getter.done():
                # Client went away
                break

            item = getter.result()
            if item is _END:
                break
            event_type = "error" if item.startswith(b"event: error") else (
                "done" if item == format_done_event() else "token"
            )
            sse_events_sent.labels(event_type=event_type).inc()
            yield item

    finally:
        if getter is not None and not getter.done():
            getter.cancel()
        for task in (content_task, disconnect_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        stream_duration = time.time() - stream_start
        sse_stream_duration.observe(stream_duration)
        logger.info(f"Chat stream finished in {stream_duration:.2f}s, relayed {token_count} tokens")
