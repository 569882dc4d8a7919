# SSE framing for the chat relay
# One event per token, a terminal [DONE] sentinel, and the headers that keep proxies from buffering

from dataclasses import dataclass
from typing import Dict, Optional

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    """Structured SSE event"""
    data: str
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


def format_sse_event(event: SSEEvent) -> bytes:
    """Serialize an event into its SSE wire frame"""
    lines = []

    if event.retry is not None:
        lines.append(f"retry: {event.retry}")

    if event.id is not None:
        lines.append(f"id: {event.id}")

    if event.event is not None:
        lines.append(f"event: {event.event}")

    # Multi-line data gets one data: line per line
    for line in event.data.splitlines() or [""]:
        lines.append(f"data: {line}")

    return "\n".join(lines).encode("utf-8") + b"\n\n"


def escape_token(token: str) -> str:
    """Line breaks travel as backslash-n and backslash-r so one token is always one data line"""
    return token.replace("\n", "\\n").replace("\r", "\\r")


def format_token_event(token: str) -> bytes:
    return f"data: {escape_token(token)}\n\n".encode("utf-8")


def format_error_event(reason: str) -> bytes:
    return format_sse_event(SSEEvent(data=escape_token(reason), event="error"))


def format_done_event() -> bytes:
    return f"data: {DONE_SENTINEL}\n\n".encode("utf-8")


def create_sse_response_headers() -> Dict[str, str]:
    """Create standard SSE response headers"""
    return {
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",  # Disable nginx buffering
    }
