import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse

from ..config import Settings
from ..dependencies import get_context_assembler, get_inference_client, get_owner, get_settings
from ..models import ChatStreamRequest
from ..services.context_assembler import ContextAssembler
from ..services.inference_client import InferenceClient
from ..services.streaming_relay import relay_chat_stream
from ..utils.sse import create_sse_response_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/stream")
async def chat_stream(
    body: ChatStreamRequest,
    request: Request,
    recommendation_id: Optional[str] = Header(None, alias="X-Recommendation-ID"),
    owner: str = Depends(get_owner),
    assembler: ContextAssembler = Depends(get_context_assembler),
    inference: InferenceClient = Depends(get_inference_client),
    cfg: Settings = Depends(get_settings),
):
    """
    Advisory chat over Server-Sent Events.

    The conversation is validated and grounded before the stream opens, so an empty
    message list is a plain 400. After that every failure arrives in-band as an
    `event: error` followed by `data: [DONE]`.
    """
    messages = await assembler.build_messages(owner, recommendation_id, body.messages)
    logger.info(f"Chat stream for {owner}: {len(messages) - 1} turns, recommendation={recommendation_id}")

    return StreamingResponse(
        relay_chat_stream(inference, messages, request=request, model=cfg.openai_model),
        media_type="text/event-stream",
        headers=create_sse_response_headers(),
    )
