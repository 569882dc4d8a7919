# Summary Service - plain-text academic summary of the owner's latest transcript

import logging
from typing import Optional

from ..errors import AuthenticationError
from ..models import ChatMessage, SummaryOutcome, utc_now
from ..utils.metrics import generations_total
from .inference_client import InferenceClient
from .store import AdvisorStore, load_latest_transcript_text

logger = logging.getLogger(__name__)

SUMMARIZER_PROMPT = "You are an academic summarizer. Return only plain text summary, no markdown."

SUMMARY_TEMPLATE = """
Summarize the student's transcript below into 3 concise paragraphs.
Focus on academic strengths, software engineering skills, and AI or data science potential.

Transcript:
\"\"\"{transcript}\"\"\"
"""


class SummaryService:

    def __init__(self, store: AdvisorStore, inference: InferenceClient, model: Optional[str] = None):
        self.store = store
        self.inference = inference
        self.model = model

    async def generate(self, owner: str) -> SummaryOutcome:
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")

        text = await load_latest_transcript_text(self.store, owner)
        messages = [
            ChatMessage(role="system", content=SUMMARIZER_PROMPT),
            ChatMessage(role="user", content=SUMMARY_TEMPLATE.format(transcript=text)),
        ]
        raw = await self.inference.complete(messages, model=self.model, json_mode=False)
        generations_total.labels(pipeline="summary", outcome="success").inc()
        logger.info(f"Generated summary for {owner} ({len(raw)} chars)")
        return SummaryOutcome(user=owner, summary_text=raw.strip(), generated_at=utc_now())
