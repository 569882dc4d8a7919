# Scholarship Engine - web-grounded scholarship generation from the owner's latest transcript
# Search failures degrade to transcript-only; each row is persisted independently.

import logging
from functools import partial
from typing import List, Optional, Sequence

from ..config import DEFAULT_SCHOLARSHIP_QUERY
from ..errors import AdvisorError, AuthenticationError, UpstreamSearchError
from ..models import (
    ChatMessage, CreateScholarshipParams, ScholarshipOutcome,
    ScholarshipRecommendation, WebResult, utc_now,
)
from ..utils.json_fallback import parse_bare_array, parse_bracket_extract, parse_wrapper, run_chain
from ..utils.metrics import generations_total, scholarship_persist_failures_total
from .inference_client import InferenceClient
from .search_client import SearchClient
from .store import AdvisorStore, load_latest_transcript_text

logger = logging.getLogger(__name__)

TITLE_CHARS = 100
SNIPPET_CHARS = 200

ADVISOR_INSTRUCTIONS = """
You are an academic scholarship advisor.
Your task: identify scholarships - NOT university courses or degrees.
Use the student's transcript only to understand their background (e.g. Software Engineering, AI, Data Science).
From the provided web search results, list the most relevant scholarships for this profile.

Return ONLY scholarships (no courses, no degrees, no projects).
Each result must include:
- title (scholarship name)
- description (what it offers or who it's for)
- match (number 0-100)
- link (URL to the scholarship)

Respond ONLY in valid JSON format.
"""

STRICT_JSON_PROMPT = """
You are a strict JSON generator.
Always return either a JSON array or a JSON object containing "scholarships": [ ... ].
Do not include markdown, code fences, or commentary.

Each scholarship must contain:
- "title": string
- "description": string
- "match": number (0-100)
- "link": string (valid URL)
"""


def _truncate(s: str, n: int) -> str:
    return s if len(s) <= n else s[:n] + "..."


def build_user_prompt(transcript_text: str, web_results: Sequence[WebResult]) -> str:
    parts = [ADVISOR_INSTRUCTIONS, 'Transcript:\n"""\n', transcript_text, '\n"""\n\n']
    if web_results:
        parts.append("Scholarship Web Results:\n")
        for w in web_results:
            parts.append(
                f"- {_truncate(w.title, TITLE_CHARS)}\n"
                f"  Link: {w.url}\n"
                f"  About: {_truncate(w.snippet, SNIPPET_CHARS)}\n"
            )
    return "".join(parts)


def parse_scholarships(raw: str) -> List[ScholarshipRecommendation]:
    """Bare array, then {"scholarships": [...]}, then the first '[' .. last ']' substring"""
    attempt = run_chain(raw, [
        partial(parse_bare_array, model_cls=ScholarshipRecommendation),
        partial(parse_wrapper, key="scholarships", model_cls=ScholarshipRecommendation),
        partial(parse_bracket_extract, model_cls=ScholarshipRecommendation),
    ])
    if not attempt.yielded:
        logger.warning(f"No scholarships recovered from response ({attempt.tier}): {attempt.error}")
    return list(attempt.items)


def sanitize_scholarships(items: Sequence[ScholarshipRecommendation]) -> List[ScholarshipRecommendation]:
    """
    Trim fields, drop items missing a title or link, keep the first of each
    lowercase title, then sort by match descending (stable).
    """
    seen = set()
    cleaned = []
    for item in items:
        title = item.title.strip()
        link = item.link.strip()
        if not title or not link:
            continue
        key = title.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(item.model_copy(update={
            "title": title,
            "description": item.description.strip(),
            "link": link,
        }))
    return sorted(cleaned, key=lambda s: s.match, reverse=True)


class ScholarshipEngine:
    """Generate and persist scholarship suggestions for an owner"""

    def __init__(
        self,
        store: AdvisorStore,
        inference: InferenceClient,
        search: SearchClient,
        query: str = DEFAULT_SCHOLARSHIP_QUERY,
        model: Optional[str] = None,
    ):
        self.store = store
        self.inference = inference
        self.search = search
        self.query = query or DEFAULT_SCHOLARSHIP_QUERY
        self.model = model

    async def _ground(self) -> List[WebResult]:
        try:
            results = await self.search.search(self.query)
        except UpstreamSearchError as e:
            logger.warning(f"Web search failed ({e.stage}), continuing with transcript only: {e.detail}")
            return []
        if not results:
            logger.info("No web results found, continuing with transcript only")
        for i, w in enumerate(results, 1):
            logger.debug(f"{i}) {w.title} -> {w.url}")
        return results

    async def _persist(self, owner: str, items: Sequence[ScholarshipRecommendation]) -> int:
        saved = 0
        for item in items:
            params = CreateScholarshipParams(
                owner=owner,
                title=item.title,
                description=item.description or None,
                match_score=item.match if item.match > 0 else None,
                link=item.link or None,
            )
            try:
                await self.store.create_scholarship(params)
                saved += 1
            except AdvisorError as e:
                scholarship_persist_failures_total.inc()
                logger.error(f"Save scholarship failed for {item.title}: {e}")
        return saved

    async def generate(self, owner: str) -> ScholarshipOutcome:
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")

        transcript_text = await load_latest_transcript_text(self.store, owner)
        web_results = await self._ground()

        messages = [
            ChatMessage(role="system", content=STRICT_JSON_PROMPT),
            ChatMessage(role="user", content=build_user_prompt(transcript_text, web_results)),
        ]
        try:
            raw = await self.inference.complete(messages, model=self.model, json_mode=True)
        except AdvisorError:
            generations_total.labels(pipeline="scholarship", outcome="failure").inc()
            raise
        logger.debug(f"Raw scholarship response: {raw}")

        items = sanitize_scholarships(parse_scholarships(raw))
        if items:
            saved = await self._persist(owner, items)
            logger.info(f"Parsed {len(items)} scholarships for {owner}, persisted {saved}")
        else:
            logger.info(f"No valid scholarships for {owner}, nothing persisted")

        generations_total.labels(pipeline="scholarship", outcome="success" if items else "empty").inc()
        return ScholarshipOutcome(
            user=owner,
            count=len(items),
            scholarships=items,
            generated_at=utc_now(),
        )
