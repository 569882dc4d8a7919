# Recommendation Engine - transcript -> completed codes -> candidate courses -> ranked selection
# Two inference calls per run, one persisted recommendation. Partial results are never stored.

import json
import logging
from functools import partial
from typing import Dict, List, Optional, Sequence

from ..errors import AdvisorError, AuthenticationError, NotFoundError, ValidationError
from ..models import (
    CatalogCourse, ChatMessage, CourseRecommendation, CourseSelection,
    CreateRecommendationParams, RecommendationOutcome, RecommendationPayload,
    RecommendationRecord, ScholarshipRecord, utc_now,
)
from ..utils.json_fallback import parse_bare_array, parse_wrapper, run_chain
from ..utils.metrics import generations_total
from ..utils.payload_codec import encode_payload
from .inference_client import InferenceClient
from .store import AdvisorStore

logger = logging.getLogger(__name__)

NO_NEW_COURSES_MESSAGE = "No new courses available."
PROMPT_DESC_CHARS = 150
PAYLOAD_SCHOLARSHIP_LIMIT = 50

EXTRACTION_PROMPT = (
    "You are a data extraction assistant. Analyze the academic transcript and return a JSON "
    "object with a single key 'completed_codes' containing a list of strings. Each string must "
    "be a Course Code (e.g. 'CS101') the student has completed."
)

SELECTION_PROMPT = """You are an academic course advisor.
Task:
1. Analyze the 'Available Courses' list and the 'User Preference'.
2. Select the top 3-5 courses that best match the preference.
3. Return a JSON object with a key "recommendations" which is an array.
4. Each item must have:
    - "course_id" (integer, copied exactly from input)
    - "code" (string)
    - "title" (string)
    - "rationale" (string, why it fits)
    - "match" (number 0-100)"""


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def filter_candidates(catalog: Sequence[CatalogCourse], completed_codes: Sequence[str]) -> List[CatalogCourse]:
    """Catalog minus every course whose normalized code was completed, order preserved"""
    completed = {normalize_code(c) for c in completed_codes}
    return [c for c in catalog if normalize_code(c.code) not in completed]


def build_candidate_list(candidates: Sequence[CatalogCourse]) -> str:
    """Compact JSON list sent to the selection call"""
    items = []
    for c in candidates:
        desc = c.description or ""
        if len(desc) > PROMPT_DESC_CHARS:
            desc = desc[:PROMPT_DESC_CHARS] + "..."
        items.append({"id": c.id, "code": c.code, "name": c.name, "desc": desc})
    return json.dumps(items, ensure_ascii=False)


def enrich_selections(
    selections: Sequence[CourseSelection], candidates: Sequence[CatalogCourse]
) -> List[CourseRecommendation]:
    """
    Attach catalog links by course_id, drop repeated course_ids, and sort by match
    descending. sorted() is stable so equal matches keep the upstream order.
    """
    links: Dict[int, str] = {c.id: (c.link or "") for c in candidates}
    seen = set()
    recs = []
    for s in selections:
        if s.course_id in seen:
            continue
        seen.add(s.course_id)
        recs.append(CourseRecommendation(
            title=s.title,
            description=s.rationale,
            match=s.match,
            code=s.code,
            link=links.get(s.course_id, ""),
            course_id=s.course_id,
        ))
    return sorted(recs, key=lambda r: r.match, reverse=True)


def dedupe_scholarship_rows(rows: Sequence[ScholarshipRecord]) -> List[ScholarshipRecord]:
    seen = set()
    out = []
    for row in rows:
        key = row.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(row)
    return out


class RecommendationEngine:
    """Generate, list and fetch course recommendations for an owner"""

    def __init__(self, store: AdvisorStore, inference: InferenceClient, model: Optional[str] = None):
        self.store = store
        self.inference = inference
        self.model = model

    async def extract_completed_codes(self, transcript_text: str) -> List[str]:
        """Phase A. Inference failures propagate; an undecodable answer means nothing completed."""
        raw = await self.inference.complete(
            [
                ChatMessage(role="system", content=EXTRACTION_PROMPT),
                ChatMessage(role="user", content=transcript_text),
            ],
            model=self.model,
            json_mode=True,
        )
        try:
            data = json.loads(raw)
            codes = data.get("completed_codes") or []
        except (ValueError, AttributeError) as e:
            logger.warning(f"Could not decode completed codes, assuming none: {e}")
            return []
        if not isinstance(codes, list):
            return []
        return [normalize_code(str(c)) for c in codes if c is not None]

    async def select_courses(self, preference: str, candidates: Sequence[CatalogCourse]) -> List[CourseSelection]:
        """Phase D. Wrapper object first, bare array second; anything else selects nothing."""
        user_prompt = f"User Preference: {preference}\n\nAvailable Courses:\n{build_candidate_list(candidates)}"
        raw = await self.inference.complete(
            [
                ChatMessage(role="system", content=SELECTION_PROMPT),
                ChatMessage(role="user", content=user_prompt),
            ],
            model=self.model,
            json_mode=True,
        )
        attempt = run_chain(raw, [
            partial(parse_wrapper, key="recommendations", model_cls=CourseSelection),
            partial(parse_bare_array, model_cls=CourseSelection),
        ])
        if not attempt.ok:
            logger.warning(f"Course selection did not parse ({attempt.tier}): {attempt.error}")
        return list(attempt.items)

    async def _recent_scholarships(self, owner: str) -> List[ScholarshipRecord]:
        try:
            rows = await self.store.list_recent_scholarships(owner, PAYLOAD_SCHOLARSHIP_LIMIT)
        except AdvisorError as e:
            logger.warning(f"Failed to list scholarships for payload merge: {e}")
            return []
        return dedupe_scholarship_rows(rows)

    async def generate(self, owner: str, transcript_id: int, preference: str = "") -> RecommendationOutcome:
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")
        if transcript_id is None or transcript_id <= 0:
            raise ValidationError("transcript_id must be a positive integer")

        transcript = await self.store.get_transcript(transcript_id)
        if transcript is None or transcript.owner != owner:
            raise NotFoundError("transcript not found", details={"transcript_id": transcript_id})
        text = transcript.text_extracted or ""
        if not text.strip():
            raise ValidationError("transcript has no text content")

        try:
            completed = await self.extract_completed_codes(text)
            catalog = await self.store.list_all_courses()
            candidates = filter_candidates(catalog, completed)
            logger.info(
                f"Recommendation for {owner}: {len(completed)} completed codes, "
                f"{len(candidates)}/{len(catalog)} candidate courses"
            )

            if not candidates:
                generations_total.labels(pipeline="recommendation", outcome="no_candidates").inc()
                return RecommendationOutcome(courses=[], user_pref=preference, message=NO_NEW_COURSES_MESSAGE)

            selections = await self.select_courses(preference, candidates)
            courses = enrich_selections(selections, candidates)

            scholarships = await self._recent_scholarships(owner)
            payload = RecommendationPayload(courses=courses)
            if scholarships:
                payload.scholarships_raw = json.dumps(
                    [s.model_dump(mode="json") for s in scholarships], ensure_ascii=False, separators=(",", ":")
                )

            reco = await self.store.create_recommendation(CreateRecommendationParams(
                owner=owner,
                transcript_id=transcript_id,
                payload=encode_payload(payload),
            ))
        except Exception:
            generations_total.labels(pipeline="recommendation", outcome="failure").inc()
            raise

        generations_total.labels(pipeline="recommendation", outcome="success").inc()
        logger.info(f"Stored recommendation {reco.id} for {owner} with {len(courses)} courses")
        return RecommendationOutcome(
            id=reco.id,
            created_at=reco.created_at,
            courses=courses,
            scholarships=scholarships,
            user_pref=preference,
            analyzed_at=utc_now(),
        )

    async def list_recommendations(self, owner: str) -> List[RecommendationRecord]:
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")
        return await self.store.list_recommendations(owner)

    async def get_recommendation(self, owner: str, recommendation_id: int) -> RecommendationRecord:
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")
        reco = await self.store.get_recommendation(recommendation_id)
        if reco is None or reco.owner != owner:
            raise NotFoundError("recommendation not found", details={"recommendation_id": recommendation_id})
        return reco
