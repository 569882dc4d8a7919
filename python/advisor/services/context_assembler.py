# Context Assembler - builds the grounding system prompt for advisory chat
# Persona + optional recommendation context + the owner's recent scholarships.
# Every resolution failure degrades to less context; only an empty conversation is rejected.

import json
import logging
from typing import List, Optional, Sequence

from ..errors import AdvisorError, ValidationError
from ..models import ChatMessage, ScholarshipRecord
from ..utils.payload_codec import PayloadDecodeError, split_top_level
from .store import AdvisorStore

logger = logging.getLogger(__name__)

PERSONA = (
    "You are EduSphere AI, an academic advisor who provides personalized advice based on the "
    "provided user's full academic context (transcript, recommended courses, and potential "
    "scholarships). Be concise and professional. You must use the provided context to justify "
    "your answers."
)

CONTEXT_HEADER = "\n\n[FULL ACADEMIC CONTEXT INJECTED BELOW]\n"
TRANSCRIPT_LABEL = "[USER ACADEMIC TRANSCRIPT TEXT]"
COURSES_LABEL = "[RECOMMENDED COURSES JSON]"
OTHER_LABEL = "[OTHER RECOMMENDATION DATA JSON]"
RAW_PAYLOAD_LABEL = "[RAW RECOMMENDATION PAYLOAD JSON]"
SCHOLARSHIP_HEADER = (
    "\n\n=== AVAILABLE SCHOLARSHIP OPPORTUNITIES (FROM DATABASE) ===\n"
    "Use this list if the user asks about financial aid, funding, or scholarships.\n\n"
)

ALLOWED_ROLES = {"system", "user", "assistant"}
SCHOLARSHIP_CONTEXT_CHARS = 200
_EXCLUDED_KEYS = ("courses", "scholarships", "schema_version")


def _parse_reference(ref) -> Optional[int]:
    if ref is None:
        return None
    try:
        value = int(str(ref).strip())
    except ValueError:
        return None
    return value if value > 0 else None


def normalize_messages(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    """Lower-case roles, coerce unknown roles to user, drop blank turns"""
    out = []
    for m in messages:
        if not m.content.strip():
            continue
        role = m.role.strip().lower()
        if role not in ALLOWED_ROLES:
            role = "user"
        out.append(ChatMessage(role=role, content=m.content))
    return out


def format_scholarship_block(rows: Sequence[ScholarshipRecord]) -> str:
    """Numbered list of scholarships, first occurrence of each title wins"""
    seen = set()
    lines = []
    for row in rows:
        key = row.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        match = row.match_score or 0.0
        lines.append(f"{len(seen)}. {row.title} (Match: {match:.0f}%)\n")
        desc = row.description or ""
        if desc:
            if len(desc) > SCHOLARSHIP_CONTEXT_CHARS:
                desc = desc[:SCHOLARSHIP_CONTEXT_CHARS] + "..."
            lines.append(f"   Context: {desc}\n")
        if row.link:
            lines.append(f"   Link: {row.link}\n")
        lines.append("\n")
    return "".join(lines)


class ContextAssembler:
    """Assemble the per-request system prompt and the final conversation"""

    def __init__(self, store: AdvisorStore, scholarship_limit: int = 10):
        self.store = store
        self.scholarship_limit = scholarship_limit

    async def _recommendation_context(self, owner: str, recommendation_ref) -> str:
        reco_id = _parse_reference(recommendation_ref)
        if reco_id is None:
            if recommendation_ref not in (None, ""):
                logger.info(f"Ignoring unusable recommendation reference: {recommendation_ref!r}")
            return ""

        try:
            reco = await self.store.get_recommendation(reco_id)
        except AdvisorError as e:
            logger.warning(f"Failed to load recommendation {reco_id}: {e}")
            return ""
        if reco is None or reco.owner != owner:
            logger.info(f"Recommendation {reco_id} not available to {owner}, continuing without it")
            return ""

        parts = []

        if reco.transcript_id:
            try:
                tr = await self.store.get_transcript(reco.transcript_id)
            except AdvisorError as e:
                logger.warning(f"Failed to load transcript {reco.transcript_id}: {e}")
                tr = None
            if tr is not None and tr.owner == owner and (tr.text_extracted or "").strip():
                parts.append(f"\n{TRANSCRIPT_LABEL}\n{tr.text_extracted}\n")

        try:
            raw = split_top_level(reco.payload)
        except PayloadDecodeError as e:
            logger.warning(f"Recommendation {reco_id} payload is not a JSON object: {e}")
            parts.append(f"\n{RAW_PAYLOAD_LABEL}\n{reco.payload}\n")
            return CONTEXT_HEADER + "".join(parts)

        courses_raw = raw.get("courses")
        if courses_raw is not None:
            try:
                has_courses = bool(json.loads(courses_raw))
            except ValueError:
                has_courses = False
            if has_courses:
                parts.append(f"\n{COURSES_LABEL}\n{courses_raw}\n")

        other = {}
        for key, value in raw.items():
            if key in _EXCLUDED_KEYS:
                continue
            other[key] = json.loads(value)
        if other:
            parts.append(f"\n{OTHER_LABEL}\n{json.dumps(other, ensure_ascii=False, indent=2)}\n")

        if not parts:
            return ""
        return CONTEXT_HEADER + "".join(parts)

    async def _scholarship_context(self, owner: str) -> str:
        try:
            rows = await self.store.list_recent_scholarships(owner, self.scholarship_limit)
        except AdvisorError as e:
            logger.warning(f"Failed to load scholarships for {owner}: {e}")
            return ""
        if not rows:
            return ""
        return SCHOLARSHIP_HEADER + format_scholarship_block(rows)

    async def build_system_prompt(self, owner: str, recommendation_ref=None) -> str:
        prompt = PERSONA
        prompt += await self._recommendation_context(owner, recommendation_ref)
        prompt += await self._scholarship_context(owner)
        return prompt

    async def build_messages(
        self, owner: str, recommendation_ref, messages: Sequence[ChatMessage]
    ) -> List[ChatMessage]:
        """System message first, then the caller's turns in order"""
        turns = normalize_messages(messages)
        if not turns:
            raise ValidationError("messages must contain at least one non-empty message")
        system = await self.build_system_prompt(owner, recommendation_ref)
        return [ChatMessage(role="system", content=system)] + turns
