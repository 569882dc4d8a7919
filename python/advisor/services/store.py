"""
Persistence contract used by the advisory core, plus an in-process implementation.

The core only relies on the operations below. Every write is a single independent
statement: nothing here wraps a generation's several writes in a transaction.
Missing rows come back as None; backend failures raise PersistenceError.
"""

import itertools
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import (
    CatalogCourse, CreateRecommendationParams, CreateScholarshipParams,
    RecommendationRecord, ScholarshipRecord, Transcript, utc_now,
)


class AdvisorStore(ABC):
    """Abstract persistence collaborator"""

    @abstractmethod
    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]:
        ...

    @abstractmethod
    async def list_transcripts(self, owner: str) -> List[Transcript]:
        """Owner's transcripts, newest first"""

    @abstractmethod
    async def list_all_courses(self) -> List[CatalogCourse]:
        ...

    @abstractmethod
    async def create_recommendation(self, params: CreateRecommendationParams) -> RecommendationRecord:
        ...

    @abstractmethod
    async def get_recommendation(self, recommendation_id: int) -> Optional[RecommendationRecord]:
        ...

    @abstractmethod
    async def update_recommendation_payload(
        self, recommendation_id: int, owner: str, payload: str
    ) -> Optional[RecommendationRecord]:
        """Whole-payload replace, scoped to the owner. None when no row matched."""

    @abstractmethod
    async def list_recommendations(self, owner: str) -> List[RecommendationRecord]:
        """Owner's recommendations, newest first"""

    @abstractmethod
    async def create_scholarship(self, params: CreateScholarshipParams) -> ScholarshipRecord:
        ...

    @abstractmethod
    async def list_recent_scholarships(self, owner: str, limit: int) -> List[ScholarshipRecord]:
        """Owner's most recent scholarship rows, newest first"""

    async def health_check(self) -> bool:
        return True

    async def close(self):
        return None


class InMemoryAdvisorStore(AdvisorStore):
    """
    Dict-backed store for local development and tests.
    Ids are monotonically increasing per record kind; "newest" means highest id.
    """

    def __init__(self):
        self.transcripts: Dict[int, Transcript] = {}
        self.courses: Dict[int, CatalogCourse] = {}
        self.recommendations: Dict[int, RecommendationRecord] = {}
        self.scholarships: Dict[int, ScholarshipRecord] = {}
        self._seq = {
            "transcript": itertools.count(1),
            "recommendation": itertools.count(1),
            "scholarship": itertools.count(1),
        }

    # --- seeding (ingestion lives outside the core) ---

    async def put_transcript(self, owner: str, text_extracted: Optional[str], filename: Optional[str] = None) -> Transcript:
        tr = Transcript(
            id=next(self._seq["transcript"]),
            owner=owner,
            filename=filename,
            text_extracted=text_extracted,
        )
        self.transcripts[tr.id] = tr
        return tr

    async def put_course(self, course: CatalogCourse) -> CatalogCourse:
        self.courses[course.id] = course
        return course

    # --- contract ---

    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]:
        return self.transcripts.get(transcript_id)

    async def list_transcripts(self, owner: str) -> List[Transcript]:
        rows = [t for t in self.transcripts.values() if t.owner == owner]
        return sorted(rows, key=lambda t: t.id, reverse=True)

    async def list_all_courses(self) -> List[CatalogCourse]:
        return [self.courses[k] for k in sorted(self.courses)]

    async def create_recommendation(self, params: CreateRecommendationParams) -> RecommendationRecord:
        rec = RecommendationRecord(
            id=next(self._seq["recommendation"]),
            owner=params.owner,
            transcript_id=params.transcript_id,
            payload=params.payload,
            summary=params.summary,
        )
        self.recommendations[rec.id] = rec
        return rec

    async def get_recommendation(self, recommendation_id: int) -> Optional[RecommendationRecord]:
        return self.recommendations.get(recommendation_id)

    async def update_recommendation_payload(
        self, recommendation_id: int, owner: str, payload: str
    ) -> Optional[RecommendationRecord]:
        current = self.recommendations.get(recommendation_id)
        if current is None or current.owner != owner:
            return None
        updated = current.model_copy(update={"payload": payload})
        self.recommendations[recommendation_id] = updated
        return updated

    async def list_recommendations(self, owner: str) -> List[RecommendationRecord]:
        rows = [r for r in self.recommendations.values() if r.owner == owner]
        return sorted(rows, key=lambda r: r.id, reverse=True)

    async def create_scholarship(self, params: CreateScholarshipParams) -> ScholarshipRecord:
        row = ScholarshipRecord(
            id=next(self._seq["scholarship"]),
            owner=params.owner,
            title=params.title,
            description=params.description,
            match_score=params.match_score,
            link=params.link,
            created_at=utc_now(),
        )
        self.scholarships[row.id] = row
        return row

    async def list_recent_scholarships(self, owner: str, limit: int) -> List[ScholarshipRecord]:
        rows = [s for s in self.scholarships.values() if s.owner == owner]
        rows.sort(key=lambda s: s.id, reverse=True)
        return rows[:max(limit, 0)]


async def load_latest_transcript_text(store: AdvisorStore, owner: str) -> str:
    """
    Trimmed text of the owner's newest transcript.
    NotFoundError when the owner has none, ValidationError when it holds no text.
    """
    transcripts = await store.list_transcripts(owner)
    if not transcripts:
        raise NotFoundError("no transcripts found")
    full = await store.get_transcript(transcripts[0].id)
    if full is None:
        raise NotFoundError("no transcripts found")
    text = (full.text_extracted or "").strip()
    if not text:
        raise ValidationError("transcript has no extracted text")
    return text
