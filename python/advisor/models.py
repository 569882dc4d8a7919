"""
Pydantic models for the advisory core: records handed back by the store,
generation results, and request/response bodies for the gateway.
"""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

PAYLOAD_SCHEMA_VERSION = 1


def _blank_if_none(v):
    return "" if v is None else v


def _zero_if_none(v):
    return 0 if v is None else v


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# === Conversation ===

class ChatMessage(BaseModel):
    """One turn of a conversation. Order in a list is significant."""
    role: str = "user"
    content: str = ""

    @field_validator("role", "content", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)


class ChatStreamRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "messages": [
                    {"role": "user", "content": "Which of my recommended courses fits an ML track best?"}
                ]
            }
        }


# === Catalog & generated recommendations ===

class CatalogCourse(BaseModel):
    """Candidate course from the catalog; immutable for the length of a pipeline run"""
    id: int
    code: str
    name: str
    description: Optional[str] = None
    link: Optional[str] = None


class CourseRecommendation(BaseModel):
    """Course suggestion as persisted inside a recommendation payload"""
    type: Literal["course"] = "course"
    title: str = ""
    description: str = ""
    match: float = 0.0
    code: str = ""
    link: str = ""
    course_id: int = 0

    @field_validator("title", "description", "code", "link", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)

    @field_validator("match", "course_id", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return _zero_if_none(v)


class CourseSelection(BaseModel):
    """One item of the upstream's course selection, before enrichment"""
    course_id: int = 0
    code: str = ""
    title: str = ""
    rationale: str = ""
    match: float = 0.0

    @field_validator("code", "title", "rationale", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)

    @field_validator("course_id", "match", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return _zero_if_none(v)


class ScholarshipRecommendation(BaseModel):
    title: str = ""
    description: str = ""
    match: float = 0.0
    link: str = ""

    @field_validator("title", "description", "link", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return _blank_if_none(v)

    @field_validator("match", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return _zero_if_none(v)


class WebResult(BaseModel):
    title: str
    url: str
    snippet: str = ""


# === Store records ===

class Transcript(BaseModel):
    id: int
    owner: str
    filename: Optional[str] = None
    text_extracted: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class RecommendationRecord(BaseModel):
    """Persisted recommendation. `payload` is the raw JSON text exactly as stored."""
    id: int
    owner: str
    transcript_id: Optional[int] = None
    payload: str
    summary: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ScholarshipRecord(BaseModel):
    id: int
    owner: str
    title: str
    description: Optional[str] = None
    match_score: Optional[float] = None
    link: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class CreateRecommendationParams(BaseModel):
    owner: str
    transcript_id: Optional[int] = None
    payload: str
    summary: Optional[str] = "Course Recommendation"


class CreateScholarshipParams(BaseModel):
    owner: str
    title: str
    description: Optional[str] = None
    match_score: Optional[float] = None
    link: Optional[str] = None


class RecommendationPayload(BaseModel):
    """
    Typed view of the JSON document stored in RecommendationRecord.payload.

    `scholarships_raw` and `extras_raw` hold the exact source text of those values so
    an edit of `courses` re-emits them byte for byte.
    """
    schema_version: int = PAYLOAD_SCHEMA_VERSION
    courses: List[CourseRecommendation] = Field(default_factory=list)
    scholarships_raw: Optional[str] = None
    extras_raw: Dict[str, str] = Field(default_factory=dict)


# === Request bodies ===

class CreateRecommendationRequest(BaseModel):
    transcript_id: int
    preference: str = ""

    class Config:
        json_schema_extra = {
            "example": {"transcript_id": 12, "preference": "machine learning and data engineering"}
        }


# === Results ===

class RecommendationOutcome(BaseModel):
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    courses: List[CourseRecommendation] = Field(default_factory=list)
    scholarships: List[ScholarshipRecord] = Field(default_factory=list)
    user_pref: str = ""
    analyzed_at: datetime = Field(default_factory=utc_now)
    message: Optional[str] = None


class ScholarshipOutcome(BaseModel):
    user: str
    count: int
    scholarships: List[ScholarshipRecommendation] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)


class SummaryOutcome(BaseModel):
    user: str
    summary_text: str
    generated_at: datetime = Field(default_factory=utc_now)


class CourseDeletionResult(BaseModel):
    message: str = "Course deleted."
    courses: List[CourseRecommendation] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    services: Dict[str, bool] = {}
    version: str = "1.0.0"
    timestamp: str


__all__ = [
    "PAYLOAD_SCHEMA_VERSION",
    "utc_now",
    "ChatMessage",
    "ChatStreamRequest",
    "CatalogCourse",
    "CourseRecommendation",
    "CourseSelection",
    "ScholarshipRecommendation",
    "WebResult",
    "Transcript",
    "RecommendationRecord",
    "ScholarshipRecord",
    "CreateRecommendationParams",
    "CreateScholarshipParams",
    "RecommendationPayload",
    "CreateRecommendationRequest",
    "RecommendationOutcome",
    "ScholarshipOutcome",
    "SummaryOutcome",
    "CourseDeletionResult",
    "HealthResponse",
]
