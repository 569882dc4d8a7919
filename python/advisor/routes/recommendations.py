import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path

from ..dependencies import get_owner, get_payload_editor, get_recommendation_engine
from ..models import CourseDeletionResult, CreateRecommendationRequest, RecommendationOutcome, RecommendationRecord
from ..services.payload_editor import PayloadEditor
from ..services.recommendation_engine import RecommendationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


def _record_view(rec: RecommendationRecord) -> Dict[str, Any]:
    """Stored payload is embedded as JSON rather than an escaped string"""
    view = rec.model_dump(mode="json")
    try:
        view["payload"] = json.loads(rec.payload)
    except ValueError:
        logger.warning(f"Recommendation {rec.id} payload is not valid JSON, returning it raw")
    return view


@router.post("", response_model=RecommendationOutcome, response_model_exclude_none=True)
async def create_recommendation(
    body: CreateRecommendationRequest,
    owner: str = Depends(get_owner),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
):
    return await engine.generate(owner, body.transcript_id, body.preference)


@router.get("")
async def list_recommendations(
    owner: str = Depends(get_owner),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> List[Dict[str, Any]]:
    return [_record_view(r) for r in await engine.list_recommendations(owner)]


@router.get("/{reco_id}")
async def get_recommendation(
    reco_id: int = Path(..., gt=0),
    owner: str = Depends(get_owner),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> Dict[str, Any]:
    return _record_view(await engine.get_recommendation(owner, reco_id))


@router.delete("/{reco_id}/courses/{course_id}", response_model=CourseDeletionResult)
async def delete_course(
    reco_id: int = Path(..., gt=0),
    course_id: int = Path(..., gt=0),
    owner: str = Depends(get_owner),
    editor: PayloadEditor = Depends(get_payload_editor),
):
    return await editor.delete_course(owner, reco_id, course_id)
