# Payload Editor - removes one course from a stored recommendation
# Only `courses` is rewritten; the scholarships block and any other keys go back byte for byte.

import logging
from typing import List

from ..errors import AuthenticationError, NotFoundError, PersistenceError
from ..models import CourseDeletionResult, CourseRecommendation
from ..utils.payload_codec import PayloadDecodeError, decode_payload, encode_payload
from .store import AdvisorStore

logger = logging.getLogger(__name__)


class PayloadEditor:

    def __init__(self, store: AdvisorStore):
        self.store = store

    async def remove_course(self, owner: str, recommendation_id: int, course_id: int) -> List[CourseRecommendation]:
        """
        Read, edit and write back the whole payload. Two editors racing on the same
        recommendation both succeed and the later write wins.
        """
        if not (owner or "").strip():
            raise AuthenticationError("unauthorized")

        reco = await self.store.get_recommendation(recommendation_id)
        if reco is None or reco.owner != owner:
            raise NotFoundError("recommendation not found", details={"recommendation_id": recommendation_id})

        try:
            payload = decode_payload(reco.payload)
        except PayloadDecodeError as e:
            logger.error(f"Recommendation {recommendation_id} has an unreadable payload: {e}")
            raise PersistenceError("stored recommendation payload is invalid", details={"reason": str(e)})

        remaining = [c for c in payload.courses if c.course_id != course_id]
        if len(remaining) == len(payload.courses):
            raise NotFoundError(
                "course not found in recommendation",
                details={"recommendation_id": recommendation_id, "course_id": course_id},
            )

        payload.courses = remaining
        updated = await self.store.update_recommendation_payload(recommendation_id, owner, encode_payload(payload))
        if updated is None:
            raise NotFoundError("recommendation not found", details={"recommendation_id": recommendation_id})

        logger.info(f"Removed course {course_id} from recommendation {recommendation_id}, {len(remaining)} left")
        return remaining

    async def delete_course(self, owner: str, recommendation_id: int, course_id: int) -> CourseDeletionResult:
        return CourseDeletionResult(courses=await self.remove_course(owner, recommendation_id, course_id))
