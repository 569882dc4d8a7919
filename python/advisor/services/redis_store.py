import os, asyncio, logging
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel
from redis.exceptions import RedisError

from ..errors import PersistenceError
from ..models import (
    CatalogCourse, CreateRecommendationParams, CreateScholarshipParams,
    RecommendationRecord, ScholarshipRecord, Transcript,
)
from .store import AdvisorStore

logger = logging.getLogger(__name__)

REDIS_OP_TIMEOUT_MS = int(os.getenv("REDIS_OP_TIMEOUT_MS", "500"))

M = TypeVar("M", bound=BaseModel)


class RedisAdvisorStore(AdvisorStore):
    """
    Redis-backed store.
    Keys:
      - advisor:seq:{kind}                -> INCR id sequence
      - advisor:transcript:{id}           -> JSON(Transcript)
      - advisor:transcripts:{owner}       -> ZSET of transcript ids (score = id)
      - advisor:courses                   -> HASH id -> JSON(CatalogCourse)
      - advisor:recommendation:{id}       -> JSON(RecommendationRecord)
      - advisor:recommendations:{owner}   -> ZSET of recommendation ids
      - advisor:scholarship:{id}          -> JSON(ScholarshipRecord)
      - advisor:scholarships:{owner}      -> ZSET of scholarship ids
    Every call is one command (or a read followed by one write); there is no
    MULTI/EXEC around a generation's writes.
    """

    def __init__(self, redis_client, prefix: str = "advisor"):
        self.r = redis_client
        self.prefix = prefix

    def _key(self, *parts) -> str:
        return ":".join([self.prefix, *[str(p) for p in parts]])

    async def _op(self, name: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=REDIS_OP_TIMEOUT_MS / 1000)
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Redis {name} failed: {e}")
            raise PersistenceError(f"redis {name} failed: {e}")

    async def _next_id(self, kind: str) -> int:
        return int(await self._op("INCR", self.r.incr(self._key("seq", kind))))

    async def _load(self, model_cls: Type[M], key: str) -> Optional[M]:
        raw = await self._op("GET", self.r.get(key))
        if not raw:
            return None
        return model_cls.model_validate_json(raw)

    async def _load_many(self, model_cls: Type[M], kind: str, ids) -> List[M]:
        if not ids:
            return []
        keys = [self._key(kind, i) for i in ids]
        raws = await self._op("MGET", self.r.mget(keys))
        return [model_cls.model_validate_json(raw) for raw in raws if raw]

    async def _newest_ids(self, index_key: str, limit: Optional[int] = None) -> List[str]:
        if limit is not None and limit <= 0:
            return []
        stop = -1 if limit is None else limit - 1
        return await self._op("ZREVRANGE", self.r.zrevrange(index_key, 0, stop))

    async def _insert(self, kind: str, owner: str, record: BaseModel, record_id: int):
        await self._op("SET", self.r.set(self._key(kind, record_id), record.model_dump_json()))
        await self._op("ZADD", self.r.zadd(self._key(f"{kind}s", owner), {str(record_id): record_id}))

    # --- seeding (ingestion lives outside the core) ---

    async def put_transcript(self, owner: str, text_extracted: Optional[str], filename: Optional[str] = None) -> Transcript:
        tr = Transcript(id=await self._next_id("transcript"), owner=owner,
                        filename=filename, text_extracted=text_extracted)
        await self._insert("transcript", owner, tr, tr.id)
        return tr

    async def put_course(self, course: CatalogCourse) -> CatalogCourse:
        await self._op("HSET", self.r.hset(self._key("courses"), str(course.id), course.model_dump_json()))
        return course

    # --- contract ---

    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]:
        return await self._load(Transcript, self._key("transcript", transcript_id))

    async def list_transcripts(self, owner: str) -> List[Transcript]:
        ids = await self._newest_ids(self._key("transcripts", owner))
        return await self._load_many(Transcript, "transcript", ids)

    async def list_all_courses(self) -> List[CatalogCourse]:
        raw = await self._op("HGETALL", self.r.hgetall(self._key("courses")))
        courses = [CatalogCourse.model_validate_json(v) for v in raw.values()]
        return sorted(courses, key=lambda c: c.id)

    async def create_recommendation(self, params: CreateRecommendationParams) -> RecommendationRecord:
        rec = RecommendationRecord(
            id=await self._next_id("recommendation"),
            owner=params.owner,
            transcript_id=params.transcript_id,
            payload=params.payload,
            summary=params.summary,
        )
        await self._insert("recommendation", params.owner, rec, rec.id)
        return rec

    async def get_recommendation(self, recommendation_id: int) -> Optional[RecommendationRecord]:
        return await self._load(RecommendationRecord, self._key("recommendation", recommendation_id))

    async def update_recommendation_payload(
        self, recommendation_id: int, owner: str, payload: str
    ) -> Optional[RecommendationRecord]:
        # Read-then-write: concurrent editors race, last writer wins
        current = await self.get_recommendation(recommendation_id)
        if current is None or current.owner != owner:
            return None
        updated = current.model_copy(update={"payload": payload})
        await self._op("SET", self.r.set(self._key("recommendation", recommendation_id), updated.model_dump_json()))
        return updated

    async def list_recommendations(self, owner: str) -> List[RecommendationRecord]:
        ids = await self._newest_ids(self._key("recommendations", owner))
        return await self._load_many(RecommendationRecord, "recommendation", ids)

    async def create_scholarship(self, params: CreateScholarshipParams) -> ScholarshipRecord:
        row = ScholarshipRecord(
            id=await self._next_id("scholarship"),
            owner=params.owner,
            title=params.title,
            description=params.description,
            match_score=params.match_score,
            link=params.link,
        )
        await self._insert("scholarship", params.owner, row, row.id)
        return row

    async def list_recent_scholarships(self, owner: str, limit: int) -> List[ScholarshipRecord]:
        ids = await self._newest_ids(self._key("scholarships", owner), limit=limit)
        return await self._load_many(ScholarshipRecord, "scholarship", ids)

    async def health_check(self) -> bool:
        try:
            return bool(await self._op("PING", self.r.ping()))
        except PersistenceError:
            return False

    async def close(self):
        try:
            await self.r.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis: {e}")
