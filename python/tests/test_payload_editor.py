# Tests for removing courses from a stored recommendation

import asyncio
import json

import pytest

from advisor.errors import AuthenticationError, NotFoundError, PersistenceError
from advisor.models import CreateRecommendationParams
from advisor.services.payload_editor import PayloadEditor

SCHOLARSHIPS_RAW = '[{"id":1,"owner":"alice","title":"Grant  A","match_score":88.0,"link":"https://a.test"}]'


def course(cid, match):
    return {"type": "course", "title": f"Course {cid}", "description": "d", "match": match,
            "code": f"CS{cid}", "link": "", "course_id": cid}


async def seed(store, owner="alice", courses=None, scholarships=SCHOLARSHIPS_RAW):
    courses = courses if courses is not None else [course(3, 90), course(4, 80), course(5, 70)]
    payload = '{"schema_version":1,"courses":%s' % json.dumps(courses)
    if scholarships is not None:
        payload += ',"scholarships":' + scholarships
    payload += "}"
    return await store.create_recommendation(CreateRecommendationParams(owner=owner, transcript_id=1, payload=payload))


@pytest.mark.asyncio
async def test_remove_course_keeps_scholarships_byte_identical(store):
    reco = await seed(store)
    remaining = await PayloadEditor(store).remove_course("alice", reco.id, 4)

    assert [c.course_id for c in remaining] == [3, 5]
    stored = (await store.get_recommendation(reco.id)).payload
    assert stored.endswith(',"scholarships":' + SCHOLARSHIPS_RAW + "}")
    assert [c["course_id"] for c in json.loads(stored)["courses"]] == [3, 5]


@pytest.mark.asyncio
async def test_delete_course_result_shape(store):
    reco = await seed(store)
    result = await PayloadEditor(store).delete_course("alice", reco.id, 3)
    assert result.message == "Course deleted."
    assert [c.course_id for c in result.courses] == [4, 5]


@pytest.mark.asyncio
async def test_absent_course_leaves_payload_untouched(store):
    reco = await seed(store)
    before = (await store.get_recommendation(reco.id)).payload

    with pytest.raises(NotFoundError):
        await PayloadEditor(store).remove_course("alice", reco.id, 999)

    assert (await store.get_recommendation(reco.id)).payload == before


@pytest.mark.asyncio
async def test_other_owner_and_missing_recommendation(store):
    reco = await seed(store)
    editor = PayloadEditor(store)
    with pytest.raises(NotFoundError):
        await editor.remove_course("bob", reco.id, 3)
    with pytest.raises(NotFoundError):
        await editor.remove_course("alice", 4242, 3)
    with pytest.raises(AuthenticationError):
        await editor.remove_course("", reco.id, 3)


@pytest.mark.asyncio
async def test_last_course_and_no_scholarships(store):
    reco = await seed(store, courses=[course(3, 90)], scholarships=None)
    assert await PayloadEditor(store).remove_course("alice", reco.id, 3) == []
    assert json.loads((await store.get_recommendation(reco.id)).payload) == {"schema_version": 1, "courses": []}


@pytest.mark.asyncio
async def test_corrupt_payload_is_a_persistence_error(store):
    reco = await store.create_recommendation(CreateRecommendationParams(owner="alice", payload="not json"))
    with pytest.raises(PersistenceError):
        await PayloadEditor(store).remove_course("alice", reco.id, 3)


@pytest.mark.asyncio
async def test_concurrent_deletions_last_writer_wins(store):
    """Both editors read the same payload; the second write discards the first removal"""
    reco = await seed(store)
    editor = PayloadEditor(store)

    real_get = store.get_recommendation
    both_read = asyncio.Event()
    readers = 0

    async def synchronized_get(rid):
        nonlocal readers
        row = await real_get(rid)
        readers += 1
        if readers == 2:
            both_read.set()
        await both_read.wait()
        return row

    store.get_recommendation = synchronized_get
    first, second = await asyncio.gather(
        editor.remove_course("alice", reco.id, 3),
        editor.remove_course("alice", reco.id, 4),
    )
    store.get_recommendation = real_get

    assert [c.course_id for c in first] == [4, 5]
    assert [c.course_id for c in second] == [3, 5]
    final = json.loads((await store.get_recommendation(reco.id)).payload)
    final_ids = [c["course_id"] for c in final["courses"]]
    # One removal is lost: the stored list matches exactly one editor's view
    assert final_ids in ([4, 5], [3, 5])
    assert len(final_ids) == 2
