# Integration tests for the gateway routes over ASGI

import json

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock

from advisor import dependencies
from advisor.config import Settings
from advisor.errors import UpstreamInferenceError, UpstreamSearchError
from advisor.main import app
from advisor.models import WebResult

from conftest import TRANSCRIPT_TEXT

ALICE = {"X-Authenticated-User": "alice"}


class StreamingInference:
    """Inference double that supports both call styles"""

    def __init__(self):
        self.complete = AsyncMock()
        self.tokens = ["Take", " CS301"]
        self.error = None
        self.seen_messages = None
        self.api_key = "sk-test"

    async def stream_complete(self, messages, model=None):
        self.seen_messages = messages
        if self.error is not None:
            raise self.error
        for t in self.tokens:
            yield t

    async def close(self):
        return None


@pytest.fixture
def inference():
    return StreamingInference()


@pytest_asyncio.fixture
async def client(store, inference, mock_search):
    dependencies.configure(Settings(openai_api_key="sk-test"), store, inference, mock_search)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    dependencies.reset()


@pytest.mark.asyncio
async def test_health_and_metrics(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["services"]["store"] is True

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "advisor_http_requests_total" in metrics.text


@pytest.mark.asyncio
async def test_missing_identity_is_401(client):
    resp = await client.post("/api/recommendations", json={"transcript_id": 1})
    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_create_list_get_and_delete_recommendation(client, store, inference):
    tr = await store.put_transcript("alice", TRANSCRIPT_TEXT)
    inference.complete.side_effect = [
        '{"completed_codes": ["CS101"]}',
        json.dumps({"recommendations": [
            {"course_id": 3, "code": "CS301", "title": "ML", "rationale": "fits", "match": 90},
            {"course_id": 5, "code": "CS320", "title": "DE", "rationale": "fits", "match": 75},
        ]}),
    ]

    resp = await client.post("/api/recommendations", headers=ALICE,
                             json={"transcript_id": tr.id, "preference": "ml"})
    assert resp.status_code == 200
    created = resp.json()
    assert [c["course_id"] for c in created["courses"]] == [3, 5]
    assert created["user_pref"] == "ml"
    assert "message" not in created

    listed = (await client.get("/api/recommendations", headers=ALICE)).json()
    assert [r["id"] for r in listed] == [created["id"]]
    assert listed[0]["payload"]["courses"][0]["code"] == "CS301"

    assert (await client.get(f"/api/recommendations/{created['id']}", headers=ALICE)).status_code == 200
    other = await client.get(f"/api/recommendations/{created['id']}", headers={"X-Authenticated-User": "bob"})
    assert other.status_code == 404

    deleted = await client.delete(f"/api/recommendations/{created['id']}/courses/3", headers=ALICE)
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Course deleted."
    assert [c["course_id"] for c in deleted.json()["courses"]] == [5]

    missing = await client.delete(f"/api/recommendations/{created['id']}/courses/3", headers=ALICE)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_no_candidates_response(client, store, inference, sample_catalog):
    tr = await store.put_transcript("alice", TRANSCRIPT_TEXT)
    inference.complete.side_effect = [json.dumps({"completed_codes": [c.code for c in sample_catalog]})]

    resp = await client.post("/api/recommendations", headers=ALICE, json={"transcript_id": tr.id})
    assert resp.status_code == 200
    assert resp.json()["courses"] == []
    assert resp.json()["message"] == "No new courses available."


@pytest.mark.asyncio
async def test_invalid_transcript_id_and_upstream_failure(client, store, inference):
    resp = await client.post("/api/recommendations", headers=ALICE, json={"transcript_id": 0})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    bad_body = await client.post("/api/recommendations", headers=ALICE, json={"preference": "x"})
    assert bad_body.status_code == 422

    tr = await store.put_transcript("alice", TRANSCRIPT_TEXT)
    inference.complete.side_effect = UpstreamInferenceError("transport", "timed out")
    resp = await client.post("/api/recommendations", headers=ALICE, json={"transcript_id": tr.id})
    assert resp.status_code == 502
    assert resp.json()["error"]["details"]["stage"] == "transport"


@pytest.mark.asyncio
async def test_scholarships_and_summary(client, store, inference):
    await store.put_transcript("alice", TRANSCRIPT_TEXT)
    inference.complete.side_effect = [
        json.dumps([{"title": "AI Grant", "description": "d", "match": 80, "link": "https://g.test"}]),
        "A short summary.",
    ]

    sch = await client.post("/api/scholarships/generate", headers=ALICE)
    assert sch.status_code == 200
    assert sch.json()["user"] == "alice" and sch.json()["count"] == 1

    summ = await client.post("/api/summaries/generate", headers=ALICE)
    assert summ.status_code == 200
    assert summ.json()["summary_text"] == "A short summary."


@pytest.mark.asyncio
async def test_summary_without_transcript_is_404(client):
    resp = await client.post("/api/summaries/generate", headers=ALICE)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_chat_stream_relays_tokens_with_context(client, store, inference):
    tr = await store.put_transcript("alice", TRANSCRIPT_TEXT)
    from advisor.models import CreateRecommendationParams
    reco = await store.create_recommendation(CreateRecommendationParams(
        owner="alice", transcript_id=tr.id, payload='{"schema_version":1,"courses":[{"course_id":3,"code":"CS301"}]}'))

    resp = await client.post(
        "/api/chat/stream",
        headers={**ALICE, "X-Recommendation-ID": str(reco.id)},
        json={"messages": [{"role": "USER", "content": "What next?"}, {"role": "assistant", "content": ""}]},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.text == "data: Take\n\ndata:  CS301\n\ndata: [DONE]\n\n"
    system, *turns = inference.seen_messages
    assert "[RECOMMENDED COURSES JSON]" in system.content
    assert [(m.role, m.content) for m in turns] == [("user", "What next?")]


@pytest.mark.asyncio
async def test_chat_stream_upstream_failure_is_in_band(client, inference):
    inference.error = UpstreamInferenceError("missing_credential", "no inference API key configured")
    resp = await client.post("/api/chat/stream", headers=ALICE, json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 200
    assert resp.text.startswith("event: error\ndata: missing_credential")
    assert resp.text.endswith("data: [DONE]\n\n")


@pytest.mark.asyncio
async def test_chat_stream_rejects_empty_conversation(client):
    resp = await client.post("/api/chat/stream", headers=ALICE, json={"messages": [{"role": "user", "content": "  "}]})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_websearch_proxy(client, mock_search):
    mock_search.search.return_value = [WebResult(title="T", url="https://t.test", snippet="s")]
    resp = await client.get("/api/websearch", params={"q": "scholarships"})
    assert resp.status_code == 200
    assert resp.json() == [{"title": "T", "url": "https://t.test", "snippet": "s"}]

    mock_search.search.side_effect = UpstreamSearchError("http_status", "503", status=503)
    failed = await client.get("/api/websearch", params={"q": "scholarships"})
    assert failed.status_code == 502
    assert failed.json()["error"]["code"] == "UPSTREAM_SEARCH_ERROR"
