"""
Pytest configuration and fixtures for the advisory core tests
"""

import json

import httpx
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, Mock

from advisor.models import CatalogCourse
from advisor.services.store import InMemoryAdvisorStore

TRANSCRIPT_TEXT = """STUDENT: Jane Doe
CS101 Introduction to Programming A
CS102 Data Structures A-
MATH201 Linear Algebra B+
"""


def completion_body(content: str) -> dict:
    """OpenAI-style chat completion body carrying `content`"""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


def stream_body(tokens) -> bytes:
    """OpenAI-style streamed completion: one data line per delta, then [DONE]"""
    lines = []
    for t in tokens:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": t}}]}))
        lines.append("")
    lines.append("data: [DONE]")
    lines.append("")
    return "\n".join(lines).encode("utf-8")


def mock_http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def sample_catalog():
    """Catalog used across the generation tests"""
    return [
        CatalogCourse(id=1, code="CS101", name="Introduction to Programming",
                      description="Basics of programming.", link="https://catalog.test/cs101"),
        CatalogCourse(id=2, code="cs102 ", name="Data Structures",
                      description="Lists, trees and graphs.", link="https://catalog.test/cs102"),
        CatalogCourse(id=3, code="CS301", name="Machine Learning",
                      description="Supervised and unsupervised learning. " * 10, link="https://catalog.test/cs301"),
        CatalogCourse(id=4, code="CS310", name="Deep Learning",
                      description="Neural networks.", link=None),
        CatalogCourse(id=5, code="CS320", name="Data Engineering",
                      description="Pipelines and warehouses.", link="https://catalog.test/cs320"),
    ]


@pytest_asyncio.fixture
async def store(sample_catalog):
    s = InMemoryAdvisorStore()
    for c in sample_catalog:
        await s.put_course(c)
    return s


@pytest.fixture
def mock_inference():
    """Inference client double; tests set `complete` results per call"""
    client = Mock()
    client.complete = AsyncMock()
    client.close = AsyncMock()
    client.api_key = "sk-test"
    return client


@pytest.fixture
def mock_search():
    client = Mock()
    client.search = AsyncMock(return_value=[])
    client.close = AsyncMock()
    client.api_key = "brave-test"
    return client
