# Tests for transcript summaries

from datetime import timedelta

import pytest

from advisor.errors import NotFoundError, UpstreamInferenceError, ValidationError
from advisor.services.summary_service import SummaryService

from conftest import TRANSCRIPT_TEXT


@pytest.mark.asyncio
async def test_summary_uses_latest_transcript_in_text_mode(store, mock_inference):
    await store.put_transcript("alice", "older")
    await store.put_transcript("alice", TRANSCRIPT_TEXT)
    mock_inference.complete.return_value = "\n  Strong programmer.\n\nGood at math.  \n"

    out = await SummaryService(store, mock_inference).generate("alice")

    assert out.user == "alice"
    assert out.summary_text == "Strong programmer.\n\nGood at math."
    assert out.generated_at.utcoffset() == timedelta(0)
    messages = mock_inference.complete.await_args.args[0]
    assert messages[0].content.startswith("You are an academic summarizer.")
    assert "3 concise paragraphs" in messages[1].content
    assert TRANSCRIPT_TEXT.strip() in messages[1].content and "older" not in messages[1].content
    assert mock_inference.complete.await_args.kwargs["json_mode"] is False


@pytest.mark.asyncio
async def test_blank_transcript_never_calls_inference(store, mock_inference):
    await store.put_transcript("alice", None)
    with pytest.raises(ValidationError):
        await SummaryService(store, mock_inference).generate("alice")
    mock_inference.complete.assert_not_called()


@pytest.mark.asyncio
async def test_no_transcripts(store, mock_inference):
    with pytest.raises(NotFoundError):
        await SummaryService(store, mock_inference).generate("nobody")


@pytest.mark.asyncio
async def test_inference_errors_propagate(store, mock_inference):
    await store.put_transcript("alice", TRANSCRIPT_TEXT)
    mock_inference.complete.side_effect = UpstreamInferenceError("empty_result", "no choices")
    with pytest.raises(UpstreamInferenceError):
        await SummaryService(store, mock_inference).generate("alice")
