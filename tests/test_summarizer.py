import pytest
from pydantic_ai import Agent
from pydantic_ai.messages import ModelMessage, ModelResponse, TextPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from conftest import make_pdf
from docuthinker.cache import CacheGateway, metadata_key
from docuthinker.errors import UnsupportedFormat, ValidationError
from docuthinker.models import PDF_MIME, UploadableFile, UploadPayload
from docuthinker.summarizer import (
    AgentSummarizer,
    FallbackSummarizer,
    TRUNCATION_MARKER,
    build_summarizer,
)


def counting_agent(reply="A short summary."):
    calls = []

    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        calls.append(messages)
        return ModelResponse(parts=[TextPart(reply)])

    return Agent(FunctionModel(respond)), calls


@pytest.mark.asyncio
async def test_fallback_short_text_is_echoed():
    result = await FallbackSummarizer().summarize_text(UploadPayload(title="T", text="hello world"))
    assert result.summary == "hello world"
    assert result.original_text == "hello world"
    assert result.title == "T"


@pytest.mark.asyncio
async def test_fallback_long_text_is_truncated():
    text = "x" * 250
    result = await FallbackSummarizer().summarize_text(
        UploadPayload(title="T", text=text, user_id="u1")
    )
    assert result.summary == "x" * 200 + TRUNCATION_MARKER
    assert result.original_text == text
    assert result.user_id == "u1"


@pytest.mark.asyncio
async def test_fallback_file_describes_the_file():
    file = UploadableFile(name="a.pdf", media_type=PDF_MIME, content=b"12345")
    result = await FallbackSummarizer().summarize_file(file)
    assert result.summary == 'Fallback summary for "a.pdf". File type: application/pdf, size: 5 bytes.'
    assert result.original_text == ""
    assert result.title == "a.pdf"


@pytest.mark.asyncio
async def test_fallback_file_requires_a_media_type():
    with pytest.raises(ValidationError):
        await FallbackSummarizer().summarize_file(UploadableFile(name="a", content=b"1"))


@pytest.mark.asyncio
async def test_agent_summarizes_and_persists(store, cache):
    agent, calls = counting_agent()
    summarizer = AgentSummarizer(store, cache, "test", agent=agent)

    result = await summarizer.summarize_text(UploadPayload(title="T", text="body", user_id="u1"))

    assert result.summary == "A short summary."
    assert len(calls) == 1
    [doc] = store.list_for_user("u1")
    assert result.document_id == doc.id
    assert doc.summary == "A short summary."
    cached = await cache.fetch_from_cache(metadata_key(doc.id))
    assert cached["title"] == "T"


@pytest.mark.asyncio
async def test_agent_reuses_cached_summary(store, cache):
    agent, calls = counting_agent()
    summarizer = AgentSummarizer(store, cache, "test", agent=agent)
    payload = UploadPayload(title="T", text="same body", user_id="u1")

    first = await summarizer.summarize_text(payload)
    second = await summarizer.summarize_text(payload)

    assert len(calls) == 1
    assert first.summary == second.summary
    assert first.document_id == second.document_id
    assert len(store.list_for_user("u1")) == 1


@pytest.mark.asyncio
async def test_agent_works_without_cache(store):
    agent, calls = counting_agent()
    summarizer = AgentSummarizer(store, CacheGateway(), "test", agent=agent)
    payload = UploadPayload(title="T", text="body")
    await summarizer.summarize_text(payload)
    await summarizer.summarize_text(payload)
    assert len(calls) == 2
    assert store.list_for_user("u1") == []


@pytest.mark.asyncio
async def test_agent_extracts_uploaded_files(store, cache):
    agent, calls = counting_agent()
    summarizer = AgentSummarizer(store, cache, "test", agent=agent)
    file = UploadableFile(name="a.pdf", media_type=PDF_MIME, content=make_pdf(["Quarterly report"]))

    result = await summarizer.summarize_file(file)

    assert result.original_text == "Quarterly report\n"
    assert result.title == "a.pdf"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_agent_rejects_unsupported_files(store, cache):
    agent, calls = counting_agent()
    summarizer = AgentSummarizer(store, cache, "test", agent=agent)
    with pytest.raises(UnsupportedFormat):
        await summarizer.summarize_file(UploadableFile(name="a.txt", media_type="text/plain", content=b"x"))
    assert calls == []


def test_build_summarizer(store, cache, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    assert build_summarizer("auto", store, cache, "test").name == "fallback"
    assert build_summarizer("fallback", store, cache, "test").name == "fallback"
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    assert build_summarizer("auto", store, cache, "test").name == "agent"
    with pytest.raises(ValueError):
        build_summarizer("gpt", store, cache, "test")
