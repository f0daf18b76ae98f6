"""Summarization strategies for POST /upload.

The server picks one strategy at startup and hands every upload to it:

* `AgentSummarizer` does the full job: server-side extraction for file
  uploads, an LLM summary, persistence and caching.
* `FallbackSummarizer` answers with deterministic placeholder summaries and
  never calls out. Used in local development and tests.
"""

from __future__ import annotations

import hashlib
import logging
import os
from abc import ABC, abstractmethod

from pydantic_ai import Agent

from docuthinker.cache import CacheGateway, query_key
from docuthinker.errors import ValidationError
from docuthinker.extract import extract_text
from docuthinker.models import (
    DocumentRecord,
    UploadableFile,
    UploadPayload,
    UploadResponse,
)
from docuthinker.store import DocumentStore

log = logging.getLogger(__name__)

SNIPPET_LENGTH = 200
TRUNCATION_MARKER = "…"

SUMMARY_SYSTEM_PROMPT = (
    "You are a document summarization assistant. You will receive the title "
    "and the full extracted text of a document. Write a faithful summary of "
    "the document in a few short paragraphs: what it is, its main points, "
    "and any conclusions or recommendations it makes. Do not invent facts "
    "that are not in the text."
)


class Summarizer(ABC):
    name: str

    @abstractmethod
    async def summarize_text(self, payload: UploadPayload) -> UploadResponse:
        """Summarize text that was already extracted client-side."""

    @abstractmethod
    async def summarize_file(self, file: UploadableFile) -> UploadResponse:
        """Summarize a raw uploaded file."""


class FallbackSummarizer(Summarizer):
    name = "fallback"

    async def summarize_text(self, payload: UploadPayload) -> UploadResponse:
        summary = payload.text[:SNIPPET_LENGTH]
        if len(payload.text) > SNIPPET_LENGTH:
            summary += TRUNCATION_MARKER
        return UploadResponse(
            summary=summary,
            original_text=payload.text,
            title=payload.title,
            user_id=payload.user_id,
        )

    async def summarize_file(self, file: UploadableFile) -> UploadResponse:
        # No extraction here: the client already extracts before uploading.
        if not file.media_type:
            raise ValidationError("Uploaded file missing mimetype")
        summary = (
            f'Fallback summary for "{file.name}". '
            f"File type: {file.media_type}, size: {file.size} bytes."
        )
        return UploadResponse(summary=summary, original_text="", title=file.name)


def content_hash(title: str, text: str) -> str:
    return hashlib.sha256(f"{title}\n{text}".encode()).hexdigest()


class AgentSummarizer(Summarizer):
    name = "agent"

    def __init__(
        self,
        store: DocumentStore,
        cache: CacheGateway,
        model: str,
        agent: Agent[None, str] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.model = model
        self._agent = agent

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = Agent(self.model, system_prompt=SUMMARY_SYSTEM_PROMPT)
        return self._agent

    async def _summary_for(self, title: str, text: str, digest: str) -> str:
        key = query_key(f"summary:{digest}")
        cached = await self.cache.fetch_from_cache(key)
        if isinstance(cached, dict) and cached.get("summary"):
            log.info("Summary cache hit for %s", digest[:12])
            return cached["summary"]
        result = await self._get_agent().run(f"Title: {title}\n\n{text}")
        summary = result.output
        await self.cache.cache_query_results(f"summary:{digest}", {"summary": summary})
        return summary

    async def summarize_text(self, payload: UploadPayload) -> UploadResponse:
        digest = content_hash(payload.title, payload.text)
        summary = await self._summary_for(payload.title, payload.text, digest)

        doc_id = None
        if payload.user_id:
            doc = self.store.find_by_hash(payload.user_id, digest)
            if doc is None:
                doc = self.store.add(
                    DocumentRecord(
                        user_id=payload.user_id,
                        title=payload.title,
                        summary=summary,
                        original_text=payload.text,
                        content_hash=digest,
                    )
                )
            doc_id = doc.id
            await self.cache.cache_document_metadata(
                doc.id, doc.model_dump(mode="json", by_alias=True)
            )

        return UploadResponse(
            summary=summary,
            original_text=payload.text,
            title=payload.title,
            user_id=payload.user_id,
            document_id=doc_id,
        )

    async def summarize_file(self, file: UploadableFile) -> UploadResponse:
        extraction = await extract_text(file)
        if not extraction.text.strip():
            raise ValidationError(f'No text could be extracted from "{file.name}"')
        return await self.summarize_text(UploadPayload(title=file.name, text=extraction.text))


def build_summarizer(
    kind: str, store: DocumentStore, cache: CacheGateway, model: str
) -> Summarizer:
    """Choose the strategy once, at startup."""
    if kind == "auto":
        kind = "agent" if os.environ.get("ANTHROPIC_API_KEY") else "fallback"
    if kind == "agent":
        log.info("Using agent summarizer (%s)", model)
        return AgentSummarizer(store, cache, model)
    if kind == "fallback":
        log.info("Using fallback summarizer")
        return FallbackSummarizer()
    raise ValueError(f"Unknown summarizer: {kind!r}")
