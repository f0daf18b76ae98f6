from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from docuthinker.errors import UnsupportedFormat

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class DocumentFormat(str, Enum):
    """Formats the text extractor understands."""

    PDF = "pdf"
    DOCX = "docx"

    @classmethod
    def from_declared(cls, declared: str | None) -> DocumentFormat:
        """Map a declared media type (MIME type or short name) to a format.

        Raises:
            UnsupportedFormat: For anything that is not PDF or DOCX.
        """
        normalized = (declared or "").split(";")[0].strip().lower()
        if normalized in (PDF_MIME, "pdf", ".pdf"):
            return cls.PDF
        if normalized in (DOCX_MIME, "docx", ".docx"):
            return cls.DOCX
        raise UnsupportedFormat(declared)

    @property
    def mime_type(self) -> str:
        return PDF_MIME if self is DocumentFormat.PDF else DOCX_MIME


class UploadableFile(BaseModel):
    """A picked file, held client-side between selection and upload."""

    name: str
    media_type: str | None = None
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)


class ExtractionResult(BaseModel):
    text: str
    source_name: str
    format: DocumentFormat
    page_count: int | None = None  # None for DOCX, page breaks carry no meaning


class UploadPayload(BaseModel):
    """JSON body for POST /upload."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    text: str
    user_id: str | None = Field(default=None, alias="userId")


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    original_text: str = Field(default="", alias="originalText")
    title: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    document_id: str | None = Field(default=None, alias="documentId")


class DocumentRecord(BaseModel):
    """One summarized document owned by a user."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    user_id: str = Field(alias="userId")
    title: str
    summary: str = ""
    original_text: str = Field(default="", alias="originalText")
    content_hash: str = Field(default="", alias="contentHash")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    version: int = 1  # bumped on every write, used as an optimistic-concurrency token


class TitleUpdate(BaseModel):
    """Request body for POST /update-document-title."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    doc_id: str = Field(alias="docId")
    new_title: str = Field(alias="newTitle", min_length=1)
    expected_version: int | None = Field(default=None, alias="version")
