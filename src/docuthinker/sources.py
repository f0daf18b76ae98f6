"""Where picked files come from: the local filesystem or Google Drive."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Protocol

import httpx
from pydantic import BaseModel, Field

from docuthinker.errors import NetworkError
from docuthinker.models import DOCX_MIME, PDF_MIME, UploadableFile

log = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

_KNOWN_SUFFIXES = {".pdf": PDF_MIME, ".docx": DOCX_MIME}


class FileSource(Protocol):
    async def fetch(self, ref: str) -> UploadableFile:
        """Resolve a reference (path, file id) to a file with its bytes."""
        ...


class LocalFileSource:
    """Files picked from disk, the equivalent of a drag-and-drop."""

    async def fetch(self, ref: str) -> UploadableFile:
        path = Path(ref)
        content = await asyncio.to_thread(path.read_bytes)
        media_type = _KNOWN_SUFFIXES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
        return UploadableFile(name=path.name, media_type=media_type, content=content)


class DriveFile(BaseModel):
    id: str
    name: str
    mime_type: str | None = Field(default=None, alias="mimeType")


class DriveFileSource:
    """Files picked from the user's Google Drive with an OAuth access token."""

    def __init__(self, access_token: str, client: httpx.AsyncClient | None = None):
        self.access_token = access_token
        self._client = client

    async def _get(self, url: str, **params) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(follow_redirects=True, timeout=60.0) as client:
                    response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(f"Google Drive request failed: {e}") from e
        return response

    async def list_files(self, page_size: int = 50) -> list[DriveFile]:
        response = await self._get(
            DRIVE_FILES_URL, pageSize=page_size, fields="files(id,name,mimeType)"
        )
        return [DriveFile.model_validate(f) for f in response.json().get("files", [])]

    async def fetch(self, ref: str) -> UploadableFile:
        meta = await self._get(f"{DRIVE_FILES_URL}/{ref}", fields="id,name,mimeType")
        drive_file = DriveFile.model_validate(meta.json())
        content = await self._get(f"{DRIVE_FILES_URL}/{ref}", alt="media")
        log.info("Downloaded %s from Google Drive (%d bytes)", drive_file.name, len(content.content))
        return UploadableFile(
            name=drive_file.name, media_type=drive_file.mime_type, content=content.content
        )
