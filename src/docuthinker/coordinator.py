"""Client-side upload flow: pick a file, extract its text, post it, keep the result.

The coordinator is a small state machine:

    IDLE -> EXTRACTING -> SUMMARIZING -> SUCCEEDED | FAILED

Only one upload runs at a time. While extracting or summarizing, further
`submit()` calls do nothing. After SUCCEEDED or FAILED the user may submit
again. Every failure leaves a single dismissible notification that expires
after six seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

import httpx
import logfire

from docuthinker import config
from docuthinker.client_storage import ORIGINAL_TEXT_KEY, USER_ID_KEY, ClientStorage
from docuthinker.errors import DocuThinkerError, NetworkError, ServerError, ValidationError
from docuthinker.extract import extract_text
from docuthinker.models import ExtractionResult, UploadableFile, UploadPayload, UploadResponse
from docuthinker.sources import DriveFileSource, FileSource, LocalFileSource

log = logging.getLogger(__name__)

NOTIFICATION_TTL = 6.0
VALIDATION_MESSAGE = "Please select a file and provide a title."
FAILURE_PREFIX = "Upload failed: "


class UploadState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    SUMMARIZING = "summarizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


PROGRESS_MESSAGES = {
    UploadState.EXTRACTING: "Extracting text...",
    UploadState.SUMMARIZING: "Summarizing your document...",
}


@dataclass
class Notification:
    message: str
    severity: str = "error"
    ttl: float = NOTIFICATION_TTL
    created_at: float = field(default_factory=time.monotonic)
    dismissed: bool = False

    @property
    def expired(self) -> bool:
        return time.monotonic() - self.created_at >= self.ttl

    @property
    def visible(self) -> bool:
        return not self.dismissed and not self.expired

    def dismiss(self) -> None:
        self.dismissed = True


class UploadCoordinator:
    def __init__(
        self,
        source: FileSource,
        backend_url: str = config.BACKEND_URL,
        storage: ClientStorage | None = None,
        client: httpx.AsyncClient | None = None,
        on_summary: Callable[[str], None] | None = None,
        on_original_text: Callable[[str], None] | None = None,
        extractor: Callable[[UploadableFile], Awaitable[ExtractionResult]] = extract_text,
    ):
        self.source = source
        self.backend_url = backend_url.rstrip("/")
        self.storage = storage or ClientStorage()
        self._client = client
        self._on_summary = on_summary
        self._on_original_text = on_original_text
        self._extract = extractor

        self.state = UploadState.IDLE
        self.progress_message = ""
        self.file: UploadableFile | None = None
        self.title = ""
        self._notification: Notification | None = None

    @property
    def busy(self) -> bool:
        return self.state in (UploadState.EXTRACTING, UploadState.SUMMARIZING)

    @property
    def notification(self) -> Notification | None:
        if self._notification is not None and self._notification.visible:
            return self._notification
        return None

    def dismiss_notification(self) -> None:
        if self._notification is not None:
            self._notification.dismiss()

    def _notify(self, message: str) -> None:
        self._notification = Notification(message)

    def _transition(self, state: UploadState) -> None:
        log.debug("Upload state %s -> %s", self.state.value, state.value)
        self.state = state
        self.progress_message = PROGRESS_MESSAGES.get(state, "")

    def _fail(self, message: str) -> None:
        self._transition(UploadState.FAILED)
        self._notify(f"{FAILURE_PREFIX}{message}")

    async def pick(self, ref: str) -> UploadableFile:
        """Fetch a file from the configured source; its name becomes the default title."""
        file = await self.source.fetch(ref)
        self.file = file
        self.title = file.name
        return file

    async def _post(self, payload: UploadPayload) -> UploadResponse:
        body = payload.model_dump(by_alias=True, exclude_none=True)
        url = f"{self.backend_url}/upload"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=120.0) as client:
                    response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.is_error:
            try:
                message = response.json().get("error")
            except (ValueError, AttributeError):
                message = None
            raise ServerError(
                message or f"Request failed with status code {response.status_code}",
                response.status_code,
            )
        try:
            return UploadResponse.model_validate(response.json())
        except ValueError as e:
            # pydantic.ValidationError is a ValueError too
            raise ServerError(
                f"Unexpected response from server (status {response.status_code})",
                response.status_code,
            ) from e

    async def submit(
        self, file: UploadableFile | None = None, title: str | None = None
    ) -> UploadResponse | None:
        """Extract, upload and hand the summary to the state sinks.

        Returns None without doing anything while another upload is running.

        Raises:
            ValidationError: File or title missing. Nothing is extracted or sent.
            UnsupportedFormat, ParseError: Extraction failed.
            NetworkError, ServerError: The upload request failed.

        Any other error also ends in FAILED with a notification before it
        propagates, so the coordinator never stays busy.
        """
        if self.busy:
            log.debug("Upload already in progress, ignoring submit")
            return None

        file = file or self.file
        title = title if title is not None else self.title
        if file is None or not title:
            self._notify(VALIDATION_MESSAGE)
            raise ValidationError(VALIDATION_MESSAGE)

        try:
            self._transition(UploadState.EXTRACTING)
            extraction = await self._extract(file)

            self._transition(UploadState.SUMMARIZING)
            payload = UploadPayload(
                title=title,
                text=extraction.text,
                user_id=self.storage.get_item(USER_ID_KEY),
            )
            response = await self._post(payload)
        except DocuThinkerError as e:
            self._fail(str(e))
            log.error("Upload failed: %s", e)
            raise
        except Exception as e:
            self._fail(str(e) or type(e).__name__)
            log.exception("Unexpected upload failure")
            raise
        except asyncio.CancelledError:
            self._fail("cancelled")
            raise

        self._transition(UploadState.SUCCEEDED)
        if self._on_summary:
            self._on_summary(response.summary)
        if self._on_original_text:
            self._on_original_text(response.original_text)
        try:
            self.storage.set_item(ORIGINAL_TEXT_KEY, response.original_text)
        except OSError as e:
            log.warning("Could not persist original text: %s", e)
        return response


async def _run(args: argparse.Namespace) -> int:
    storage = ClientStorage(args.storage)
    if args.user_id:
        storage.set_item(USER_ID_KEY, args.user_id)

    token = args.drive_token or os.environ.get("GOOGLE_DRIVE_TOKEN", "")
    if args.list_drive:
        for f in await DriveFileSource(token).list_files():
            print(f"{f.id}\t{f.name}\t{f.mime_type or ''}")
        return 0

    source: FileSource = DriveFileSource(token) if args.drive else LocalFileSource()
    coordinator = UploadCoordinator(
        source,
        backend_url=args.backend,
        storage=storage,
        on_summary=lambda s: print(s),
    )
    try:
        if args.ref:
            await coordinator.pick(args.ref)
        await coordinator.submit(title=args.title)
    except DocuThinkerError:
        notice = coordinator.notification
        print(notice.message if notice else "Upload failed", file=sys.stderr)
        return 1
    return 0


def main():
    config.configure_logfire("docuthinker-upload")
    config.setup_logging()
    logfire.instrument_httpx()
    parser = argparse.ArgumentParser(
        description="Extract text from a PDF or DOCX and summarize it"
    )
    parser.add_argument("ref", nargs="?", help="Local file path, or Drive file id with --drive")
    parser.add_argument("--title", help="Document title (defaults to the file name)")
    parser.add_argument("--backend", default=config.BACKEND_URL, help="Backend base URL")
    parser.add_argument("--user-id", help="Remember this user id for future uploads")
    parser.add_argument(
        "--storage",
        type=Path,
        default=config.CLIENT_STORAGE_PATH,
        help="Path to the client storage file",
    )
    parser.add_argument("--drive", action="store_true", help="Treat ref as a Google Drive file id")
    parser.add_argument("--list-drive", action="store_true", help="List Google Drive files and exit")
    parser.add_argument("--drive-token", help="Google OAuth access token")
    args = parser.parse_args()
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
