from __future__ import annotations


class DocuThinkerError(Exception):
    """Base class for every failure the upload flow reports to the user."""


class ValidationError(DocuThinkerError):
    """Raised when a required field (file, title, text) is missing."""


class UnsupportedFormat(DocuThinkerError):
    """Raised when a file declares a media type we cannot extract."""

    def __init__(self, declared_type: str | None):
        self.declared_type = declared_type
        super().__init__(f"Unsupported file format: {declared_type or 'unknown'}")


class ParseError(DocuThinkerError):
    """Raised when the PDF or DOCX library fails on a recognised format.

    The library's own message is kept so it can be shown as-is.
    """


class NetworkError(DocuThinkerError):
    """Raised when the backend could not be reached at all."""


class ServerError(DocuThinkerError):
    """Raised when the backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)
