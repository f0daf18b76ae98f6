from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from docuthinker import config
from docuthinker.cache import CacheGateway, metadata_key
from docuthinker.errors import ParseError, UnsupportedFormat, ValidationError
from docuthinker.models import (
    DocumentRecord,
    TitleUpdate,
    UploadableFile,
    UploadPayload,
    UploadResponse,
)
from docuthinker.store import DocumentNotFoundError, DocumentStore, VersionConflictError
from docuthinker.summarizer import Summarizer, build_summarizer

config.configure_logfire("docuthinker-server")
config.setup_logging()
logfire.instrument_httpx()
logfire.instrument_pydantic_ai()
logfire.instrument_redis()

log = logging.getLogger(__name__)

NO_INPUT_MESSAGE = (
    "No file or text provided in request. "
    "Send multipart/form-data (file) or JSON {title,text}."
)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app(
    summarizer: Summarizer | None = None,
    store: DocumentStore | None = None,
    cache: CacheGateway | None = None,
    redis_url: str | None = config.REDIS_URL,
) -> FastAPI:
    """Build the app. Collaborators not passed in are created from config.

    The cache gateway is created here and injected everywhere; it connects
    on startup and stays inert until then.
    """
    store = store or DocumentStore()
    cache = cache or CacheGateway()
    summarizer = summarizer or build_summarizer(
        config.SUMMARIZER, store, cache, config.SUMMARIZER_MODEL
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not cache.connected:
            await cache.connect(redis_url)
        yield
        await cache.close()

    app = FastAPI(
        title="DocuThinker",
        description="Document upload and summarization API",
        lifespan=lifespan,
    )
    logfire.instrument_fastapi(app)

    app.state.store = store
    app.state.cache = cache
    app.state.summarizer = summarizer

    # Outside production every origin is accepted.
    if config.IS_PRODUCTION:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return _error(404, "Route not found", path=request.url.path)
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        return _error(400, f"Invalid request: {field} {first.get('msg', '')}".strip())

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        details = None if config.IS_PRODUCTION else "".join(traceback.format_exception(exc))
        content = {"error": str(exc) or "Internal Server Error"}
        if details:
            content["details"] = details
        return JSONResponse(status_code=500, content=content)


async def _read_upload(request: Request) -> UploadableFile | UploadPayload | None:
    """Return the file part, the JSON payload, or None if neither was sent.

    Raises:
        ValidationError: title, text or userId present but not a string.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        part = form.get("file")
        if isinstance(part, UploadFile):
            content = await part.read()
            return UploadableFile(
                name=part.filename or "upload", media_type=part.content_type, content=content
            )
        title, text = form.get("title"), form.get("text")
        body = {"title": title, "text": text, "userId": form.get("userId")}
    elif content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
    else:
        return None
    if not body.get("title") or not body.get("text"):
        return None
    try:
        return UploadPayload.model_validate(body)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ValidationError(f"Invalid request: {field} {first['msg']}") from e


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health(request: Request):
        summarizer = request.app.state.summarizer
        return {
            "status": "ok",
            "cache": request.app.state.cache.connected,
            "summarizer": summarizer.name,
        }

    @app.post("/upload", response_model=UploadResponse)
    async def upload(request: Request):
        """Accept a multipart `file` part or a JSON {title, text, userId?} body."""
        summarizer: Summarizer = request.app.state.summarizer
        try:
            received = await _read_upload(request)
            if received is None:
                return _error(400, NO_INPUT_MESSAGE)
            if isinstance(received, UploadableFile):
                if received.size > config.MAX_UPLOAD_BYTES:
                    return _error(
                        400,
                        f"File too large. Max size: {config.MAX_UPLOAD_BYTES // 1024 // 1024}MB",
                    )
                result = await summarizer.summarize_file(received)
            else:
                result = await summarizer.summarize_text(received)
        except (ValidationError, UnsupportedFormat, ParseError) as e:
            return _error(400, str(e))
        except Exception as e:
            log.exception("Upload route error")
            return _error(500, str(e) or "Upload error")
        return JSONResponse(result.model_dump(by_alias=True, exclude_none=True))

    @app.get("/documents/{user_id}", response_model=list[DocumentRecord])
    async def list_documents(user_id: str, request: Request):
        return request.app.state.store.list_for_user(user_id)

    @app.get("/documents/{user_id}/{doc_id}")
    async def get_document(user_id: str, doc_id: str, request: Request):
        store: DocumentStore = request.app.state.store
        cache: CacheGateway = request.app.state.cache
        data = await cache.fetch_from_cache(metadata_key(doc_id))
        if data is None or data.get("userId") != user_id:
            doc = store.get(user_id, doc_id)
            if doc is None:
                return _error(404, "Document not found")
            data = doc.model_dump(mode="json", by_alias=True)
            await cache.cache_document_metadata(doc_id, data)
        await cache.cache_recently_viewed(user_id, doc_id)
        return data

    @app.delete("/documents/{user_id}/{doc_id}")
    async def delete_document(user_id: str, doc_id: str, request: Request):
        try:
            request.app.state.store.delete(user_id, doc_id)
        except DocumentNotFoundError as e:
            return _error(404, str(e))
        await request.app.state.cache.invalidate(metadata_key(doc_id))
        return {"message": "Document deleted successfully"}

    @app.delete("/documents/{user_id}")
    async def delete_all_documents(user_id: str, request: Request):
        removed = request.app.state.store.delete_all(user_id)
        for doc_id in removed:
            await request.app.state.cache.invalidate(metadata_key(doc_id))
        return {"message": "All documents deleted successfully", "deleted": len(removed)}

    @app.post("/update-document-title", response_model=DocumentRecord)
    async def update_document_title(update: TitleUpdate, request: Request):
        try:
            doc = request.app.state.store.update_title(
                update.user_id, update.doc_id, update.new_title, update.expected_version
            )
        except DocumentNotFoundError as e:
            return _error(404, str(e))
        except VersionConflictError as e:
            return _error(409, str(e), version=e.current.version)
        await request.app.state.cache.invalidate(metadata_key(update.doc_id))
        return doc

    @app.get("/document-count/{user_id}")
    async def document_count(user_id: str, request: Request):
        return {"documentCount": len(request.app.state.store.list_for_user(user_id))}

    @app.get("/recently-viewed/{user_id}")
    async def recently_viewed(user_id: str, request: Request):
        return {"documents": await request.app.state.cache.recently_viewed(user_id)}


app = create_app()


def main():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
