"""Environment-driven settings and logging setup shared by server and client."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import logfire
from dotenv import load_dotenv

load_dotenv()

APP_ENV = os.environ.get("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"
PORT = int(os.environ.get("PORT", "5000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

REDIS_URL = os.environ.get("REDIS_URL") or None

SUMMARIZER = os.environ.get("SUMMARIZER", "auto").lower()
SUMMARIZER_MODEL = os.environ.get(
    "SUMMARIZER_MODEL", "anthropic:claude-sonnet-4-5-20250929"
)

DATA_DIR = Path(
    os.environ.get("DOCUTHINKER_DATA_DIR", Path(__file__).parent.parent.parent / "data")
)
MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
    "http://localhost:5000",
]
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", ",".join(DEV_ORIGINS)).split(",")
    if o.strip()
]

BACKEND_URL = os.environ.get("DOCUTHINKER_BACKEND_URL", f"http://localhost:{PORT}")
CLIENT_STORAGE_PATH = Path(
    os.environ.get("DOCUTHINKER_STORAGE", Path.home() / ".docuthinker" / "storage.json")
)


def configure_logfire(service_name: str) -> None:
    """Configure logfire; nothing is exported unless a token is present."""
    logfire.configure(
        service_name=service_name,
        environment=APP_ENV,
        send_to_logfire="if-token-present",
    )


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Route stdlib logging through logfire. Safe to call more than once."""
    if getattr(setup_logging, "_configured", False):
        return
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[logging.StreamHandler(), logfire.LogfireLoggingHandler()],
    )
    setup_logging._configured = True
