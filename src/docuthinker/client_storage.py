from __future__ import annotations

import json
import logging
from pathlib import Path

from docuthinker.config import CLIENT_STORAGE_PATH

log = logging.getLogger(__name__)

ORIGINAL_TEXT_KEY = "originalText"
USER_ID_KEY = "userId"


class ClientStorage:
    """Durable string key-value storage on the client, kept in one JSON file."""

    def __init__(self, path: Path = CLIENT_STORAGE_PATH):
        self.path = path

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            items = json.loads(self.path.read_text())
        except ValueError as e:
            log.warning("Ignoring unreadable client storage %s: %s", self.path, e)
            return {}
        return items if isinstance(items, dict) else {}

    def _save(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items, indent=2))

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)
