from __future__ import annotations

import json
import threading
from pathlib import Path

from docuthinker.config import DATA_DIR
from docuthinker.models import DocumentRecord

DEFAULT_DB_PATH = DATA_DIR / "documents.json"


class DocumentNotFoundError(Exception):
    def __init__(self, user_id: str, doc_id: str):
        self.user_id = user_id
        self.doc_id = doc_id
        super().__init__(f"Document {doc_id} not found for user {user_id}")


class VersionConflictError(Exception):
    """Raised when a write carries a stale version token."""

    def __init__(self, doc: DocumentRecord, expected: int):
        self.current = doc
        super().__init__(
            f"Document {doc.id} is at version {doc.version}, expected {expected}"
        )


class DocumentStore:
    """JSON-file document store keyed by document id.

    Writes touch a single record under a lock instead of replacing a user's
    whole document list, so two edits to different documents cannot clobber
    each other. Edits to the same document can pass a version token.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._lock = threading.Lock()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.db_path.exists():
            self.db_path.write_text("{}")

    def _load(self) -> dict[str, DocumentRecord]:
        raw = json.loads(self.db_path.read_text())
        return {doc_id: DocumentRecord.model_validate(doc) for doc_id, doc in raw.items()}

    def _save(self, docs: dict[str, DocumentRecord]) -> None:
        self.db_path.write_text(
            json.dumps(
                {doc_id: doc.model_dump(mode="json", by_alias=True) for doc_id, doc in docs.items()},
                indent=2,
            )
        )

    def add(self, doc: DocumentRecord) -> DocumentRecord:
        with self._lock:
            docs = self._load()
            docs[doc.id] = doc
            self._save(docs)
        return doc

    def list_for_user(self, user_id: str) -> list[DocumentRecord]:
        docs = [d for d in self._load().values() if d.user_id == user_id]
        return sorted(docs, key=lambda d: d.created_at)

    def get(self, user_id: str, doc_id: str) -> DocumentRecord | None:
        doc = self._load().get(doc_id)
        if doc is None or doc.user_id != user_id:
            return None
        return doc

    def find_by_hash(self, user_id: str, content_hash: str) -> DocumentRecord | None:
        for doc in self.list_for_user(user_id):
            if doc.content_hash == content_hash:
                return doc
        return None

    def update_title(
        self,
        user_id: str,
        doc_id: str,
        new_title: str,
        expected_version: int | None = None,
    ) -> DocumentRecord:
        with self._lock:
            docs = self._load()
            doc = docs.get(doc_id)
            if doc is None or doc.user_id != user_id:
                raise DocumentNotFoundError(user_id, doc_id)
            if expected_version is not None and doc.version != expected_version:
                raise VersionConflictError(doc, expected_version)
            updated = doc.model_copy(update={"title": new_title, "version": doc.version + 1})
            docs[doc_id] = updated
            self._save(docs)
        return updated

    def delete(self, user_id: str, doc_id: str) -> None:
        with self._lock:
            docs = self._load()
            doc = docs.get(doc_id)
            if doc is None or doc.user_id != user_id:
                raise DocumentNotFoundError(user_id, doc_id)
            del docs[doc_id]
            self._save(docs)

    def delete_all(self, user_id: str) -> list[str]:
        """Remove every document owned by user_id. Returns the removed ids."""
        with self._lock:
            docs = self._load()
            removed = [doc_id for doc_id, d in docs.items() if d.user_id == user_id]
            for doc_id in removed:
                del docs[doc_id]
            self._save(docs)
        return removed
