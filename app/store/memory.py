from __future__ import annotations

import copy
import threading
from typing import Optional

from app.store.base import (
    ChangeEvent,
    DocumentNotFound,
    DocumentStore,
    PreconditionFailed,
    Write,
    find_mismatch,
    matches,
)


class MemoryDocumentStore(DocumentStore):
    """Document store kept in this instance's dictionaries.

    Used by the test suite and for running the API without PostgreSQL
    (``STORE_BACKEND=memory``). State dies with the instance.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict]] = {}

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def set_document(self, collection: str, doc_id: str, data: dict) -> None:
        self.batch_write([(collection, doc_id, data)])

    def update_document(
        self,
        collection: str,
        doc_id: str,
        data: dict,
        expected: Optional[dict] = None,
        writes: Optional[list[Write]] = None,
    ) -> dict:
        patch = copy.deepcopy(data)
        staged = self._stage(writes or [])
        with self._lock:
            current = self._collections.get(collection, {}).get(doc_id)
            if current is None:
                raise DocumentNotFound(collection, doc_id)
            field = find_mismatch(current, expected)
            if field is not None:
                raise PreconditionFailed(collection, doc_id, field)
            self._apply(staged)
            current.update(patch)
            merged = copy.deepcopy(current)
        events = [ChangeEvent("update", collection, doc_id, copy.deepcopy(merged))]
        events += self._events(staged)
        self.changes.publish(events)
        return merged

    def batch_write(self, writes: list[Write]) -> None:
        staged = self._stage(writes)
        with self._lock:
            self._apply(staged)
        self.changes.publish(self._events(staged))

    def _stage(self, writes: list[Write]) -> list[Write]:
        return [(collection, doc_id, copy.deepcopy(data)) for collection, doc_id, data in writes]

    def _apply(self, staged: list[Write]) -> None:
        for collection, doc_id, data in staged:
            self._collections.setdefault(collection, {})[doc_id] = data

    @staticmethod
    def _events(staged: list[Write]) -> list[ChangeEvent]:
        return [ChangeEvent("set", collection, doc_id, copy.deepcopy(data)) for collection, doc_id, data in staged]

    def query(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        with self._lock:
            documents = list(self._collections.get(collection, {}).values())
            return [copy.deepcopy(doc) for doc in documents if matches(doc, filters)]
