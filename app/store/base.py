from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

Write = tuple[str, str, dict]


class DocumentNotFound(Exception):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist")


class PreconditionFailed(Exception):
    def __init__(self, collection: str, doc_id: str, field: str):
        self.collection = collection
        self.doc_id = doc_id
        self.field = field
        super().__init__(f"{collection}/{doc_id} no longer matches expected {field}")


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    collection: str
    id: str
    data: dict

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


Listener = Callable[[ChangeEvent], Any]


class ChangeFeed:
    """Fans committed writes out to subscribers of a collection or document path."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, path: str, callback: Listener) -> Callable[[], None]:
        path = path.strip("/")
        with self._lock:
            self._listeners.setdefault(path, []).append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(path, [])
                if callback in listeners:
                    listeners.remove(callback)
                if not listeners:
                    self._listeners.pop(path, None)

        return _unsubscribe

    def publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            with self._lock:
                targets = list(self._listeners.get(event.collection, []))
                targets += self._listeners.get(event.path, [])
            for callback in targets:
                try:
                    callback(event)
                except Exception:
                    logger.exception("Change listener failed for %s", event.path)


class DocumentStore:
    """Operations the raffle commands and queries rely on.

    Collections are slash separated paths such as ``raffles`` or
    ``raffles/<raffle_id>/slots``. Every document returned is a fresh copy.
    """

    def __init__(self) -> None:
        self.changes = ChangeFeed()

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def set_document(self, collection: str, doc_id: str, data: dict) -> None:
        raise NotImplementedError

    def update_document(
        self,
        collection: str,
        doc_id: str,
        data: dict,
        expected: Optional[dict] = None,
        writes: Optional[list[Write]] = None,
    ) -> dict:
        """Merge ``data`` into the stored document and return the result.

        With ``expected``, the merge only happens when each expected field
        still holds the given value; otherwise ``PreconditionFailed``.
        ``writes`` are committed together with the merge, or not at all.
        """
        raise NotImplementedError

    def batch_write(self, writes: list[Write]) -> None:
        raise NotImplementedError

    def query(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        raise NotImplementedError

    def subscribe(self, path: str, callback: Listener) -> Callable[[], None]:
        return self.changes.subscribe(path, callback)


def find_mismatch(current: dict, expected: Optional[dict]) -> Optional[str]:
    for field, value in (expected or {}).items():
        if current.get(field) != value:
            return field
    return None


def matches(document: dict, filters: Optional[dict]) -> bool:
    return find_mismatch(document, filters) is None
