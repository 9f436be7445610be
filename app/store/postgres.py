from __future__ import annotations

import json
import logging
from typing import Callable, Optional

import pg8000.dbapi as pgapi

from app.core.errors import StorageError
from app.db.connection import cursor, run_transaction
from app.store.base import (
    ChangeEvent,
    DocumentNotFound,
    DocumentStore,
    PreconditionFailed,
    Write,
    find_mismatch,
)

logger = logging.getLogger(__name__)


def _load(value) -> dict:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)


def _dump(data: dict) -> str:
    return json.dumps(data, default=str)


def _upsert(cur, writes: list[Write]) -> None:
    for collection, doc_id, data in writes:
        cur.execute(
            """
            INSERT INTO documents (collection, id, data)
            VALUES (%s, %s, %s::jsonb)
            ON CONFLICT (collection, id)
            DO UPDATE SET data = EXCLUDED.data, updated_at = now()
            """,
            (collection, doc_id, _dump(data)),
        )


class PostgresDocumentStore(DocumentStore):
    """Documents kept as JSONB rows of a single ``documents`` table."""

    def __init__(self, connect_fn: Optional[Callable] = None) -> None:
        super().__init__()
        self._connect_fn = connect_fn

    def _run(self, handler: Callable):
        try:
            return run_transaction(handler, self._connect_fn)
        except (pgapi.Error, OSError, RuntimeError) as exc:
            logger.exception("Document store operation failed")
            raise StorageError("Storage operation failed") from exc

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        def _handler(conn):
            with cursor(conn) as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND id = %s",
                    (collection, doc_id),
                )
                row = cur.fetchone()
            return _load(row[0]) if row else None

        return self._run(_handler)

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
        writes = list(writes or [])

        def _handler(conn):
            with cursor(conn) as cur:
                cur.execute(
                    """
                    SELECT data FROM documents
                    WHERE collection = %s AND id = %s
                    FOR UPDATE
                    """,
                    (collection, doc_id),
                )
                row = cur.fetchone()
                if not row:
                    raise DocumentNotFound(collection, doc_id)
                field = find_mismatch(_load(row[0]), expected)
                if field is not None:
                    raise PreconditionFailed(collection, doc_id, field)
                cur.execute(
                    """
                    UPDATE documents
                    SET data = data || %s::jsonb, updated_at = now()
                    WHERE collection = %s AND id = %s
                    RETURNING data
                    """,
                    (_dump(data), collection, doc_id),
                )
                merged = _load(cur.fetchone()[0])
                _upsert(cur, writes)
            return merged

        merged = self._run(_handler)
        events = [ChangeEvent("update", collection, doc_id, merged)]
        events += [
            ChangeEvent("set", write_collection, write_id, dict(write_data))
            for write_collection, write_id, write_data in writes
        ]
        self.changes.publish(events)
        return merged

    def batch_write(self, writes: list[Write]) -> None:
        def _handler(conn):
            with cursor(conn) as cur:
                _upsert(cur, writes)

        self._run(_handler)
        self.changes.publish(
            [ChangeEvent("set", collection, doc_id, dict(data)) for collection, doc_id, data in writes]
        )

    def query(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        def _handler(conn):
            with cursor(conn) as cur:
                cur.execute(
                    """
                    SELECT data FROM documents
                    WHERE collection = %s AND data @> %s::jsonb
                    ORDER BY created_at
                    """,
                    (collection, _dump(filters or {})),
                )
                return [_load(row[0]) for row in cur.fetchall()]

        return self._run(_handler)
