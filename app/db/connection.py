from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Callable, Iterator, Optional

import pg8000.dbapi as pgapi

from app.core.config import db_configured, settings
from app.db.schema import ensure_schema

_SCHEMA_READY = False
_SCHEMA_LOCK = threading.Lock()


def connect():
    if not db_configured():
        raise RuntimeError("Database configuration is missing")
    return pgapi.connect(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
    )


def _ensure_schema(conn) -> None:
    global _SCHEMA_READY
    if _SCHEMA_READY:
        return
    with _SCHEMA_LOCK:
        if _SCHEMA_READY:
            return
        ensure_schema(conn)
        _SCHEMA_READY = True


@contextmanager
def cursor(conn) -> Iterator:
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()


def run_transaction(handler: Callable, connect_fn: Optional[Callable] = None):
    conn = (connect_fn or connect)()
    try:
        conn.autocommit = False
        if settings.auto_migrate:
            _ensure_schema(conn)
        result = handler(conn)
        conn.commit()
        return result
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
