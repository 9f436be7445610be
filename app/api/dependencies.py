from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from app.core.config import db_configured, settings
from app.core.errors import Unauthenticated
from app.cqrs.queries.auth import verify_token
from app.services.content import ContentGenerator
from app.store.base import DocumentStore
from app.store.memory import MemoryDocumentStore
from app.store.postgres import PostgresDocumentStore


def require_db() -> None:
    if settings.store_backend == "postgres" and not db_configured():
        raise HTTPException(status_code=500, detail="Database is not configured")


@lru_cache(maxsize=None)
def _build_store(backend: str) -> DocumentStore:
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "postgres":
        return PostgresDocumentStore()
    raise RuntimeError(f"Unknown store backend: {backend}")


def get_store() -> DocumentStore:
    require_db()
    return _build_store(settings.store_backend)


def get_caller_id(
    authorization: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
) -> str:
    if not authorization:
        raise Unauthenticated("Missing authentication token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Authorization header must be 'Bearer <token>'")
    return verify_token(store, token.strip())


@lru_cache(maxsize=None)
def get_content_generator() -> ContentGenerator:
    return ContentGenerator()
