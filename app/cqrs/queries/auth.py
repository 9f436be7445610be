from __future__ import annotations

import secrets

from app.core.config import settings
from app.core.errors import Unauthenticated
from app.core.security import decode_token, hash_password, issue_token
from app.cqrs.commands.auth import USERS, _user_out
from app.models.schemas import UserLogin
from app.store.base import DocumentStore


def login_user(store: DocumentStore, payload: UserLogin) -> dict:
    rows = store.query(USERS, {"email": payload.email.lower()})
    if not rows:
        raise Unauthenticated("Invalid credentials")
    row = rows[0]
    salt = bytes.fromhex(row["password_salt"])
    password_hash = hash_password(payload.password, salt)
    if not secrets.compare_digest(row["password_hash"], password_hash):
        raise Unauthenticated("Invalid credentials")
    return {
        "user": _user_out(row),
        "token": issue_token(row["id"]),
        "token_type": "bearer",
        "expires_in": settings.auth_token_ttl_seconds,
    }


def verify_token(store: DocumentStore, token: str) -> str:
    """Resolve a bearer token to the uid of an existing user."""
    uid = decode_token(token)
    if store.get_document(USERS, uid) is None:
        raise Unauthenticated("Unknown user")
    return uid


def get_user(store: DocumentStore, uid: str) -> dict:
    row = store.get_document(USERS, uid)
    if row is None:
        raise Unauthenticated("Unknown user")
    return _user_out(row)
