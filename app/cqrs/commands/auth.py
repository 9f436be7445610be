from __future__ import annotations

from datetime import datetime, timezone
import logging
import secrets
import uuid

from app.core.errors import Conflict
from app.core.security import hash_password
from app.models.schemas import UserRegister
from app.store.base import DocumentStore

logger = logging.getLogger(__name__)

USERS = "users"


def _user_out(row: dict) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"],
        "created_at": row["created_at"],
    }


def register_user(store: DocumentStore, payload: UserRegister) -> dict:
    email = payload.email.lower()
    if store.query(USERS, {"email": email}):
        raise Conflict("Email already registered")
    user_id = uuid.uuid4().hex
    salt = secrets.token_bytes(16)
    row = {
        "id": user_id,
        "name": payload.name.strip(),
        "email": email,
        "password_hash": hash_password(payload.password, salt),
        "password_salt": salt.hex(),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    store.set_document(USERS, user_id, row)
    logger.info("Registered user %s", user_id)
    return _user_out(row)
