from __future__ import annotations

from datetime import datetime, timezone
import uuid
from typing import Optional

from app.models.schemas import ActivityAction
from app.store.base import Write


def activity_collection(raffle_id: str) -> str:
    return f"raffles/{raffle_id}/activity"


def activity_write(
    raffle_id: str,
    action: ActivityAction,
    user_id: str,
    details: Optional[dict] = None,
    timestamp: Optional[str] = None,
) -> Write:
    """Build an activity record write; records are only ever inserted."""
    activity_id = uuid.uuid4().hex
    record = {
        "id": activity_id,
        "action": action.value,
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        "user_id": user_id,
        "details": details or {},
    }
    return activity_collection(raffle_id), activity_id, record
