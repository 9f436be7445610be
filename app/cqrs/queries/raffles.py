from __future__ import annotations

from typing import Optional

from app.core.errors import Forbidden, NotFound, ValidationError
from app.cqrs.commands.activity import activity_collection
from app.models.schemas import ActivityAction, RaffleStatus, SlotStatus
from app.store.base import DocumentStore

RAFFLES = "raffles"


def slots_collection(raffle_id: str) -> str:
    return f"{RAFFLES}/{raffle_id}/slots"


def _slot_counts(slots: list[dict]) -> dict:
    counts = {status.value: 0 for status in SlotStatus}
    for slot in slots:
        status = slot.get("status")
        if status in counts:
            counts[status] += 1
    return counts


def _raffle_out(row: dict, slots: Optional[list[dict]] = None) -> dict:
    out = {
        "id": row["id"],
        "owner_id": row["owner_id"],
        "name": row["name"],
        "description": row["description"],
        "terms": row["terms"],
        "slot_price": row["slot_price"],
        "status": row["status"],
        "winner_slot_number": row.get("winner_slot_number"),
        "finalization_date": row.get("finalization_date"),
        "finalized_at": row.get("finalized_at"),
        "image_urls": list(row.get("image_urls") or []),
        "created_at": row["created_at"],
        "updated_at": row.get("updated_at") or row["created_at"],
    }
    if slots is not None:
        counts = _slot_counts(slots)
        out["counts"] = counts
        out["filled_slots"] = counts[SlotStatus.RESERVED.value] + counts[SlotStatus.PAID.value]
    return out


def load_raffle(store: DocumentStore, raffle_id: str) -> dict:
    row = store.get_document(RAFFLES, raffle_id)
    if not row:
        raise NotFound()
    return row


def count_active_raffles(store: DocumentStore, user_id: str) -> int:
    if not user_id:
        return 0
    rows = store.query(RAFFLES, {"owner_id": user_id, "status": RaffleStatus.ACTIVE.value})
    return len(rows)


def get_raffle(store: DocumentStore, raffle_id: str) -> dict:
    row = load_raffle(store, raffle_id)
    return _raffle_out(row, store.query(slots_collection(raffle_id)))


def list_raffles_for_user(
    store: DocumentStore, user_id: str, status: Optional[str] = None
) -> list[dict]:
    filters = {"owner_id": user_id}
    if status:
        if status not in {item.value for item in RaffleStatus}:
            raise ValidationError("Invalid raffle status")
        filters["status"] = status
    rows = store.query(RAFFLES, filters)
    rows.sort(key=lambda row: row["created_at"], reverse=True)
    return [_raffle_out(row, store.query(slots_collection(row["id"]))) for row in rows]


def list_slots(store: DocumentStore, raffle_id: str) -> list[dict]:
    load_raffle(store, raffle_id)
    slots = store.query(slots_collection(raffle_id))
    slots.sort(key=lambda slot: slot["slot_number"])
    return slots


def list_activity(
    store: DocumentStore,
    raffle_id: str,
    caller_id: str,
    action: Optional[str] = None,
) -> list[dict]:
    raffle = load_raffle(store, raffle_id)
    if raffle["owner_id"] != caller_id:
        raise Forbidden("Only the raffle owner can read its activity")
    filters = None
    if action:
        if action not in {item.value for item in ActivityAction}:
            raise ValidationError("Invalid activity action")
        filters = {"action": action}
    records = store.query(activity_collection(raffle_id), filters)
    records.sort(key=lambda record: record["timestamp"], reverse=True)
    return records
