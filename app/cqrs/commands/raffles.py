from __future__ import annotations

from datetime import date, datetime, timezone
import logging
import random
import uuid
from typing import Any, Optional
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.errors import (
    AlreadyFinalized,
    Forbidden,
    NoScheduledDate,
    NotFound,
    QuotaExceeded,
    TooEarly,
    Unauthenticated,
    ValidationError,
)
from app.cqrs.commands.activity import activity_write
from app.cqrs.queries.raffles import (
    RAFFLES,
    _raffle_out,
    count_active_raffles,
    load_raffle,
    slots_collection,
)
from app.models.schemas import (
    MAX_IMAGES,
    SLOTS_PER_RAFFLE,
    ActivityAction,
    RaffleCreate,
    RaffleStatus,
    RaffleUpdate,
    SlotStatus,
)
from app.store.base import DocumentNotFound, DocumentStore, PreconditionFailed

logger = logging.getLogger(__name__)

ACTIVE_ONLY = {"status": RaffleStatus.ACTIVE.value}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.raffle_timezone)).date()


def _require_caller(caller_id: Optional[str]) -> str:
    if not caller_id:
        raise Unauthenticated()
    return caller_id


def _require_owner(raffle: dict, caller_id: str, action: str) -> None:
    if raffle.get("owner_id") != caller_id:
        raise Forbidden(f"Not allowed to {action} this raffle")


def _require_text(value: Optional[str], label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    return text


def _clean_images(urls: Optional[list[str]]) -> list[str]:
    cleaned = [url.strip() for url in urls or [] if url and url.strip()]
    if len(cleaned) > MAX_IMAGES:
        raise ValidationError(f"A raffle can have at most {MAX_IMAGES} images")
    return cleaned


def _check_finalization_date(value: Optional[date], today: date) -> Optional[str]:
    if value is None:
        return None
    if value < today:
        raise ValidationError("Finalization date cannot be in the past")
    return value.isoformat()


def _slot_number(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Slot number must be an integer")
    if not 1 <= value <= SLOTS_PER_RAFFLE:
        raise ValidationError(f"Slot number must be between 1 and {SLOTS_PER_RAFFLE}")
    return value


def _slot_status(value: Any) -> str:
    allowed = {status.value for status in SlotStatus}
    if isinstance(value, SlotStatus):
        return value.value
    if value not in allowed:
        raise ValidationError("Slot status must be one of: available, reserved, paid")
    return value


def create_raffle(
    store: DocumentStore,
    payload: RaffleCreate,
    owner_id: Optional[str],
    today: Optional[date] = None,
) -> dict:
    owner_id = _require_caller(owner_id)
    name = _require_text(payload.name, "Name")
    description = _require_text(payload.description, "Description")
    terms = _require_text(payload.terms, "Terms")
    price = payload.slot_price
    if price is None or not price.is_finite() or price <= 0:
        raise ValidationError("Slot price must be positive")
    image_urls = _clean_images(payload.image_urls)
    finalization_date = _check_finalization_date(payload.finalization_date, today or local_today())

    limit = settings.max_active_raffles
    if count_active_raffles(store, owner_id) >= limit:
        logger.warning("Active raffle limit reached for user %s", owner_id)
        raise QuotaExceeded(
            f"You have reached the limit of {limit} active raffles. "
            "Finalize one before creating another."
        )

    raffle_id = uuid.uuid4().hex
    created_at = _now()
    raffle = {
        "id": raffle_id,
        "owner_id": owner_id,
        "name": name,
        "description": description,
        "terms": terms,
        "slot_price": str(price),
        "status": RaffleStatus.ACTIVE.value,
        "winner_slot_number": None,
        "finalization_date": finalization_date,
        "finalized_at": None,
        "image_urls": image_urls,
        "created_at": created_at,
        "updated_at": created_at,
    }
    slots = [
        {"slot_number": number, "participant_name": "", "status": SlotStatus.AVAILABLE.value}
        for number in range(1, SLOTS_PER_RAFFLE + 1)
    ]
    writes = [(RAFFLES, raffle_id, raffle)]
    writes += [(slots_collection(raffle_id), str(slot["slot_number"]), slot) for slot in slots]
    writes.append(
        activity_write(
            raffle_id,
            ActivityAction.RAFFLE_CREATED,
            owner_id,
            {"name": name, "slot_price": str(price)},
            timestamp=created_at,
        )
    )
    # Raffle, slots and creation record commit together or not at all.
    store.batch_write(writes)
    logger.info("Raffle %s created by %s", raffle_id, owner_id)
    return _raffle_out(raffle, slots)


def update_raffle(
    store: DocumentStore,
    raffle_id: str,
    payload: RaffleUpdate,
    caller_id: Optional[str],
    today: Optional[date] = None,
) -> dict:
    caller_id = _require_caller(caller_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise ValidationError("No fields to update")

    raffle = load_raffle(store, raffle_id)
    _require_owner(raffle, caller_id, "edit")
    if raffle["status"] != RaffleStatus.ACTIVE.value:
        raise AlreadyFinalized("A finalized raffle cannot be edited")

    changes: dict = {}
    for field, label in (("name", "Name"), ("description", "Description"), ("terms", "Terms")):
        if field in data:
            changes[field] = _require_text(data[field], label)
    if "finalization_date" in data:
        changes["finalization_date"] = _check_finalization_date(
            data["finalization_date"], today or local_today()
        )
    if "image_urls" in data:
        changes["image_urls"] = _clean_images(data["image_urls"])

    updated_at = _now()
    record = activity_write(
        raffle_id,
        ActivityAction.RAFFLE_UPDATED,
        caller_id,
        {"fields": sorted(changes)},
        timestamp=updated_at,
    )
    try:
        updated = store.update_document(
            RAFFLES,
            raffle_id,
            {**changes, "updated_at": updated_at},
            expected=ACTIVE_ONLY,
            writes=[record],
        )
    except PreconditionFailed as exc:
        raise AlreadyFinalized("A finalized raffle cannot be edited") from exc
    except DocumentNotFound as exc:
        raise NotFound() from exc

    logger.info(
        "Raffle %s updated by %s (%s)", raffle_id, caller_id, ", ".join(sorted(changes))
    )
    return _raffle_out(updated)


def update_slot(
    store: DocumentStore,
    raffle_id: str,
    slot_number: Any,
    participant_name: Optional[str],
    status: Any,
    caller_id: Optional[str],
) -> dict:
    caller_id = _require_caller(caller_id)
    raffle = load_raffle(store, raffle_id)
    _require_owner(raffle, caller_id, "modify slots of")
    number = _slot_number(slot_number)
    new_status = _slot_status(status)
    if raffle["status"] != RaffleStatus.ACTIVE.value:
        raise AlreadyFinalized("Slots of a finalized raffle cannot be changed")

    collection = slots_collection(raffle_id)
    previous = store.get_document(collection, str(number))
    if previous is None:
        raise NotFound(f"Slot {number} not found")
    slot = {
        "slot_number": number,
        "participant_name": (participant_name or "").strip(),
        "status": new_status,
    }
    store.batch_write(
        [
            (collection, str(number), slot),
            activity_write(
                raffle_id,
                ActivityAction.SLOT_UPDATED,
                caller_id,
                {
                    "slot_number": number,
                    "previous_status": previous.get("status"),
                    "new_status": new_status,
                    "participant_name": slot["participant_name"],
                },
            ),
        ]
    )
    logger.info(
        "Raffle %s slot %s: %s -> %s", raffle_id, number, previous.get("status"), new_status
    )
    return slot


def _load_finalizable(
    store: DocumentStore, raffle_id: str, caller_id: Optional[str], today: Optional[date]
) -> dict:
    caller_id = _require_caller(caller_id)
    raffle = load_raffle(store, raffle_id)
    _require_owner(raffle, caller_id, "finalize")
    if raffle["status"] == RaffleStatus.FINALIZED.value:
        raise AlreadyFinalized()
    scheduled = raffle.get("finalization_date")
    if not scheduled:
        raise NoScheduledDate("Set a finalization date before declaring a winner")
    scheduled_date = date.fromisoformat(scheduled)
    if (today or local_today()) < scheduled_date:
        raise TooEarly(f"The raffle can be finalized from {scheduled_date.isoformat()}")
    return raffle


def _finalize(
    store: DocumentStore, raffle: dict, winner_slot_number: int, caller_id: str, mode: str
) -> dict:
    raffle_id = raffle["id"]
    winner = store.get_document(slots_collection(raffle_id), str(winner_slot_number)) or {}
    finalized_at = _now()
    record = activity_write(
        raffle_id,
        ActivityAction.RAFFLE_FINALIZED,
        caller_id,
        {
            "winner_slot_number": winner_slot_number,
            "winner_participant_name": winner.get("participant_name", ""),
            "mode": mode,
        },
        timestamp=finalized_at,
    )
    try:
        updated = store.update_document(
            RAFFLES,
            raffle_id,
            {
                "status": RaffleStatus.FINALIZED.value,
                "winner_slot_number": winner_slot_number,
                "finalized_at": finalized_at,
                "updated_at": finalized_at,
            },
            expected=ACTIVE_ONLY,
            writes=[record],
        )
    except PreconditionFailed as exc:
        raise AlreadyFinalized() from exc
    except DocumentNotFound as exc:
        raise NotFound() from exc

    logger.info(
        "Raffle %s finalized (%s), winner slot %s", raffle_id, mode, winner_slot_number
    )
    return _raffle_out(updated)


def finalize_raffle(
    store: DocumentStore,
    raffle_id: str,
    winner_slot_number: Any,
    caller_id: Optional[str],
    today: Optional[date] = None,
) -> dict:
    raffle = _load_finalizable(store, raffle_id, caller_id, today)
    number = _slot_number(winner_slot_number)
    return _finalize(store, raffle, number, caller_id, mode="declared")


def draw_raffle(
    store: DocumentStore,
    raffle_id: str,
    caller_id: Optional[str],
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> dict:
    raffle = _load_finalizable(store, raffle_id, caller_id, today)
    slots = store.query(slots_collection(raffle_id))
    paid = sorted(slot["slot_number"] for slot in slots if slot["status"] == SlotStatus.PAID.value)
    pool = paid or list(range(1, SLOTS_PER_RAFFLE + 1))
    winner = (rng or random.SystemRandom()).choice(pool)
    return _finalize(store, raffle, winner, caller_id, mode="draw")
