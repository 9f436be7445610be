import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from app.api.dependencies import get_caller_id, get_store
from app.core.config import settings
from app.core.errors import RaffleError
from app.cqrs.commands import raffles as raffles_commands
from app.cqrs.queries import raffles as raffles_queries
from app.models.schemas import (
    ActiveCountResponse,
    ActivityOut,
    FinalizeRequest,
    RaffleCreate,
    RaffleOut,
    RaffleUpdate,
    SlotOut,
    SlotUpdate,
)
from app.store.base import ChangeEvent, DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/raffles", tags=["raffles"])


def _path_slot_number(value: str):
    # Non-numeric values go through unchanged and fail validation after the ownership checks.
    digits = value[1:] if value[:1] in ("+", "-") else value
    return int(value) if digits.isdecimal() else value


@router.post("", response_model=RaffleOut, status_code=201)
def create_raffle(
    payload: RaffleCreate,
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_commands.create_raffle(store, payload, caller_id)


@router.get("", response_model=list[RaffleOut])
def list_raffles(
    status: Optional[str] = Query(None, description="Filter by status"),
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_queries.list_raffles_for_user(store, caller_id, status)


@router.get("/active-count", response_model=ActiveCountResponse)
def active_count(
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return {
        "user_id": caller_id,
        "active_raffles": raffles_queries.count_active_raffles(store, caller_id),
        "limit": settings.max_active_raffles,
    }


@router.get("/{raffle_id}", response_model=RaffleOut)
def get_raffle(raffle_id: str, store: DocumentStore = Depends(get_store)):
    return raffles_queries.get_raffle(store, raffle_id)


@router.patch("/{raffle_id}", response_model=RaffleOut)
def update_raffle(
    raffle_id: str,
    payload: RaffleUpdate,
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_commands.update_raffle(store, raffle_id, payload, caller_id)


@router.get("/{raffle_id}/slots", response_model=list[SlotOut])
def list_slots(raffle_id: str, store: DocumentStore = Depends(get_store)):
    return raffles_queries.list_slots(store, raffle_id)


@router.put("/{raffle_id}/slots/{slot_number}", response_model=SlotOut)
def update_slot(
    raffle_id: str,
    slot_number: str,
    payload: SlotUpdate,
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_commands.update_slot(
        store,
        raffle_id,
        _path_slot_number(slot_number),
        payload.participant_name,
        payload.status,
        caller_id,
    )


@router.post("/{raffle_id}/finalize", response_model=RaffleOut)
def finalize_raffle(
    raffle_id: str,
    payload: FinalizeRequest,
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_commands.finalize_raffle(store, raffle_id, payload.winner_slot_number, caller_id)


@router.post("/{raffle_id}/draw", response_model=RaffleOut)
def draw_raffle(
    raffle_id: str,
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_commands.draw_raffle(store, raffle_id, caller_id)


@router.get("/{raffle_id}/activity", response_model=list[ActivityOut])
def list_activity(
    raffle_id: str,
    action: Optional[str] = Query(None, description="Filter by action"),
    caller_id: str = Depends(get_caller_id),
    store: DocumentStore = Depends(get_store),
):
    return raffles_queries.list_activity(store, raffle_id, caller_id, action)


def _change_message(event: ChangeEvent) -> dict:
    return {
        "type": "change",
        "kind": event.kind,
        "collection": event.collection,
        "id": event.id,
        "data": event.data,
    }


@router.websocket("/{raffle_id}/live")
async def raffle_live(websocket: WebSocket, raffle_id: str, store: DocumentStore = Depends(get_store)):
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def _push(event: ChangeEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    # Subscribed before the snapshot read so no commit falls between the two.
    unsubscribers = [
        store.subscribe(f"{raffles_queries.RAFFLES}/{raffle_id}", _push),
        store.subscribe(raffles_queries.slots_collection(raffle_id), _push),
    ]

    async def _forward() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(jsonable_encoder(_change_message(event)))

    forward = None
    try:
        try:
            raffle = await run_in_threadpool(raffles_queries.get_raffle, store, raffle_id)
            slots = await run_in_threadpool(raffles_queries.list_slots, store, raffle_id)
        except RaffleError as exc:
            await websocket.send_json({"type": "error", "kind": exc.kind.value, "detail": exc.message})
            await websocket.close(code=4000 + exc.status_code)
            return

        await websocket.send_json(jsonable_encoder({"type": "snapshot", "raffle": raffle, "slots": slots}))
        forward = asyncio.create_task(_forward())
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        if forward is not None:
            forward.cancel()
            try:
                with contextlib.suppress(asyncio.CancelledError):
                    await forward
            except Exception:
                logger.exception("Live feed for raffle %s stopped with an error", raffle_id)
