from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

SLOTS_PER_RAFFLE = 100
MAX_IMAGES = 3


class RaffleStatus(str, Enum):
    ACTIVE = "active"
    FINALIZED = "finalized"


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PAID = "paid"


class ActivityAction(str, Enum):
    RAFFLE_CREATED = "raffle_created"
    SLOT_UPDATED = "slot_updated"
    RAFFLE_UPDATED = "raffle_updated"
    RAFFLE_FINALIZED = "raffle_finalized"


class HealthResponse(BaseModel):
    status: str
    time: datetime


class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    created_at: datetime


class LoginResponse(BaseModel):
    user: UserOut
    token: str
    token_type: str = "bearer"
    expires_in: int


class RaffleCreate(BaseModel):
    name: str = Field(..., max_length=120)
    description: str = Field(..., max_length=2000)
    terms: str = Field(..., max_length=4000)
    slot_price: Decimal
    finalization_date: Optional[date] = None
    image_urls: list[str] = Field(default_factory=list)


class RaffleUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)
    terms: Optional[str] = Field(None, max_length=4000)
    finalization_date: Optional[date] = None
    image_urls: Optional[list[str]] = None


class SlotUpdate(BaseModel):
    participant_name: str = Field("", max_length=120)
    status: str


class FinalizeRequest(BaseModel):
    winner_slot_number: Any


class SlotOut(BaseModel):
    slot_number: int
    participant_name: str
    status: SlotStatus


class SlotCounts(BaseModel):
    available: int
    reserved: int
    paid: int


class RaffleOut(BaseModel):
    id: str
    owner_id: str
    name: str
    description: str
    terms: str
    slot_price: Decimal
    status: RaffleStatus
    winner_slot_number: Optional[int]
    finalization_date: Optional[date]
    finalized_at: Optional[datetime]
    image_urls: list[str]
    created_at: datetime
    updated_at: datetime
    filled_slots: Optional[int] = None
    counts: Optional[SlotCounts] = None


class ActiveCountResponse(BaseModel):
    user_id: str
    active_raffles: int
    limit: int


class ActivityOut(BaseModel):
    id: str
    action: ActivityAction
    timestamp: datetime
    user_id: str
    details: dict[str, Any]


class RaffleTextRequest(BaseModel):
    prompt: str = Field(..., max_length=1000)


class RaffleTextOut(BaseModel):
    name: str
    description: str
    terms: str
    generated: bool


class RaffleImagesRequest(BaseModel):
    description: str = Field(..., max_length=2000)
    name: Optional[str] = Field(None, max_length=120)


class RaffleImagesOut(BaseModel):
    image_urls: list[str]
    generated: bool
