"""
Request/response models for the charging, booking-payment and Enode link APIs.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _strip_required(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# ─── Driver charging ──────────────────────────────────────────────────

class StationRequest(BaseModel):
    station_id: str

    @field_validator("station_id")
    @classmethod
    def _station_id(cls, value: str) -> str:
        return _strip_required(value)


class SyncSessionRequest(BaseModel):
    session_id: str

    @field_validator("session_id")
    @classmethod
    def _session_id(cls, value: str) -> str:
        return _strip_required(value)


class ChargingSessionOut(BaseModel):
    id: str
    station_id: str
    driver_profile_id: str
    slot_id: Optional[str] = None
    status: str
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    energy_kwh: Optional[float] = None
    amount: Optional[float] = None


class SlotOut(BaseModel):
    id: str
    start_at: Optional[str] = None
    end_at: Optional[str] = None


class StartChargingResponse(BaseModel):
    session: ChargingSessionOut
    slot: Optional[SlotOut] = None
    message: str


class StopChargingResponse(BaseModel):
    session: ChargingSessionOut
    slot: Optional[SlotOut] = None
    stats: Optional[Dict[str, Any]] = None
    message: str


class SyncSessionResponse(BaseModel):
    session_id: str
    status: str
    start_action_state: Optional[str] = None
    stop_action_state: Optional[str] = None
    start_failure: Optional[str] = None
    stop_failure: Optional[str] = None


# ─── Booking payments ─────────────────────────────────────────────────

class SlotActionRequest(BaseModel):
    slot_id: str

    @field_validator("slot_id")
    @classmethod
    def _slot_id(cls, value: str) -> str:
        return _strip_required(value)


class DriverActionRequest(SlotActionRequest):
    action: Literal["mark", "cancel"] = "mark"


class OwnerActionRequest(SlotActionRequest):
    action: Literal["confirm", "cancel"] = "confirm"


class BookingPaymentListResponse(BaseModel):
    payments: List[Dict[str, Any]] = Field(default_factory=list)


# ─── Enode link ───────────────────────────────────────────────────────

class LinkSessionResponse(BaseModel):
    link_url: str


class LinkCallbackResponse(BaseModel):
    station_id: str
    charger_id: str
    charger_brand: Optional[str] = None
    charger_model: Optional[str] = None
    charger_vendor: Optional[str] = None
