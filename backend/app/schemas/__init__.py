# Schemas package
from .charging import (
    BookingPaymentListResponse,
    DriverActionRequest,
    LinkCallbackResponse,
    LinkSessionResponse,
    OwnerActionRequest,
    StartChargingResponse,
    StationRequest,
    StopChargingResponse,
    SyncSessionRequest,
    SyncSessionResponse,
)

__all__ = [
    "StationRequest", "SyncSessionRequest",
    "StartChargingResponse", "StopChargingResponse", "SyncSessionResponse",
    "DriverActionRequest", "OwnerActionRequest", "BookingPaymentListResponse",
    "LinkSessionResponse", "LinkCallbackResponse",
]
