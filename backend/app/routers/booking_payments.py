"""
Booking payments router: /v1/booking-payments/*

Lists a caller's booking payments and applies the driver (mark / cancel)
and owner (confirm / cancel) payment actions.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies.auth import get_current_profile_id
from app.schemas.charging import BookingPaymentListResponse, DriverActionRequest, OwnerActionRequest
from app.services.booking_payments import (
    apply_driver_action,
    apply_owner_action,
    list_booking_payments,
    serialize_booking_payment,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking-payments", tags=["booking-payments"])


@router.get("", response_model=BookingPaymentListResponse)
def list_payments(
    role: str = Query("driver"),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    db: Session = Depends(get_db),
    profile_id: str = Depends(get_current_profile_id),
):
    statuses = [value.strip() for value in status.split(",") if value.strip()] if status else None
    payments = list_booking_payments(db, profile_id, role, statuses)
    return {"payments": [serialize_booking_payment(payment, role) for payment in payments]}


@router.post("/driver-action")
def driver_action(
    body: DriverActionRequest,
    db: Session = Depends(get_db),
    profile_id: str = Depends(get_current_profile_id),
):
    payment = apply_driver_action(db, body.slot_id, profile_id, body.action)
    return {"payment": serialize_booking_payment(payment, "driver")}


@router.post("/owner-action")
def owner_action(
    body: OwnerActionRequest,
    db: Session = Depends(get_db),
    profile_id: str = Depends(get_current_profile_id),
):
    payment = apply_owner_action(db, body.slot_id, profile_id, body.action)
    return {"payment": serialize_booking_payment(payment, "owner")}
