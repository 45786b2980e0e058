"""
Booking Payment Ledger

Owns the per-slot settlement record between a driver and a station owner.

    upcoming -> in_progress -> to_pay <-> driver_marked <-> paid

Records are created lazily by the charging flows, their totals recomputed
after each stop, and their status advanced by the driver (mark / cancel) and
the owner (confirm / cancel) actions.
"""
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.clock import isoformat, utcnow
from app.core.errors import ChargingError
from app.models.booking_payment import BookingPayment, BookingPaymentStatus
from app.models.charging_session import ChargingSession
from app.models.station import StationMembership, StationSlot
from app.services.charging_stats import round_money
from app.services.slot_window import slot_has_ended, slot_has_started

logger = logging.getLogger(__name__)

# Totals at or below this are treated as "no meaningful charge delivered"
AMOUNT_THRESHOLD = 0.009

DEFAULT_REFERENCE_PREFIX = "PLOGO"
REFERENCE_MAX_LENGTH = 20
LIST_LIMIT = 200

DRIVER_ACTIONS = ("mark", "cancel")
OWNER_ACTIONS = ("confirm", "cancel")
ROLES = ("driver", "owner")

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def build_payment_reference(station_name: Optional[str], slot_start_at: datetime, slot_id: str) -> str:
    """
    Human-readable transfer reference, stable for a given slot.

    <STATION(<=6)><YYMMDDHHmm><last 4 of slot id>, truncated to 20 chars.
    """
    prefix = _NON_ALNUM.sub("", station_name or "").upper()[:6] or DEFAULT_REFERENCE_PREFIX
    stamp = slot_start_at.strftime("%y%m%d%H%M")
    suffix = _NON_ALNUM.sub("", slot_id or "").upper()[-4:]
    return f"{prefix}{stamp}{suffix}"[:REFERENCE_MAX_LENGTH]


def initial_payment_status(slot_start_at: datetime, now: datetime) -> str:
    if slot_has_started(slot_start_at, now):
        return BookingPaymentStatus.IN_PROGRESS.value
    return BookingPaymentStatus.UPCOMING.value


def status_after_totals(current: str, slot_ended: bool, has_amount: bool) -> str:
    """Automatic transition applied when totals are recomputed."""
    if current not in (BookingPaymentStatus.UPCOMING.value, BookingPaymentStatus.IN_PROGRESS.value):
        return current
    if slot_ended and has_amount:
        return BookingPaymentStatus.TO_PAY.value
    if not slot_ended and current == BookingPaymentStatus.UPCOMING.value:
        return BookingPaymentStatus.IN_PROGRESS.value
    return current


def get_payment_for_slot(db: Session, slot_id: str) -> Optional[BookingPayment]:
    return db.query(BookingPayment).filter(BookingPayment.slot_id == slot_id).first()


def _insert_if_absent(db: Session, values: Dict[str, Any]) -> None:
    """Atomic insert keyed on slot_id; a concurrent insert wins silently."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        db.add(BookingPayment(**values))
        db.flush()
        return

    stmt = insert(BookingPayment.__table__).values(**values).on_conflict_do_nothing(
        index_elements=["slot_id"]
    )
    db.execute(stmt)


def ensure_booking_payment(
    db: Session,
    station_id: str,
    slot_id: str,
    membership_id: Optional[str],
    driver_id: str,
    owner_id: str,
    station_name: Optional[str],
    slot_start_at: datetime,
    initial_status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookingPayment:
    """Return the slot's payment record, creating it if absent."""
    existing = get_payment_for_slot(db, slot_id)
    if existing:
        return existing

    now = now or utcnow()
    status = initial_status or initial_payment_status(slot_start_at, now)
    _insert_if_absent(db, {
        "id": str(uuid.uuid4()),
        "station_id": station_id,
        "slot_id": slot_id,
        "membership_id": membership_id,
        "driver_profile_id": driver_id,
        "owner_profile_id": owner_id,
        "status": status,
        "payment_reference": build_payment_reference(station_name, slot_start_at, slot_id),
        "created_at": now,
        "updated_at": now,
    })

    payment = get_payment_for_slot(db, slot_id)
    if payment is None:
        raise ChargingError.internal(f"Booking payment for slot {slot_id} could not be created")
    logger.info(f"Ensured booking payment {payment.id} for slot {slot_id} (status={payment.status})")
    return payment


def recompute_booking_totals(db: Session, slot: StationSlot, now: Optional[datetime] = None) -> Optional[BookingPayment]:
    """
    Re-sum energy and amount over every session of the slot and apply the
    automatic status transition. Callers must flush pending session changes.
    """
    payment = get_payment_for_slot(db, slot.id)
    if payment is None:
        logger.warning(f"No booking payment to update for slot {slot.id}")
        return None

    now = now or utcnow()
    energy_sum, amount_sum = (
        db.query(
            func.coalesce(func.sum(ChargingSession.energy_kwh), 0.0),
            func.coalesce(func.sum(ChargingSession.amount), 0.0),
        )
        .filter(ChargingSession.slot_id == slot.id)
        .one()
    )
    total_energy = float(energy_sum or 0.0)
    total_amount = float(amount_sum or 0.0)
    has_amount = total_amount > AMOUNT_THRESHOLD

    payment.total_energy_kwh = total_energy if has_amount else None
    payment.total_amount = round_money(total_amount) if has_amount else None

    next_status = status_after_totals(payment.status, slot_has_ended(slot.end_at, now), has_amount)
    if next_status != payment.status:
        logger.info(f"Booking payment {payment.id}: {payment.status} -> {next_status}")
        payment.status = next_status
    payment.updated_at = now
    db.flush()
    return payment


def _load_for_action(db: Session, slot_id: str) -> BookingPayment:
    payment = (
        db.query(BookingPayment)
        .options(
            joinedload(BookingPayment.station),
            joinedload(BookingPayment.slot),
            joinedload(BookingPayment.membership).joinedload(StationMembership.profile),
        )
        .filter(BookingPayment.slot_id == slot_id)
        .first()
    )
    if payment is None:
        raise ChargingError.not_found("Booked session not found.")
    return payment


def _commit(db: Session, payment: BookingPayment, label: str) -> BookingPayment:
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Booking payment {label} failed for {payment.id}: {e}", exc_info=True)
        raise ChargingError.internal("Unable to update the payment.", cause=e)
    db.refresh(payment)
    return payment


def apply_driver_action(db: Session, slot_id: str, caller_id: str, action: str, now: Optional[datetime] = None) -> BookingPayment:
    """Driver marks the slot as paid, or withdraws that mark."""
    if action not in DRIVER_ACTIONS:
        raise ChargingError.bad_request(f"Unknown action: {action}")
    payment = _load_for_action(db, slot_id)
    if payment.driver_profile_id != caller_id:
        raise ChargingError.forbidden("Action not allowed.")

    now = now or utcnow()
    status = payment.status or ""

    if action == "mark":
        if status == BookingPaymentStatus.DRIVER_MARKED.value:
            return payment
        if status == BookingPaymentStatus.PAID.value:
            raise ChargingError.bad_request("The owner already confirmed this payment.")
        if (payment.total_amount or 0) <= 0:
            raise ChargingError.bad_request("There is nothing to pay for this slot.")
        if status != BookingPaymentStatus.TO_PAY.value:
            raise ChargingError.bad_request("This slot is not payable yet.")
        payment.status = BookingPaymentStatus.DRIVER_MARKED.value
        payment.driver_marked_at = payment.driver_marked_at or now
    else:
        if status == BookingPaymentStatus.PAID.value:
            raise ChargingError.bad_request("The owner already confirmed this payment.")
        if status != BookingPaymentStatus.DRIVER_MARKED.value:
            raise ChargingError.bad_request("You have not reported a payment for this slot.")
        payment.status = BookingPaymentStatus.TO_PAY.value
        payment.driver_marked_at = None
        payment.owner_marked_at = None

    payment.updated_at = now
    logger.info(f"Driver {caller_id} applied '{action}' on booking payment {payment.id} -> {payment.status}")
    return _commit(db, payment, f"driver {action}")


def apply_owner_action(db: Session, slot_id: str, caller_id: str, action: str, now: Optional[datetime] = None) -> BookingPayment:
    """Owner confirms the driver's payment, or reverts that confirmation."""
    if action not in OWNER_ACTIONS:
        raise ChargingError.bad_request(f"Unknown action: {action}")
    payment = _load_for_action(db, slot_id)
    if payment.owner_profile_id != caller_id:
        raise ChargingError.forbidden("Action not allowed.")

    now = now or utcnow()
    status = payment.status or ""

    if action == "confirm":
        if status != BookingPaymentStatus.DRIVER_MARKED.value:
            raise ChargingError.bad_request("The driver has not reported the payment yet.")
        payment.status = BookingPaymentStatus.PAID.value
        payment.owner_marked_at = now
    else:
        if status != BookingPaymentStatus.PAID.value:
            raise ChargingError.bad_request("There is no confirmation to cancel.")
        payment.status = BookingPaymentStatus.DRIVER_MARKED.value
        payment.owner_marked_at = None

    payment.updated_at = now
    logger.info(f"Owner {caller_id} applied '{action}' on booking payment {payment.id} -> {payment.status}")
    return _commit(db, payment, f"owner {action}")


def list_booking_payments(
    db: Session,
    caller_id: str,
    role: str,
    statuses: Optional[List[str]] = None,
    limit: int = LIST_LIMIT,
) -> List[BookingPayment]:
    if role not in ROLES:
        raise ChargingError.bad_request(f"Unknown role: {role}")
    party_column = BookingPayment.driver_profile_id if role == "driver" else BookingPayment.owner_profile_id
    query = (
        db.query(BookingPayment)
        .join(StationSlot, BookingPayment.slot_id == StationSlot.id)
        .options(
            joinedload(BookingPayment.station),
            joinedload(BookingPayment.slot),
            joinedload(BookingPayment.membership).joinedload(StationMembership.profile),
        )
        .filter(party_column == caller_id)
    )
    if statuses:
        query = query.filter(BookingPayment.status.in_(statuses))
    return query.order_by(StationSlot.start_at.desc()).limit(limit).all()


def serialize_booking_payment(payment: BookingPayment, role: str) -> Dict[str, Any]:
    """Role-scoped view: same fields for both parties, `role` names the acting one."""
    station = payment.station
    slot = payment.slot
    driver = payment.membership.profile if payment.membership else None
    return {
        "id": payment.id,
        "station_id": payment.station_id,
        "slot_id": payment.slot_id,
        "membership_id": payment.membership_id,
        "driver_profile_id": payment.driver_profile_id,
        "owner_profile_id": payment.owner_profile_id,
        "status": payment.status,
        "payment_reference": payment.payment_reference,
        "total_energy_kwh": payment.total_energy_kwh,
        "total_amount": payment.total_amount,
        "driver_marked_at": isoformat(payment.driver_marked_at),
        "owner_marked_at": isoformat(payment.owner_marked_at),
        "created_at": isoformat(payment.created_at),
        "updated_at": isoformat(payment.updated_at),
        "role": role,
        "station": {
            "id": station.id,
            "name": station.name,
            "street_name": station.street_name,
            "street_number": station.street_number,
            "postal_code": station.postal_code,
            "city": station.city,
            "country": station.country,
            "price_per_kwh": station.price_per_kwh,
        } if station else None,
        "slot": {
            "id": slot.id,
            "start_at": isoformat(slot.start_at),
            "end_at": isoformat(slot.end_at),
        } if slot else None,
        "driver": {
            "id": driver.id,
            "full_name": driver.full_name,
            "vehicle_brand": driver.vehicle_brand,
            "vehicle_model": driver.vehicle_model,
            "vehicle_plate": driver.vehicle_plate,
        } if driver else None,
    }
