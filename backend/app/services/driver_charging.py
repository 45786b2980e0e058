"""
Driver charging sessions.

Starts and stops a physical charging session on a station's Enode charger on
behalf of an approved member, keeping local session records consistent with
the actions sent to Enode and with the slot's booking payment.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.clock import isoformat, utcnow
from app.core.errors import ChargingError
from app.models.booking_payment import BookingPaymentStatus
from app.models.charging_session import (
    ChargingSession,
    ChargingSessionStatus,
    OPEN_SESSION_STATUSES,
)
from app.models.station import (
    MembershipStatus,
    Profile,
    SlotType,
    Station,
    StationMembership,
    StationSlot,
)
from app.services.booking_payments import ensure_booking_payment, recompute_booking_totals
from app.services.charging_stats import collect_session_stats, compute_amount
from app.services.enode_records import ActionSnapshot, ChargerActionKind, UsageRecord

logger = logging.getLogger(__name__)


@dataclass
class DriverStationContext:
    membership: StationMembership
    station: Station
    owner: Profile


@dataclass
class StartChargingResult:
    session: ChargingSession
    slot: StationSlot
    started: bool

    @property
    def message(self) -> str:
        if self.started:
            return "Charging started."
        return "A charging session is already running on this charger."


@dataclass
class StopChargingResult:
    session: ChargingSession
    slot: StationSlot
    stats: Optional[UsageRecord]
    message: str = "Charging stopped."


def load_driver_station_context(db: Session, station_id: str, driver_id: str) -> DriverStationContext:
    membership = (
        db.query(StationMembership)
        .filter(
            StationMembership.station_id == station_id,
            StationMembership.profile_id == driver_id,
            StationMembership.status == MembershipStatus.APPROVED.value,
        )
        .first()
    )
    if not membership or not membership.station:
        raise ChargingError.forbidden("You must be an approved member of this station.")

    station = membership.station
    owner = db.get(Profile, station.owner_id)
    if not owner:
        raise ChargingError.not_found("Station owner not found.")

    return DriverStationContext(membership=membership, station=station, owner=owner)


def require_linked_charger(context: DriverStationContext, action_label: str) -> None:
    if not context.station.charger_external_id:
        raise ChargingError.bad_request("No Enode charger is linked to this station.")
    if not context.owner.external_account_id:
        raise ChargingError.bad_request(
            f"The owner must finish connecting Enode before you can {action_label} charging."
        )


def get_active_slot_for_membership(
    db: Session,
    station_id: str,
    membership_id: str,
    now: datetime,
) -> Optional[StationSlot]:
    """Member-booking slot of this membership whose window contains `now`."""
    return (
        db.query(StationSlot)
        .filter(
            StationSlot.station_id == station_id,
            StationSlot.type == SlotType.MEMBER_BOOKING.value,
            StationSlot.slot_metadata["membership_id"].as_string() == membership_id,
            StationSlot.start_at <= now,
            StationSlot.end_at >= now,
        )
        .order_by(StationSlot.start_at.asc())
        .first()
    )


def get_open_session(db: Session, station_id: str, driver_id: str) -> Optional[ChargingSession]:
    return (
        db.query(ChargingSession)
        .filter(
            ChargingSession.station_id == station_id,
            ChargingSession.driver_profile_id == driver_id,
            ChargingSession.status.in_(OPEN_SESSION_STATUSES),
        )
        .order_by(ChargingSession.created_at.desc())
        .first()
    )


def get_running_session(db: Session, station_id: str, driver_id: str) -> Optional[ChargingSession]:
    return (
        db.query(ChargingSession)
        .filter(
            ChargingSession.station_id == station_id,
            ChargingSession.driver_profile_id == driver_id,
            ChargingSession.status == ChargingSessionStatus.IN_PROGRESS.value,
        )
        .order_by(ChargingSession.created_at.desc())
        .first()
    )


def merge_payload(current: Optional[Dict[str, Any]], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow merge into a new dict so JSON columns register the change."""
    merged = dict(current or {})
    merged.update(patch)
    return merged


def _action_raw(action: Optional[ActionSnapshot]) -> Optional[Dict[str, Any]]:
    return action.raw if action else None


def serialize_session(session: ChargingSession) -> Dict[str, Any]:
    return {
        "id": session.id,
        "station_id": session.station_id,
        "driver_profile_id": session.driver_profile_id,
        "slot_id": session.slot_id,
        "status": session.status,
        "start_at": isoformat(session.start_at),
        "end_at": isoformat(session.end_at),
        "energy_kwh": session.energy_kwh,
        "amount": session.amount,
    }


def serialize_slot(slot: Optional[StationSlot]) -> Optional[Dict[str, Any]]:
    if slot is None:
        return None
    return {
        "id": slot.id,
        "start_at": isoformat(slot.start_at),
        "end_at": isoformat(slot.end_at),
    }


class DriverChargingService:
    """Start/stop controller for a driver's session on a station."""

    def __init__(self, db: Session, enode, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.enode = enode
        self._clock = clock

    def start_charging(self, station_id: str, driver_id: str) -> StartChargingResult:
        db = self.db
        now = self._clock()
        context = load_driver_station_context(db, station_id, driver_id)
        require_linked_charger(context, "start")

        slot = get_active_slot_for_membership(db, station_id, context.membership.id, now)
        if not slot:
            raise ChargingError.bad_request("No active booking slot found to start charging.")

        try:
            ensure_booking_payment(
                db,
                station_id=station_id,
                slot_id=slot.id,
                membership_id=context.membership.id,
                driver_id=driver_id,
                owner_id=context.station.owner_id,
                station_name=context.station.name,
                slot_start_at=slot.start_at,
                initial_status=BookingPaymentStatus.IN_PROGRESS.value,
                now=now,
            )

            existing = get_open_session(db, station_id, driver_id)
            if existing and existing.status == ChargingSessionStatus.IN_PROGRESS.value:
                db.commit()
                logger.info(f"Start is a no-op: session {existing.id} already in progress for driver {driver_id}")
                return StartChargingResult(session=existing, slot=slot, started=False)

            if existing:
                logger.info(f"Cancelling stale {existing.status} session {existing.id} before a new start")
                existing.status = ChargingSessionStatus.CANCELLED.value
                existing.end_at = now
                db.flush()

            start_action = self.enode.send_action(context.station.charger_external_id, ChargerActionKind.START)

            session = ChargingSession(
                station_id=station_id,
                driver_profile_id=driver_id,
                slot_id=slot.id,
                status=ChargingSessionStatus.IN_PROGRESS.value,
                start_at=now,
                start_action_id=start_action.id if start_action else None,
                session_metadata={
                    "start_action": _action_raw(start_action),
                    "slot": serialize_slot(slot),
                },
                raw_external_payload={"start_action": _action_raw(start_action)},
                created_at=now,
                updated_at=now,
            )
            db.add(session)
            db.commit()
        except ChargingError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record charging start for driver {driver_id} on station {station_id}: {e}", exc_info=True)
            raise ChargingError.internal("Unable to record the charging session.", cause=e)

        db.refresh(session)
        logger.info(f"Started charging session {session.id} (action={session.start_action_id}) on station {station_id}")
        return StartChargingResult(session=session, slot=slot, started=True)

    def stop_charging(self, station_id: str, driver_id: str) -> StopChargingResult:
        db = self.db
        context = load_driver_station_context(db, station_id, driver_id)
        require_linked_charger(context, "stop")

        session = get_running_session(db, station_id, driver_id)
        if not session:
            raise ChargingError.bad_request("No charging session in progress to stop.")

        slot = db.get(StationSlot, session.slot_id) if session.slot_id else None
        if not slot:
            raise ChargingError.internal(f"Slot of charging session {session.id} cannot be found.")
        membership_id = slot.membership_id
        if not membership_id:
            raise ChargingError.internal(f"Slot {slot.id} carries no membership.")

        station = context.station
        try:
            ensure_booking_payment(
                db,
                station_id=slot.station_id,
                slot_id=slot.id,
                membership_id=membership_id,
                driver_id=driver_id,
                owner_id=station.owner_id,
                station_name=station.name,
                slot_start_at=slot.start_at,
                now=self._clock(),
            )

            stop_action = self.enode.send_action(station.charger_external_id, ChargerActionKind.STOP)

            now = self._clock()
            stats = collect_session_stats(
                self.enode,
                context.owner.external_account_id,
                station.charger_external_id,
                session.start_at,
                now,
            )
            energy_kwh = stats.energy_kwh if stats else None
            amount = compute_amount(energy_kwh, station.price_per_kwh)

            session.status = ChargingSessionStatus.COMPLETED.value
            session.end_at = now
            session.energy_kwh = energy_kwh
            session.amount = amount
            if stop_action and stop_action.id:
                session.stop_action_id = stop_action.id
            session.session_metadata = merge_payload(session.session_metadata, {
                "stop_action": _action_raw(stop_action),
                "stats_session": stats.raw if stats else None,
            })
            session.raw_external_payload = merge_payload(
                session.raw_external_payload,
                {"stop_action": _action_raw(stop_action)},
            )
            session.updated_at = now
            db.flush()

            recompute_booking_totals(db, slot, now)
            db.commit()
        except ChargingError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record charging stop for session {session.id}: {e}", exc_info=True)
            raise ChargingError.internal("Unable to update the charging session.", cause=e)

        db.refresh(session)
        logger.info(
            f"Stopped charging session {session.id}: energy_kwh={session.energy_kwh} amount={session.amount}"
        )
        return StopChargingResult(session=session, slot=slot, stats=stats)
