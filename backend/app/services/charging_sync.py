"""
Reconciles Enode action confirmations back into charging session status.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.clock import isoformat, utcnow
from app.core.errors import ChargingError
from app.models.charging_session import (
    ChargingSession,
    ChargingSessionStatus,
    OPEN_SESSION_STATUSES,
)
from app.services.driver_charging import merge_payload
from app.services.enode_records import (
    ActionSnapshot,
    ActionState,
    as_record,
    extract_action_id,
    normalize_action,
)

logger = logging.getLogger(__name__)

_WAITING_STOP_STATES = (None, ActionState.PENDING)


def compute_session_status(
    current: str,
    start_state: Optional[ActionState],
    stop_state: Optional[ActionState],
) -> str:
    """
    Derive a session status from the latest start/stop action states.

    Rules are evaluated in order; the first match wins. A combination that
    matches none of them keeps the current status.
    """
    states = (start_state, stop_state)
    if ActionState.FAILED in states:
        return ChargingSessionStatus.FAILED.value
    if stop_state == ActionState.CONFIRMED:
        return ChargingSessionStatus.COMPLETED.value
    if ActionState.CANCELLED in states and ActionState.CONFIRMED not in states:
        return ChargingSessionStatus.CANCELLED.value
    if start_state == ActionState.CONFIRMED and stop_state in _WAITING_STOP_STATES:
        return ChargingSessionStatus.IN_PROGRESS.value
    if start_state == ActionState.PENDING and stop_state in _WAITING_STOP_STATES:
        return ChargingSessionStatus.PENDING.value
    return current


@dataclass
class SyncSummary:
    session_id: str
    status: str
    start_action_state: Optional[ActionState]
    stop_action_state: Optional[ActionState]
    start_failure: Optional[str]
    stop_failure: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "start_action_state": self.start_action_state.value if self.start_action_state else None,
            "stop_action_state": self.stop_action_state.value if self.stop_action_state else None,
            "start_failure": self.start_failure,
            "stop_failure": self.stop_failure,
        }


class ChargingSyncService:
    def __init__(self, db: Session, enode, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.enode = enode
        self._clock = clock

    def _load_session(self, session_id: str) -> ChargingSession:
        session = (
            self.db.query(ChargingSession)
            .options(joinedload(ChargingSession.station))
            .filter(ChargingSession.id == session_id)
            .first()
        )
        if not session:
            raise ChargingError.not_found("Charging session not found.")
        return session

    def _refresh(self, action_id: Optional[str], charger_id: Optional[str], label: str) -> Optional[ActionSnapshot]:
        if not action_id:
            return None
        return self.enode.fetch_action(action_id, charger_id=charger_id, context=label)

    def _has_other_open_session(self, session: ChargingSession) -> bool:
        other = (
            self.db.query(ChargingSession.id)
            .filter(
                ChargingSession.station_id == session.station_id,
                ChargingSession.driver_profile_id == session.driver_profile_id,
                ChargingSession.status.in_(OPEN_SESSION_STATUSES),
                ChargingSession.id != session.id,
            )
            .first()
        )
        return other is not None

    def sync_session(self, session_id: str, caller_id: str) -> SyncSummary:
        session = self._load_session(session_id)
        station = session.station
        owner_id = station.owner_id if station else None
        if caller_id != session.driver_profile_id and caller_id != owner_id:
            raise ChargingError.forbidden("Access to this charging session is not allowed.")

        raw_payload = dict(session.raw_external_payload or {})
        stored_start = normalize_action(raw_payload.get("start_action"))
        stored_stop = normalize_action(raw_payload.get("stop_action"))
        start_action_id = session.start_action_id or extract_action_id(raw_payload.get("start_action"))
        stop_action_id = session.stop_action_id or extract_action_id(raw_payload.get("stop_action"))
        if not start_action_id and not stop_action_id:
            raise ChargingError.bad_request("No Enode action to synchronize for this charging session.")

        charger_id = station.charger_external_id if station else None
        refreshed_start = self._refresh(start_action_id, charger_id, f"charging-sync:start:{session.id}")
        refreshed_stop = self._refresh(stop_action_id, charger_id, f"charging-sync:stop:{session.id}")

        start_action = refreshed_start or stored_start
        stop_action = refreshed_stop or stored_stop
        start_state = start_action.state if start_action else None
        stop_state = stop_action.state if stop_action else None
        start_failure = start_action.failure_reason if start_action else None
        stop_failure = stop_action.failure_reason if stop_action else None
        stop_completed_at = stop_action.completed_at if stop_action else None

        patch = {}
        if refreshed_start:
            patch["start_action"] = refreshed_start.raw
        if refreshed_stop:
            patch["stop_action"] = refreshed_stop.raw
        if patch:
            session.raw_external_payload = merge_payload(raw_payload, patch)

        now = self._clock()
        session.session_metadata = merge_payload(as_record(session.session_metadata), {
            "last_sync_at": isoformat(now),
            "start_action_state": start_state.value if start_state else None,
            "start_action_failure": start_failure,
            "start_action_completed_at": isoformat(start_action.completed_at) if start_action else None,
            "stop_action_state": stop_state.value if stop_state else None,
            "stop_action_failure": stop_failure,
            "stop_action_completed_at": isoformat(stop_completed_at),
        })

        next_status = compute_session_status(session.status, start_state, stop_state)
        if next_status != session.status:
            reopening = next_status in OPEN_SESSION_STATUSES and not session.is_open
            if reopening and self._has_other_open_session(session):
                logger.warning(
                    f"Not reopening session {session.id} as {next_status}: "
                    f"driver {session.driver_profile_id} already has an open session on station {session.station_id}"
                )
            else:
                logger.info(f"Session {session.id} status {session.status} -> {next_status}")
                session.status = next_status
        if stop_completed_at and stop_completed_at != session.end_at:
            session.end_at = stop_completed_at
        session.updated_at = now

        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to persist sync of charging session {session_id}: {e}", exc_info=True)
            raise ChargingError.internal("Unable to update the charging session.", cause=e)

        return SyncSummary(
            session_id=session.id,
            status=session.status,
            start_action_state=start_state,
            stop_action_state=stop_state,
            start_failure=start_failure,
            stop_failure=stop_failure,
        )
