"""
Tests for reconciling Enode action states into charging session status.
"""
from datetime import datetime, timedelta

import pytest

from app.core.errors import ChargingError, ErrorKind
from app.models import ChargingSession, ChargingSessionStatus
from app.services.charging_sync import ChargingSyncService, compute_session_status
from app.services.enode_records import ActionState
from tests.helpers.charging_helpers import NOW, create_booking, create_profile

P = ActionState.PENDING
C = ActionState.CONFIRMED
F = ActionState.FAILED
X = ActionState.CANCELLED


@pytest.mark.parametrize("start,stop,expected", [
    (F, None, "failed"),
    (C, F, "failed"),
    (F, C, "failed"),
    (C, C, "completed"),
    (P, C, "completed"),
    (None, C, "completed"),
    (X, None, "cancelled"),
    (P, X, "cancelled"),
    (C, X, "in_progress"),
    (C, None, "in_progress"),
    (C, P, "in_progress"),
    (P, None, "pending"),
    (P, P, "pending"),
    (None, None, "in_progress"),
    (None, P, "in_progress"),
])
def test_compute_session_status(start, stop, expected):
    assert compute_session_status("in_progress", start, stop) == expected


def test_unmatched_combination_keeps_current_status():
    assert compute_session_status("completed", None, P) == "completed"
    assert compute_session_status("cancelled", None, None) == "cancelled"


def action(action_id, state, **extra):
    raw = {"id": action_id, "state": state, "kind": "START"}
    raw.update(extra)
    return raw


@pytest.fixture
def booking(db):
    return create_booking(db)


def add_session(db, booking, status="in_progress", start_action_id="act-start", stop_action_id=None, raw=None):
    session = ChargingSession(
        station_id=booking.station.id,
        driver_profile_id=booking.driver.id,
        slot_id=booking.slot.id,
        status=status,
        start_at=NOW,
        start_action_id=start_action_id,
        stop_action_id=stop_action_id,
        raw_external_payload=raw if raw is not None else {"start_action": action(start_action_id, "PENDING")},
        session_metadata={"slot": {"id": booking.slot.id}},
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


@pytest.fixture
def service(db, fake_enode, clock):
    return ChargingSyncService(db, fake_enode, clock=clock)


class TestSyncSession:
    def test_confirmed_start_and_stop_completes_session(self, db, booking, service, fake_enode):
        session = add_session(db, booking, stop_action_id="act-stop")
        fake_enode.actions = {
            "act-start": action("act-start", "CONFIRMED"),
            "act-stop": action("act-stop", "CONFIRMED", completedAt="2026-03-10T18:40:00Z", kind="STOP"),
        }

        summary = service.sync_session(session.id, booking.driver.id)

        assert summary.status == "completed"
        assert summary.to_dict()["stop_action_state"] == "CONFIRMED"
        assert fake_enode.fetched_actions == ["act-start", "act-stop"]

        db.refresh(session)
        assert session.status == ChargingSessionStatus.COMPLETED.value
        assert session.end_at == datetime(2026, 3, 10, 18, 40)
        assert session.raw_external_payload["stop_action"]["state"] == "CONFIRMED"
        assert session.session_metadata["last_sync_at"] == "2026-03-10T18:00:00Z"
        assert session.session_metadata["stop_action_completed_at"] == "2026-03-10T18:40:00Z"
        assert session.session_metadata["slot"] == {"id": booking.slot.id}

    def test_failed_start_records_reason(self, db, booking, service, fake_enode):
        session = add_session(db, booking)
        fake_enode.actions = {"act-start": action("act-start", "FAILED", failureReason="Charger offline")}

        summary = service.sync_session(session.id, booking.owner.id)

        assert summary.status == "failed"
        assert summary.start_failure == "Charger offline"
        db.refresh(session)
        assert session.session_metadata["start_action_failure"] == "Charger offline"

    def test_falls_back_to_stored_snapshot(self, db, booking, service, fake_enode):
        session = add_session(
            db,
            booking,
            start_action_id=None,
            raw={"start_action": action("act-stored", "CONFIRMED")},
        )

        summary = service.sync_session(session.id, booking.driver.id)

        assert fake_enode.fetched_actions == ["act-stored"]
        assert summary.start_action_state == ActionState.CONFIRMED
        assert summary.status == "in_progress"
        db.refresh(session)
        assert session.raw_external_payload == {"start_action": action("act-stored", "CONFIRMED")}

    def test_session_without_actions_is_rejected(self, db, booking, service, fake_enode):
        session = add_session(db, booking, start_action_id=None, raw={})

        with pytest.raises(ChargingError) as exc_info:
            service.sync_session(session.id, booking.driver.id)

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert fake_enode.fetched_actions == []

    def test_unknown_session_is_not_found(self, service):
        with pytest.raises(ChargingError) as exc_info:
            service.sync_session("missing", "anyone")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_stranger_is_forbidden(self, db, booking, service):
        session = add_session(db, booking)
        stranger = create_profile(db, full_name="Stranger")

        with pytest.raises(ChargingError) as exc_info:
            service.sync_session(session.id, stranger.id)

        assert exc_info.value.kind == ErrorKind.AUTHORIZATION

    def test_gateway_error_leaves_session_untouched(self, db, booking, service, fake_enode):
        session = add_session(db, booking)
        fake_enode.fetch_error = ChargingError.external(503, "unavailable", "charging-sync:start")

        with pytest.raises(ChargingError) as exc_info:
            service.sync_session(session.id, booking.driver.id)

        assert exc_info.value.http_status == 502
        db.refresh(session)
        assert session.status == "in_progress"
        assert "last_sync_at" not in session.session_metadata

    def test_does_not_reopen_when_another_session_is_open(self, db, booking, service, fake_enode, clock):
        closed = add_session(db, booking, status="cancelled", start_action_id="act-old")
        add_session(db, booking, status="in_progress", start_action_id="act-new")
        fake_enode.actions = {"act-old": action("act-old", "CONFIRMED")}
        clock.advance(minutes=1)

        summary = service.sync_session(closed.id, booking.driver.id)

        assert summary.status == "cancelled"
        db.refresh(closed)
        assert closed.status == "cancelled"
        assert closed.session_metadata["start_action_state"] == "CONFIRMED"

    def test_reopens_when_no_other_session_is_open(self, db, booking, service, fake_enode):
        closed = add_session(db, booking, status="cancelled", start_action_id="act-old")
        fake_enode.actions = {"act-old": action("act-old", "CONFIRMED")}

        summary = service.sync_session(closed.id, booking.driver.id)

        assert summary.status == "in_progress"

    @pytest.mark.parametrize("status,is_open", [
        ("pending", True),
        ("ready", True),
        ("in_progress", True),
        ("completed", False),
        ("failed", False),
        ("cancelled", False),
    ])
    def test_open_statuses(self, status, is_open):
        assert ChargingSession(status=status).is_open is is_open

    def test_completed_at_moves_end_at(self, db, booking, service, fake_enode):
        session = add_session(db, booking, status="completed", stop_action_id="act-stop")
        session.end_at = NOW + timedelta(minutes=50)
        db.commit()
        fake_enode.actions = {
            "act-start": action("act-start", "CONFIRMED"),
            "act-stop": action("act-stop", "CONFIRMED", completedAt="2026-03-10T18:45:00Z"),
        }

        service.sync_session(session.id, booking.driver.id)

        db.refresh(session)
        assert session.end_at == datetime(2026, 3, 10, 18, 45)
