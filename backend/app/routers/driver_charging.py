"""
Driver charging router: /v1/driver/charging/*

Start and stop a charging session on the station charger during the driver's
booking slot, and reconcile a session with the latest Enode action states.
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.clock import isoformat
from app.db import get_db
from app.dependencies.auth import get_current_profile_id
from app.schemas.charging import (
    StartChargingResponse,
    StationRequest,
    StopChargingResponse,
    SyncSessionRequest,
    SyncSessionResponse,
)
from app.services.charging_sync import ChargingSyncService
from app.services.driver_charging import DriverChargingService, serialize_session, serialize_slot
from app.services.enode_client import get_enode_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/driver/charging", tags=["driver-charging"])


@router.post("/start", response_model=StartChargingResponse)
def start_charging(
    body: StationRequest,
    db: Session = Depends(get_db),
    enode=Depends(get_enode_client),
    profile_id: str = Depends(get_current_profile_id),
):
    result = DriverChargingService(db, enode).start_charging(body.station_id, profile_id)
    return {
        "session": serialize_session(result.session),
        "slot": serialize_slot(result.slot),
        "message": result.message,
    }


@router.post("/stop", response_model=StopChargingResponse)
def stop_charging(
    body: StationRequest,
    db: Session = Depends(get_db),
    enode=Depends(get_enode_client),
    profile_id: str = Depends(get_current_profile_id),
):
    result = DriverChargingService(db, enode).stop_charging(body.station_id, profile_id)
    stats = None
    if result.stats:
        stats = asdict(result.stats)
        stats["start"] = isoformat(result.stats.start)
        stats["end"] = isoformat(result.stats.end)
    return {
        "session": serialize_session(result.session),
        "slot": serialize_slot(result.slot),
        "stats": stats,
        "message": result.message,
    }


@router.post("/sync", response_model=SyncSessionResponse)
def sync_session(
    body: SyncSessionRequest,
    db: Session = Depends(get_db),
    enode=Depends(get_enode_client),
    profile_id: str = Depends(get_current_profile_id),
):
    summary = ChargingSyncService(db, enode).sync_session(body.session_id, profile_id)
    return summary.to_dict()
