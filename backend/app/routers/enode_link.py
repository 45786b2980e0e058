"""
Enode link router: /v1/enode/*

Owners start an Enode link session for one of their stations; Enode
redirects back to the callback with the signed state.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.errors import ChargingError
from app.db import get_db
from app.dependencies.auth import get_current_profile_id
from app.schemas.charging import LinkCallbackResponse, LinkSessionResponse, StationRequest
from app.services.charger_link import ChargerLinkService
from app.services.enode_client import get_enode_client

router = APIRouter(prefix="/v1/enode", tags=["enode"])


@router.post("/link", response_model=LinkSessionResponse)
def create_link_session(
    body: StationRequest,
    db: Session = Depends(get_db),
    enode=Depends(get_enode_client),
    profile_id: str = Depends(get_current_profile_id),
):
    return ChargerLinkService(db, enode).create_link_session(body.station_id, profile_id)


@router.get("/callback", response_model=LinkCallbackResponse)
def link_callback(
    state: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    charger_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    enode=Depends(get_enode_client),
):
    state_token = (state or token or "").strip()
    if not state_token:
        raise ChargingError.bad_request("Missing state token.")
    return ChargerLinkService(db, enode).complete_link(state_token, charger_id=(charger_id or "").strip() or None)
