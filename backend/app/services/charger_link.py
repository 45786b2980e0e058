"""
Linking a station owner's Enode account and charger to a station.

The owner first requests a link session: the Enode redirect URI carries a
signed state token `{profile_id, station_id}`. Enode then calls back with that
state; the first charger on the account is attached to the station.
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import ChargingError
from app.models.station import MembershipStatus, Profile, Station, StationMembership
from app.utils.state_token import create_state_token, verify_state_token

logger = logging.getLogger(__name__)

DEFAULT_CHARGER_BRAND = "Enode charger"
DEFAULT_CHARGER_MODEL = "Enode model"

_STATE_PLACEHOLDER = re.compile(r"\{(state|token)\}", re.IGNORECASE)


def build_redirect_uri(base_uri: str, state_token: str) -> str:
    """Put the state into `{state}`/`{token}` if present, else append it as the last path segment."""
    if _STATE_PLACEHOLDER.search(base_uri):
        return _STATE_PLACEHOLDER.sub(state_token, base_uri, count=1)
    parts = urlsplit(base_uri)
    if parts.scheme and parts.netloc:
        path = f"{parts.path.rstrip('/')}/{state_token}"
        return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))
    return f"{base_uri.rstrip('/')}/{state_token}"


def ensure_single_linked_station(db: Session, owner_id: str, station_id: str) -> None:
    other = (
        db.query(Station.id)
        .filter(
            Station.owner_id == owner_id,
            Station.id != station_id,
            Station.charger_external_id.isnot(None),
        )
        .first()
    )
    if other:
        raise ChargingError.bad_request("An Enode charger is already linked to another of your stations.")


def ensure_external_account_id(db: Session, profile: Profile) -> str:
    if profile.external_account_id and profile.external_account_id.strip():
        return profile.external_account_id.strip()
    profile.external_account_id = profile.id
    db.flush()
    logger.info(f"Assigned Enode account id to profile {profile.id}")
    return profile.id


def ensure_owner_membership(db: Session, station_id: str, profile_id: str, now: datetime) -> StationMembership:
    membership = (
        db.query(StationMembership)
        .filter(
            StationMembership.station_id == station_id,
            StationMembership.profile_id == profile_id,
        )
        .first()
    )
    if membership is None:
        membership = StationMembership(
            station_id=station_id,
            profile_id=profile_id,
            status=MembershipStatus.APPROVED.value,
            approved_at=now,
            created_at=now,
        )
        db.add(membership)
    elif membership.status != MembershipStatus.APPROVED.value:
        membership.status = MembershipStatus.APPROVED.value
        membership.approved_at = now
    return membership


class ChargerLinkService:
    def __init__(self, db: Session, enode, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.enode = enode
        self._clock = clock

    def _load_station(self, station_id: str) -> Station:
        station = self.db.get(Station, station_id)
        if not station:
            raise ChargingError.not_found("Station not found.")
        return station

    def create_link_session(self, station_id: str, caller_id: str) -> Dict[str, Any]:
        db = self.db
        profile = db.get(Profile, caller_id)
        if not profile:
            raise ChargingError.not_found("Profile not found.")
        station = self._load_station(station_id)
        if station.owner_id != profile.id:
            raise ChargingError.forbidden("You can only link chargers to your own stations.")

        ensure_single_linked_station(db, profile.id, station.id)
        account_id = ensure_external_account_id(db, profile)

        if not settings.ENODE_REDIRECT_URI:
            raise ChargingError.internal("ENODE_REDIRECT_URI is not configured")
        state = create_state_token({"profile_id": profile.id, "station_id": station.id})
        redirect_uri = build_redirect_uri(settings.ENODE_REDIRECT_URI, state)

        try:
            link_url = self.enode.create_link_session(
                account_id,
                redirect_uri=redirect_uri,
                scopes=settings.enode_scopes,
                language=settings.ENODE_LINK_LANGUAGE,
            )
            if not link_url:
                raise ChargingError.internal("Enode link session returned no link URL.")
            db.commit()
        except ChargingError:
            db.rollback()
            raise

        logger.info(f"Created Enode link session for station {station.id} (owner {profile.id})")
        return {"link_url": link_url}

    def complete_link(self, state_token: str, charger_id: Optional[str] = None) -> Dict[str, Any]:
        """Attach a charger of the owner's Enode account to the station in the state.

        `charger_id` picks one of the account's chargers; the first one is used
        when it is omitted.
        """
        db = self.db
        state = verify_state_token(state_token)
        profile_id = state.get("profile_id")
        station_id = state.get("station_id")
        if not profile_id or not station_id:
            raise ChargingError.bad_request("Incomplete state token.")

        profile = db.get(Profile, profile_id)
        if not profile:
            raise ChargingError.bad_request("Profile not found.")
        station = db.get(Station, station_id)
        if not station:
            raise ChargingError.bad_request("Station not found.")
        if station.owner_id != profile.id:
            raise ChargingError.bad_request("This station does not belong to the given profile.")
        if not profile.external_account_id:
            raise ChargingError.bad_request("No Enode account is associated with this profile.")

        ensure_single_linked_station(db, profile.id, station.id)

        chargers = self.enode.list_chargers(profile.external_account_id)
        if not chargers:
            raise ChargingError.bad_request("No charger was found on the Enode account.")
        if charger_id:
            charger = next((item for item in chargers if item.id == charger_id), None)
            if charger is None:
                raise ChargingError.bad_request("The selected charger was not found on the Enode account.")
        else:
            charger = chargers[0]
        if not charger.id:
            raise ChargingError.bad_request("The Enode charger has no identifier.")

        now = self._clock()
        station.charger_external_id = charger.id
        station.charger_metadata = charger.raw
        station.charger_brand = charger.brand or DEFAULT_CHARGER_BRAND
        station.charger_model = charger.model or DEFAULT_CHARGER_MODEL
        station.charger_vendor = charger.vendor or None
        station.updated_at = now
        ensure_owner_membership(db, station.id, profile.id, now)

        try:
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to attach charger {charger.id} to station {station_id}: {e}", exc_info=True)
            raise ChargingError.internal("Unable to attach the charger to the station.", cause=e)

        logger.info(f"Linked Enode charger {charger.id} to station {station_id}")
        return {
            "station_id": station_id,
            "charger_id": charger.id,
            "charger_brand": station.charger_brand,
            "charger_model": station.charger_model,
            "charger_vendor": station.charger_vendor,
        }
