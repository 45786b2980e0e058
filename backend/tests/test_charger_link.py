"""
Tests for linking an owner's Enode charger to a station.
"""
from urllib.parse import urlsplit

import pytest

from app.core.errors import ChargingError, ErrorKind
from app.models import MembershipStatus, Station, StationMembership
from app.services.charger_link import (
    DEFAULT_CHARGER_BRAND,
    ChargerLinkService,
    build_redirect_uri,
)
from app.utils.state_token import create_state_token, verify_state_token
from tests.helpers.charging_helpers import create_profile, create_station


class TestBuildRedirectUri:
    def test_placeholder_is_replaced(self):
        assert build_redirect_uri("https://app.test/cb?state={state}", "tok") == "https://app.test/cb?state=tok"
        assert build_redirect_uri("https://app.test/cb/{token}", "tok") == "https://app.test/cb/tok"

    def test_state_is_appended_as_last_path_segment(self):
        assert build_redirect_uri("https://app.test/enode/callback/", "tok") == "https://app.test/enode/callback/tok"

    def test_query_is_kept_after_appended_segment(self):
        assert build_redirect_uri("https://app.test/cb?lang=fr", "tok") == "https://app.test/cb/tok?lang=fr"

    def test_non_url_base_gets_plain_suffix(self):
        assert build_redirect_uri("myapp://enode", "tok") == "myapp://enode/tok"


@pytest.fixture
def owner(db):
    return create_profile(db, full_name="Olivia Owner")


@pytest.fixture
def station(db, owner):
    return create_station(db, owner, charger_external_id=None)


@pytest.fixture
def service(db, fake_enode, clock):
    return ChargerLinkService(db, fake_enode, clock=clock)


class TestCreateLinkSession:
    def test_returns_link_url_and_embeds_signed_state(self, db, owner, station, service, fake_enode):
        result = service.create_link_session(station.id, owner.id)

        assert result == {"link_url": "https://link.enode.test/session/abc"}
        call = fake_enode.link_calls[0]
        assert call["language"] == "fr-FR"
        assert "charger:control:charging" in call["scopes"]

        redirect = urlsplit(call["redirect_uri"])
        assert redirect.netloc == "app.plogo.test"
        state = redirect.path.rsplit("/", 1)[-1]
        assert verify_state_token(state) == {"profile_id": owner.id, "station_id": station.id}

    def test_assigns_enode_account_id_on_first_link(self, db, owner, station, service, fake_enode):
        assert owner.external_account_id is None

        service.create_link_session(station.id, owner.id)

        db.refresh(owner)
        assert owner.external_account_id == owner.id
        assert fake_enode.link_calls[0]["account_id"] == owner.id

    def test_existing_account_id_is_reused(self, db, service, fake_enode):
        owner = create_profile(db, external_account_id="enode-user-9")
        station = create_station(db, owner, charger_external_id=None)

        service.create_link_session(station.id, owner.id)

        assert fake_enode.link_calls[0]["account_id"] == "enode-user-9"

    def test_non_owner_is_forbidden(self, db, station, service, fake_enode):
        stranger = create_profile(db, full_name="Stranger")

        with pytest.raises(ChargingError) as exc_info:
            service.create_link_session(station.id, stranger.id)

        assert exc_info.value.kind == ErrorKind.AUTHORIZATION
        assert fake_enode.link_calls == []

    def test_unknown_station_is_not_found(self, owner, service):
        with pytest.raises(ChargingError) as exc_info:
            service.create_link_session("missing", owner.id)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_owner_with_charger_on_another_station_is_rejected(self, db, owner, station, service):
        create_station(db, owner, name="Garage", charger_external_id="charger-9")

        with pytest.raises(ChargingError) as exc_info:
            service.create_link_session(station.id, owner.id)

        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_missing_link_url_is_internal(self, db, owner, station, service, fake_enode):
        fake_enode.link_url = None

        with pytest.raises(ChargingError) as exc_info:
            service.create_link_session(station.id, owner.id)

        assert exc_info.value.kind == ErrorKind.INTERNAL
        db.refresh(owner)
        assert owner.external_account_id is None


class TestCompleteLink:
    def _state(self, owner, station):
        return create_state_token({"profile_id": owner.id, "station_id": station.id})

    def test_attaches_first_charger_and_approves_owner(self, db, owner, station, service, fake_enode):
        owner.external_account_id = "enode-user-1"
        db.commit()
        fake_enode.chargers = [
            {"id": "chg-42", "brand": "Wallbox", "model": "Pulsar Plus", "vendor": "WALLBOX"},
            {"id": "chg-43"},
        ]

        result = service.complete_link(self._state(owner, station))

        assert result == {
            "station_id": station.id,
            "charger_id": "chg-42",
            "charger_brand": "Wallbox",
            "charger_model": "Pulsar Plus",
            "charger_vendor": "WALLBOX",
        }
        refreshed = db.get(Station, station.id)
        assert refreshed.charger_external_id == "chg-42"
        assert refreshed.charger_metadata["model"] == "Pulsar Plus"

        membership = (
            db.query(StationMembership)
            .filter(StationMembership.station_id == station.id, StationMembership.profile_id == owner.id)
            .one()
        )
        assert membership.status == MembershipStatus.APPROVED.value

    def test_selected_charger_is_attached(self, db, service, fake_enode):
        owner = create_profile(db, external_account_id="enode-user-1")
        station = create_station(db, owner, charger_external_id=None)
        fake_enode.chargers = [{"id": "chg-1"}, {"id": "chg-2", "brand": "Easee"}]

        result = service.complete_link(self._state(owner, station), charger_id="chg-2")

        assert result["charger_id"] == "chg-2"
        assert result["charger_brand"] == "Easee"
        assert db.get(Station, station.id).charger_external_id == "chg-2"

    def test_unknown_selected_charger_is_rejected(self, db, service, fake_enode):
        owner = create_profile(db, external_account_id="enode-user-1")
        station = create_station(db, owner, charger_external_id=None)
        fake_enode.chargers = [{"id": "chg-1"}]

        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(self._state(owner, station), charger_id="chg-9")

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert db.get(Station, station.id).charger_external_id is None

    def test_missing_labels_use_defaults(self, db, service, fake_enode):
        owner = create_profile(db, external_account_id="enode-user-1")
        station = create_station(db, owner, charger_external_id=None)
        fake_enode.chargers = [{"id": "chg-1"}]

        result = service.complete_link(self._state(owner, station))

        assert result["charger_brand"] == DEFAULT_CHARGER_BRAND
        assert result["charger_model"] == "chg-1"
        assert result["charger_vendor"] is None

    def test_no_chargers_is_rejected(self, db, service, fake_enode):
        owner = create_profile(db, external_account_id="enode-user-1")
        station = create_station(db, owner, charger_external_id=None)

        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(self._state(owner, station))

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert db.get(Station, station.id).charger_external_id is None

    def test_profile_without_account_is_rejected(self, db, owner, station, service):
        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(self._state(owner, station))
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_state_for_someone_elses_station_is_rejected(self, db, station, service):
        intruder = create_profile(db, external_account_id="enode-user-2")

        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(self._state(intruder, station))

        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_incomplete_state_is_rejected(self, service):
        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(create_state_token({"profile_id": "p-1"}))
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_tampered_state_is_rejected(self, db, owner, station, service):
        raw, signature = self._state(owner, station).split(".")
        forged = ("A" if signature[0] != "A" else "B") + signature[1:]

        with pytest.raises(ChargingError) as exc_info:
            service.complete_link(f"{raw}.{forged}")

        assert exc_info.value.kind == ErrorKind.VALIDATION
