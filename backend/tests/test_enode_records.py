"""
Tests for Enode payload normalization tables.
"""
import json
from datetime import datetime

import pytest

from app.services.enode_records import (
    ACTION_FIELDS,
    ActionState,
    extract_action_id,
    map_action_state,
    normalize_action,
    normalize_charger,
    normalize_chargers,
    normalize_usage_record,
    normalize_usage_records,
    pick_field,
)


@pytest.mark.parametrize("value,expected", [
    ("PENDING", ActionState.PENDING),
    ("confirmed", ActionState.CONFIRMED),
    (" Failed ", ActionState.FAILED),
    ("CANCELLED", ActionState.CANCELLED),
    ("DONE", None),
    (None, None),
    (3, None),
])
def test_map_action_state(value, expected):
    assert map_action_state(value) == expected


def test_pick_field_follows_priority_order():
    record = {"action_id": "low", "actionId": "mid", "id": None}
    assert pick_field(record, ACTION_FIELDS["id"]) == "mid"


def test_extract_action_id_accepts_alternate_keys():
    assert extract_action_id({"actionId": "a-1"}) == "a-1"
    assert extract_action_id({"action_id": " a-2 "}) == "a-2"
    assert extract_action_id({"id": ""}) is None
    assert extract_action_id("a-3") is None


def test_normalize_action_keeps_raw_payload():
    raw = {
        "id": "a-1",
        "status": "failed",
        "failureReason": "Charger unreachable",
        "completedAt": "2026-03-10T18:05:00.000Z",
        "targetId": "chg-1",
        "kind": "START",
    }
    action = normalize_action(raw)

    assert action.state == ActionState.FAILED
    assert action.failure_reason == "Charger unreachable"
    assert action.completed_at == datetime(2026, 3, 10, 18, 5)
    assert action.target_id == "chg-1"
    assert action.raw is raw
    assert normalize_action(None) is None


def test_usage_record_reads_alternate_keys_and_rejects_non_numeric_energy():
    record = normalize_usage_record({"start": "2026-03-10T17:00:00+01:00", "endDate": "2026-03-10T19:00:00Z", "kwh": "12"})

    assert record.start == datetime(2026, 3, 10, 16, 0)
    assert record.end == datetime(2026, 3, 10, 19, 0)
    assert record.energy_kwh is None


def test_usage_record_prefers_kwh_sum():
    record = normalize_usage_record({"from": "2026-03-10T17:00:00Z", "to": "bad", "kwhSum": 7.5, "kwh": 1.0})

    assert record.energy_kwh == 7.5
    assert record.end is None


def test_usage_records_accept_list_or_data_envelope():
    entries = [{"from": "2026-03-10T17:00:00Z"}]
    assert len(normalize_usage_records(entries)) == 1
    assert len(normalize_usage_records({"data": entries})) == 1
    assert normalize_usage_records({"items": "nope"}) == []
    assert normalize_usage_records(None) == []


class TestChargerLabels:
    def test_brand_falls_back_to_vendor_object(self):
        charger = normalize_charger({"id": "chg-1", "vendor": {"name": "Easee"}, "model": "One"})

        assert charger.brand == "Easee"
        assert charger.vendor == "Easee"
        assert charger.model == "One"

    def test_model_falls_back_to_friendly_name_then_product_label(self):
        assert normalize_charger({"id": "c", "name": "Garage"}).model == "Garage"
        assert normalize_charger({"id": "c", "product_label": "Pulsar"}).model == "Pulsar"
        assert normalize_charger({"id": "c"}).model == "c"

    def test_missing_labels_are_empty(self):
        charger = normalize_charger({"charger_id": "chg-2"})

        assert charger.id == "chg-2"
        assert charger.brand == ""
        assert charger.vendor == ""

    def test_charger_list_envelopes(self):
        entries = [{"id": "chg-1"}, None, {"id": "chg-2"}]
        assert [c.id for c in normalize_chargers(entries)] == ["chg-1", "chg-2"]
        assert [c.id for c in normalize_chargers({"chargers": entries})] == ["chg-1", "chg-2"]
        assert normalize_chargers({"unexpected": entries}) == []


@pytest.mark.parametrize("energy", ["1e999", "-1e999", "NaN"])
def test_usage_record_rejects_non_finite_energy(energy):
    raw = json.loads(f'{{"from": "2026-03-10T17:00:00Z", "to": "2026-03-10T19:00:00Z", "kwhSum": {energy}}}')

    record = normalize_usage_record(raw)

    assert record.energy_kwh is None
    assert record.start == datetime(2026, 3, 10, 17, 0)


def test_usage_record_rejects_integer_too_large_for_float():
    record = normalize_usage_record({"from": "2026-03-10T17:00:00Z", "to": "2026-03-10T19:00:00Z", "kwhSum": 10 ** 400})

    assert record.energy_kwh is None
