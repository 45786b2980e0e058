"""
Normalization of Enode JSON records.

Enode payloads vary between API versions and vendors, so each logical field
is read from a fixed priority list of source keys. The tables below are the
only place those key names live.
"""
import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.core.clock import parse_timestamp


class ActionState(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ChargerActionKind(str, enum.Enum):
    START = "START"
    STOP = "STOP"


ACTION_FIELDS: Dict[str, tuple] = {
    "id": ("id", "actionId", "action_id"),
    "state": ("state", "status"),
    "completed_at": ("completedAt", "completed_at"),
    "failure_reason": ("failureReason", "failure_reason"),
    "kind": ("kind", "action"),
    "target_id": ("targetId", "chargerId", "charger_id"),
}

USAGE_FIELDS: Dict[str, tuple] = {
    "from": ("from", "start", "startDate"),
    "to": ("to", "end", "endDate"),
    "energy_kwh": ("kwhSum", "kwh_sum", "energyKwh", "kwh"),
}

CHARGER_FIELDS: Dict[str, tuple] = {
    "id": ("id", "charger_id"),
    "brand": ("brand", "manufacturer"),
    "friendly_name": ("name", "charger_name", "display_name", "product_name", "label"),
    "model": ("model",),
    "model_fallback": ("product_label", "id"),
    "vendor": ("vendor",),
}

VENDOR_LABEL_KEYS = ("name", "label", "slug")


def as_record(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict):
        return value
    return None


def pick_field(record: Dict[str, Any], keys: Iterable[str]) -> Any:
    """First non-null value among `keys`, in priority order."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return number


def map_action_state(value: Any) -> Optional[ActionState]:
    if not isinstance(value, str):
        return None
    try:
        return ActionState(value.strip().upper())
    except ValueError:
        return None


@dataclass
class ActionSnapshot:
    id: Optional[str]
    state: Optional[ActionState]
    completed_at: Optional[datetime]
    failure_reason: Optional[str]
    kind: Optional[str] = None
    target_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UsageRecord:
    start: Optional[datetime]
    end: Optional[datetime]
    energy_kwh: Optional[float]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChargerInfo:
    id: Optional[str]
    brand: str
    model: str
    vendor: str
    raw: Dict[str, Any] = field(default_factory=dict)


def extract_action_id(action: Any) -> Optional[str]:
    record = as_record(action)
    if record is None:
        return None
    return _clean_str(pick_field(record, ACTION_FIELDS["id"]))


def normalize_action(raw: Any) -> Optional[ActionSnapshot]:
    record = as_record(raw)
    if record is None:
        return None
    failure = pick_field(record, ACTION_FIELDS["failure_reason"])
    return ActionSnapshot(
        id=extract_action_id(record),
        state=map_action_state(pick_field(record, ACTION_FIELDS["state"])),
        completed_at=parse_timestamp(pick_field(record, ACTION_FIELDS["completed_at"])),
        failure_reason=failure if isinstance(failure, str) else None,
        kind=_clean_str(pick_field(record, ACTION_FIELDS["kind"])),
        target_id=_clean_str(pick_field(record, ACTION_FIELDS["target_id"])),
        raw=record,
    )


def normalize_usage_record(raw: Any) -> Optional[UsageRecord]:
    record = as_record(raw)
    if record is None:
        return None
    return UsageRecord(
        start=parse_timestamp(pick_field(record, USAGE_FIELDS["from"])),
        end=parse_timestamp(pick_field(record, USAGE_FIELDS["to"])),
        energy_kwh=_as_number(pick_field(record, USAGE_FIELDS["energy_kwh"])),
        raw=record,
    )


def normalize_usage_records(payload: Any) -> List[UsageRecord]:
    """Accept either a bare list or a `{"data": [...]}` envelope."""
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        return []
    records = [normalize_usage_record(entry) for entry in payload]
    return [record for record in records if record is not None]


def _vendor_label(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    record = as_record(value)
    if record:
        for key in VENDOR_LABEL_KEYS:
            label = _clean_str(record.get(key))
            if label:
                return label
    return ""


def normalize_charger(raw: Any) -> Optional[ChargerInfo]:
    record = as_record(raw)
    if record is None:
        return None
    vendor = _vendor_label(pick_field(record, CHARGER_FIELDS["vendor"]))

    brand = pick_field(record, CHARGER_FIELDS["brand"])
    if brand is None and vendor:
        brand = vendor

    model = pick_field(record, CHARGER_FIELDS["model"])
    if model is None:
        model = pick_field(record, CHARGER_FIELDS["friendly_name"])
    if model is None:
        model = pick_field(record, CHARGER_FIELDS["model_fallback"])

    return ChargerInfo(
        id=_clean_str(pick_field(record, CHARGER_FIELDS["id"])),
        brand=brand.strip() if isinstance(brand, str) else "",
        model=model.strip() if isinstance(model, str) else "",
        vendor=vendor,
        raw=record,
    )


CHARGER_LIST_KEYS = ("data", "chargers", "items")


def normalize_chargers(payload: Any) -> List[ChargerInfo]:
    if isinstance(payload, dict):
        payload = next((payload[key] for key in CHARGER_LIST_KEYS if isinstance(payload.get(key), list)), None)
    if not isinstance(payload, list):
        return []
    chargers = [normalize_charger(entry) for entry in payload]
    return [charger for charger in chargers if charger is not None]
