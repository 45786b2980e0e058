"""
Matches Enode usage statistics to a charging session.

The usage window queried is [session start - 15 min, now + 5 min]. The record
retained is the one whose [from, to] window contains the session start and
whose `from` is closest to it.
"""
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from app.services.enode_records import UsageRecord

logger = logging.getLogger(__name__)

STATS_LOOKBACK = timedelta(minutes=15)
STATS_LOOKAHEAD = timedelta(minutes=5)


def select_usage_record(records: Iterable[UsageRecord], session_start: datetime) -> Optional[UsageRecord]:
    best = None
    smallest_delta = None
    for record in records:
        if record.start is None or record.end is None:
            continue
        if not (record.start <= session_start <= record.end):
            continue
        delta = abs((record.start - session_start).total_seconds())
        if smallest_delta is None or delta < smallest_delta:
            best = record
            smallest_delta = delta
    return best


def collect_session_stats(
    enode,
    account_id: str,
    charger_id: str,
    session_start: datetime,
    now: datetime,
) -> Optional[UsageRecord]:
    records = enode.fetch_usage(
        account_id,
        charger_id,
        session_start - STATS_LOOKBACK,
        now + STATS_LOOKAHEAD,
    )
    match = select_usage_record(records, session_start)
    logger.info(
        f"Usage stats for charger {charger_id}: {len(records)} records, "
        f"matched={'yes' if match else 'no'} energy_kwh={match.energy_kwh if match else None}"
    )
    return match


def compute_amount(energy_kwh: Optional[float], price_per_kwh: Optional[float]) -> Optional[float]:
    """energy x price, half-up to 2 decimals; None when either operand is missing."""
    if energy_kwh is None or price_per_kwh is None:
        return None
    if not math.isfinite(energy_kwh) or not math.isfinite(price_per_kwh):
        return None
    return round_money(Decimal(str(energy_kwh)) * Decimal(str(price_per_kwh)))


def round_money(value) -> float:
    """Half-up rounding to 2 decimals, computed on the decimal representation."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
