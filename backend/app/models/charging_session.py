"""
Charging Session Model
Tracks a driver's physical charging session on a station's Enode charger
"""
import enum
import uuid
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import relationship

from ..db import Base
from ..core.clock import utcnow


class ChargingSessionStatus(str, enum.Enum):
    """Charging session status"""
    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# At most one session per (station, driver) may hold one of these statuses
OPEN_SESSION_STATUSES = (
    ChargingSessionStatus.PENDING.value,
    ChargingSessionStatus.READY.value,
    ChargingSessionStatus.IN_PROGRESS.value,
)

_OPEN_SESSION_PREDICATE = text("status IN ('pending', 'ready', 'in_progress')")


class ChargingSession(Base):
    __tablename__ = "station_charging_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    station_id = Column(String(36), ForeignKey("stations.id"), nullable=False, index=True)
    driver_profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("station_slots.id"), nullable=True, index=True)

    status = Column(String(20), nullable=False, default=ChargingSessionStatus.IN_PROGRESS.value, index=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=True)

    energy_kwh = Column(Float, nullable=True)
    amount = Column(Float, nullable=True)

    # Enode charger action ids (START / STOP)
    start_action_id = Column(String, nullable=True)
    stop_action_id = Column(String, nullable=True)

    session_metadata = Column("metadata", JSON, nullable=True)
    raw_external_payload = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    station = relationship("Station", foreign_keys=[station_id])
    slot = relationship("StationSlot", foreign_keys=[slot_id])

    __table_args__ = (
        Index(
            "uq_charging_sessions_open_per_driver",
            "station_id",
            "driver_profile_id",
            unique=True,
            sqlite_where=_OPEN_SESSION_PREDICATE,
            postgresql_where=_OPEN_SESSION_PREDICATE,
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SESSION_STATUSES
