"""
Station, profile, membership and reservation slot models.

These records are owned by the booking platform; the charging flows only read
them, except for the charger linking callback which stores the selected
Enode charger on the station.
"""
import enum
import uuid
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship

from ..db import Base
from ..core.clock import utcnow


def generate_uuid():
    return str(uuid.uuid4())


class MembershipStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SlotType(str, enum.Enum):
    MEMBER_BOOKING = "member_booking"
    OWNER_BLOCK = "owner_block"


class Profile(Base):
    """A driver or station owner, identified by the identity provider's subject id."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    full_name = Column(String, nullable=True)
    # Enode user id; null until the owner starts linking a charger
    external_account_id = Column(String, nullable=True)

    vehicle_brand = Column(String, nullable=True)
    vehicle_model = Column(String, nullable=True)
    vehicle_plate = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)


class Station(Base):
    __tablename__ = "stations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    name = Column(String, nullable=True)

    street_name = Column(String, nullable=True)
    street_number = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)

    price_per_kwh = Column(Float, nullable=True)

    # Linked Enode charger; absence blocks every charging operation
    charger_external_id = Column(String, nullable=True, index=True)
    charger_metadata = Column(JSON, nullable=True)
    charger_brand = Column(String, nullable=True)
    charger_model = Column(String, nullable=True)
    charger_vendor = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    owner = relationship("Profile", foreign_keys=[owner_id])


class StationMembership(Base):
    __tablename__ = "station_memberships"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    station_id = Column(String(36), ForeignKey("stations.id"), nullable=False, index=True)
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=MembershipStatus.PENDING.value)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    station = relationship("Station", foreign_keys=[station_id])
    profile = relationship("Profile", foreign_keys=[profile_id])

    __table_args__ = (
        Index("ix_station_memberships_station_profile", "station_id", "profile_id"),
    )


class StationSlot(Base):
    """Reserved time window on a station. Immutable once created."""
    __tablename__ = "station_slots"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    station_id = Column(String(36), ForeignKey("stations.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False, default=SlotType.MEMBER_BOOKING.value)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    slot_metadata = Column("metadata", JSON, nullable=True)  # {"membership_id": ...} for member bookings
    created_at = Column(DateTime, nullable=False, default=utcnow)

    station = relationship("Station", foreign_keys=[station_id])

    __table_args__ = (
        Index("ix_station_slots_station_window", "station_id", "start_at", "end_at"),
    )

    @property
    def membership_id(self):
        metadata = self.slot_metadata if isinstance(self.slot_metadata, dict) else {}
        value = metadata.get("membership_id")
        return value if isinstance(value, str) and value else None
