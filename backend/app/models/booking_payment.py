"""
Booking Payment Model

One settlement record per reserved slot between the driver and the station
owner. Totals are recomputed from the slot's charging sessions; the status is
advanced by session completion and by the driver/owner confirmation actions.
"""
import enum
import uuid
from sqlalchemy import Column, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..db import Base
from ..core.clock import utcnow


class BookingPaymentStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    TO_PAY = "to_pay"
    DRIVER_MARKED = "driver_marked"
    PAID = "paid"


class BookingPayment(Base):
    __tablename__ = "station_booking_payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    station_id = Column(String(36), ForeignKey("stations.id"), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("station_slots.id"), nullable=False, unique=True)
    membership_id = Column(String(36), ForeignKey("station_memberships.id"), nullable=True, index=True)
    driver_profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    owner_profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=BookingPaymentStatus.UPCOMING.value, index=True)
    payment_reference = Column(String(20), nullable=True)

    # Null unless the slot delivered a meaningful amount
    total_energy_kwh = Column(Float, nullable=True)
    total_amount = Column(Float, nullable=True)

    driver_marked_at = Column(DateTime, nullable=True)
    owner_marked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    station = relationship("Station", foreign_keys=[station_id])
    slot = relationship("StationSlot", foreign_keys=[slot_id])
    membership = relationship("StationMembership", foreign_keys=[membership_id])
    driver = relationship("Profile", foreign_keys=[driver_profile_id])
