"""
Models package - organized by domain
"""
from .station import (
    Profile,
    Station,
    StationMembership,
    StationSlot,
    MembershipStatus,
    SlotType,
)
from .charging_session import (
    ChargingSession,
    ChargingSessionStatus,
    OPEN_SESSION_STATUSES,
)
from .booking_payment import (
    BookingPayment,
    BookingPaymentStatus,
)
