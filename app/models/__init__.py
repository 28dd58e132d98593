from app.database import Base

# Import all models here to ensure they are registered with SQLAlchemy
from .library import Librarian, Library, Seat, TimeSlot, Plan, SeatStatus, TimeSlotStatus
from .student import Student
from .booking import Booking, BookingStatusHistory, BookingStatus, LIVE_BOOKING_STATUSES
from .payment import PAYMENT_TRANSITIONS, Payment, PaymentStatus, SETTLED_PAYMENT_STATUSES, can_transition

__all__ = [
    "Base",
    "Librarian",
    "Library",
    "Seat",
    "TimeSlot",
    "Plan",
    "SeatStatus",
    "TimeSlotStatus",
    "Student",
    "Booking",
    "BookingStatusHistory",
    "BookingStatus",
    "LIVE_BOOKING_STATUSES",
    "Payment",
    "PaymentStatus",
    "SETTLED_PAYMENT_STATUSES",
    "PAYMENT_TRANSITIONS",
    "can_transition",
]
