import logging
from typing import Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.booking import Booking, BookingStatus
from app.models.library import SeatStatus
from app.services.booking_service import lock_seat, lock_time_slot, record_status_change, refresh_slot_occupancy, utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value, BookingStatus.EXPIRED.value)

# Forward-only transitions
ALLOWED_TRANSITIONS = {
    BookingStatus.ACTIVE.value: {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value, BookingStatus.EXPIRED.value},
    BookingStatus.COMPLETED.value: set(),
    BookingStatus.CANCELLED.value: set(),
    BookingStatus.EXPIRED.value: set(),
}


class BookingLifecycleService:
    """Cancellation and status transitions that release or advance held seats."""

    def __init__(self, db: Session):
        self.db = db

    def _get_booking(self, booking_id: UUID) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("booking")
        return booking

    def cancel_booking(self, booking_id: UUID, reason: str = "cancelled") -> Tuple[Booking, bool]:
        """
        Cancel an active booking and give its seat and slot capacity back.

        Returns the booking and whether anything changed; cancelling an
        already-cancelled booking is a successful no-op.
        """
        booking = self._get_booking(booking_id)
        if booking.status == BookingStatus.CANCELLED.value:
            logger.info(f"Booking {booking_id} already cancelled; nothing to do")
            return booking, False

        try:
            slot = lock_time_slot(self.db, booking.time_slot_id)
            seat = lock_seat(self.db, booking.seat_id)
            self.db.refresh(booking)

            # Re-check under the lock; a concurrent cancel may have won
            if booking.status == BookingStatus.CANCELLED.value:
                self.db.rollback()
                return booking, False
            if booking.status != BookingStatus.ACTIVE.value:
                raise ConflictError("booking_not_cancellable", f"Booking is {booking.status} and cannot be cancelled")

            self._cancel_locked(booking, slot, seat, reason)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking_id} cancelled; slot {booking.time_slot_id} now {slot.booked_count}/{slot.capacity}")
        return booking, True

    def update_booking_status(self, booking_id: UUID, new_status: str) -> Tuple[Booking, bool]:
        valid = [s.value for s in BookingStatus]
        if new_status not in valid:
            raise ValidationError("invalid_status", f"Invalid status. Must be one of: {', '.join(valid)}")

        booking = self._get_booking(booking_id)
        if booking.status == new_status:
            return booking, False
        if new_status == BookingStatus.CANCELLED.value and booking.status == BookingStatus.ACTIVE.value:
            return self.cancel_booking(booking_id, reason="status update")

        try:
            slot = lock_time_slot(self.db, booking.time_slot_id)
            seat = lock_seat(self.db, booking.seat_id)
            self.db.refresh(booking)

            if booking.status == new_status:
                self.db.rollback()
                return booking, False
            if new_status not in ALLOWED_TRANSITIONS[booking.status]:
                raise ConflictError(
                    "invalid_transition",
                    f"Cannot change booking status from {booking.status} to {new_status}"
                )

            record_status_change(self.db, booking, new_status, "status update")
            booking.status = new_status
            if new_status == BookingStatus.COMPLETED.value:
                booking.check_out_time = utcnow()
            # The session is over either way; the seat is free for other slots
            if seat is not None:
                seat.status = SeatStatus.AVAILABLE.value
            if slot is not None:
                refresh_slot_occupancy(self.db, slot)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking_id} moved to {new_status}")
        return booking, True

    def _cancel_locked(self, booking: Booking, slot, seat, reason: str) -> None:
        record_status_change(self.db, booking, BookingStatus.CANCELLED.value, reason)
        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = utcnow()
        if slot is not None:
            refresh_slot_occupancy(self.db, slot)
        if seat is not None:
            seat.status = SeatStatus.AVAILABLE.value
