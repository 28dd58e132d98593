from datetime import date, time
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.booking import Booking, LIVE_BOOKING_STATUSES
from app.models.library import Library, Seat, SeatStatus, TimeSlot, TimeSlotStatus


class AvailabilityService:
    """Read-only view of bookable slots and seats."""

    def __init__(self, db: Session, today: Optional[date] = None):
        self.db = db
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def list_available_time_slots(self, library_id: UUID, slot_date: date) -> List[TimeSlot]:
        if slot_date < self.today:
            raise ValidationError("past_date", "Cannot select time slots for past dates")

        return self.db.query(TimeSlot).filter(
            TimeSlot.library_id == library_id,
            TimeSlot.date == slot_date,
            TimeSlot.status == TimeSlotStatus.AVAILABLE.value
        ).order_by(TimeSlot.start_time.asc()).all()

    def list_time_slots(self, library_id: UUID, slot_date: Optional[date] = None) -> List[TimeSlot]:
        """Every slot of a library in any status, optionally for one date."""
        if self.db.get(Library, library_id) is None:
            raise NotFoundError("library")

        query = self.db.query(TimeSlot).filter(TimeSlot.library_id == library_id)
        if slot_date is not None:
            query = query.filter(TimeSlot.date == slot_date)
        return query.order_by(TimeSlot.date.asc(), TimeSlot.start_time.asc()).all()

    def get_time_slot(self, time_slot_id: UUID) -> TimeSlot:
        slot = self.db.get(TimeSlot, time_slot_id)
        if slot is None:
            raise NotFoundError("time_slot")
        return slot

    def find_slot(self, library_id: UUID, slot_date: date, start_time: time, end_time: time) -> TimeSlot:
        """Locate the open slot matching an exact window."""
        slot = self.db.query(TimeSlot).filter(
            TimeSlot.library_id == library_id,
            TimeSlot.date == slot_date,
            TimeSlot.start_time == start_time,
            TimeSlot.end_time == end_time,
            TimeSlot.status == TimeSlotStatus.AVAILABLE.value
        ).first()
        if slot is None:
            raise NotFoundError("time_slot", "Time slot not found")
        return slot

    def list_available_seats(self, library_id: UUID, time_slot_id: UUID) -> List[Seat]:
        """
        Seats that can still be booked for the slot.

        Seat.status is only a cached hint, so seats held by a live booking
        for this slot are excluded from the bookings table directly.
        """
        if self.db.get(Library, library_id) is None:
            raise NotFoundError("library")
        slot = self.get_time_slot(time_slot_id)
        if slot.library_id != library_id:
            raise NotFoundError("time_slot", "Time slot not found for this library")

        held_seat_ids = select(Booking.seat_id).where(
            Booking.time_slot_id == time_slot_id,
            Booking.status.in_(LIVE_BOOKING_STATUSES)
        )

        return self.db.query(Seat).filter(
            Seat.library_id == library_id,
            Seat.is_active.is_(True),
            Seat.status == SeatStatus.AVAILABLE.value,
            Seat.id.not_in(held_seat_ids)
        ).order_by(Seat.seat_number.asc()).all()
