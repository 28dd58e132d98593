"""
Seat booking transaction engine.

A booking ties a student to one seat in one time slot. Creating it touches
three rows that must agree: the booking itself, the slot's booked count and
status, and the seat's cached status. All of that happens in one database
transaction while holding a row lock on the time slot (then the seat), so
two requests for the same seat and slot cannot both pass the availability
checks. The partial unique index on live bookings backs this up.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError, translate_integrity_error
from app.models.booking import Booking, BookingStatus, BookingStatusHistory, LIVE_BOOKING_STATUSES
from app.models.library import Library, Plan, Seat, SeatStatus, TimeSlot, TimeSlotStatus
from app.models.student import Student
from app.services.payment_service import parse_amount

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def lock_time_slot(db: Session, time_slot_id: UUID) -> Optional[TimeSlot]:
    """SELECT ... FOR UPDATE on the slot, refreshing any stale identity-map copy."""
    return db.query(TimeSlot).filter(TimeSlot.id == time_slot_id).with_for_update().populate_existing().first()


def lock_seat(db: Session, seat_id: UUID) -> Optional[Seat]:
    return db.query(Seat).filter(Seat.id == seat_id).with_for_update().populate_existing().first()


def refresh_slot_occupancy(db: Session, slot: TimeSlot) -> TimeSlot:
    """
    Recompute booked_count from the bookings table and derive the slot status.

    Must be called with the slot row locked. BLOCKED is a librarian override
    and survives recomputation.
    """
    db.flush()
    booked = db.query(func.count(Booking.id)).filter(
        Booking.time_slot_id == slot.id,
        Booking.status != BookingStatus.CANCELLED.value
    ).scalar() or 0
    slot.booked_count = booked
    if slot.status != TimeSlotStatus.BLOCKED.value:
        slot.status = TimeSlotStatus.BOOKED.value if booked >= slot.capacity else TimeSlotStatus.AVAILABLE.value
    return slot


def record_status_change(db: Session, booking: Booking, to_status: str, reason: Optional[str] = None) -> None:
    db.add(BookingStatusHistory(
        booking_id=booking.id,
        from_status=booking.status if booking.status != to_status else None,
        to_status=to_status,
        reason=reason,
    ))


def booking_summary(booking: Booking) -> dict:
    """Booking joined with student, seat and slot summaries."""
    student = booking.student
    seat = booking.seat
    slot = booking.time_slot
    library = booking.library
    return {
        "id": str(booking.id),
        "status": booking.status,
        "studentId": str(booking.student_id),
        "libraryId": str(booking.library_id),
        "planId": str(booking.plan_id),
        "timeSlotId": str(booking.time_slot_id),
        "seatId": str(booking.seat_id),
        "validFrom": booking.valid_from.isoformat() if booking.valid_from else None,
        "validTo": booking.valid_to.isoformat() if booking.valid_to else None,
        "totalAmount": str(booking.total_amount) if booking.total_amount is not None else None,
        "checkInTime": booking.check_in_time.isoformat() if booking.check_in_time else None,
        "checkOutTime": booking.check_out_time.isoformat() if booking.check_out_time else None,
        "cancelledAt": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
        "student": {"id": str(student.id), "firstName": student.first_name, "email": student.email} if student else None,
        "library": {"id": str(library.id), "libraryName": library.library_name} if library else None,
        "seat": {"id": str(seat.id), "seatNumber": seat.seat_number, "status": seat.status} if seat else None,
        "timeSlot": {
            "id": str(slot.id),
            "date": slot.date.isoformat(),
            "startTime": slot.start_time.strftime("%H:%M"),
            "endTime": slot.end_time.strftime("%H:%M"),
            "bookedCount": slot.booked_count,
            "capacity": slot.capacity,
            "status": slot.status,
        } if slot else None,
    }


class BookingService:
    def __init__(self, db: Session):
        self.db = db

    def create_booking(
        self,
        student_id: Optional[UUID],
        library_id: Optional[UUID],
        plan_id: Optional[UUID],
        time_slot_id: Optional[UUID],
        seat_id: Optional[UUID],
        total_amount: Any,
    ) -> Booking:
        """
        Reserve a seat in a time slot for a student.

        Raises:
            ValidationError: missing fields, bad amount, stale references
            NotFoundError: student, library or plan does not exist
            ConflictError: slot full/closed, seat unavailable or already booked
        """
        if not all([student_id, library_id, plan_id, time_slot_id, seat_id]) or total_amount is None:
            raise ValidationError("missing_fields", "Missing required fields")
        amount = parse_amount(total_amount, "totalAmount")

        # Preconditions, in order; reads only
        if self.db.get(Student, student_id) is None:
            raise NotFoundError("student")
        if self.db.get(Library, library_id) is None:
            raise NotFoundError("library")
        plan = self.db.get(Plan, plan_id)
        if plan is None or plan.library_id != library_id:
            raise NotFoundError("plan")
        self._check_slot(self.db.get(TimeSlot, time_slot_id), library_id)
        self._check_seat(self.db.get(Seat, seat_id), library_id)
        self._check_not_booked(seat_id, time_slot_id)

        try:
            # Same lock order everywhere: slot, then seat
            slot = lock_time_slot(self.db, time_slot_id)
            seat = lock_seat(self.db, seat_id)
            # A racer that won the lock shows up as a live booking first
            self._check_not_booked(seat_id, time_slot_id)
            self._check_slot(slot, library_id)
            self._check_seat(seat, library_id)

            booking = Booking(
                student_id=student_id,
                library_id=library_id,
                plan_id=plan_id,
                time_slot_id=time_slot_id,
                seat_id=seat_id,
                status=BookingStatus.ACTIVE.value,
                valid_from=slot.date,
                valid_to=slot.date,
                total_amount=amount,
            )
            self.db.add(booking)
            self.db.flush()
            record_status_change(self.db, booking, BookingStatus.ACTIVE.value, "created")

            refresh_slot_occupancy(self.db, slot)
            seat.status = SeatStatus.RESERVED.value

            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Booking commit rejected for seat {seat_id} slot {time_slot_id}: {exc.orig}")
            raise translate_integrity_error(exc)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking.id} created: seat {seat_id} slot {time_slot_id} student {student_id}")
        return booking

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("booking")
        return booking

    @staticmethod
    def _check_slot(slot: Optional[TimeSlot], library_id: UUID) -> None:
        if slot is None or slot.library_id != library_id or slot.status != TimeSlotStatus.AVAILABLE.value or slot.booked_count >= slot.capacity:
            raise ConflictError("slot_unavailable", "Time slot not available")

    @staticmethod
    def _check_seat(seat: Optional[Seat], library_id: UUID) -> None:
        if seat is None or seat.library_id != library_id or not seat.is_active or seat.status != SeatStatus.AVAILABLE.value:
            raise ConflictError("seat_unavailable", "Seat not available")

    def _check_not_booked(self, seat_id: UUID, time_slot_id: UUID) -> None:
        existing = self.db.query(Booking.id).filter(
            Booking.seat_id == seat_id,
            Booking.time_slot_id == time_slot_id,
            Booking.status.in_(LIVE_BOOKING_STATUSES)
        ).first()
        if existing is not None:
            raise ConflictError("seat_already_booked", "Seat is already booked for this time slot")
