"""
Librarian-side time slot management.

Slots of one library must not overlap on the same date. The overlap check and
the write it guards run while holding a row lock on the parent library, so two
concurrent creates (or a create and a re-time) cannot both pass the check.
Changes to an existing slot also lock the slot row, in the order library then
slot, and never touch its times once it holds bookings.
"""

import logging
from datetime import date, time
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError, translate_integrity_error
from app.models.booking import Booking
from app.models.library import Library, TimeSlot, TimeSlotStatus
from app.models.payment import Payment
from app.services.booking_service import lock_time_slot, refresh_slot_occupancy

logger = logging.getLogger(__name__)

# Statuses a librarian may set; BOOKED is derived from occupancy
SETTABLE_SLOT_STATUSES = {TimeSlotStatus.AVAILABLE.value, TimeSlotStatus.BLOCKED.value}


def lock_library(db: Session, library_id: UUID) -> Optional[Library]:
    return db.query(Library).filter(Library.id == library_id).with_for_update().populate_existing().first()


class TimeSlotService:
    def __init__(self, db: Session):
        self.db = db

    def create_time_slot(
        self,
        library_id: Optional[UUID],
        slot_date: Optional[date],
        start_time: Optional[time],
        end_time: Optional[time],
        capacity: Optional[int],
    ) -> TimeSlot:
        """Create a slot; slots of one library must not overlap on the same date."""
        if library_id is None or slot_date is None or start_time is None or end_time is None or capacity is None:
            raise ValidationError("missing_fields", "Missing required fields")
        if start_time >= end_time:
            raise ValidationError("invalid_time_range", "Start time must be before end time")
        if capacity < 0:
            raise ValidationError("invalid_capacity", "Capacity cannot be negative")

        try:
            library = lock_library(self.db, library_id)
            if library is None:
                raise NotFoundError("library")
            self._check_overlap(library_id, slot_date, start_time, end_time)

            slot = TimeSlot(
                library_id=library_id,
                date=slot_date,
                start_time=start_time,
                end_time=end_time,
                capacity=capacity,
                booked_count=0,
                status=TimeSlotStatus.AVAILABLE.value if capacity > 0 else TimeSlotStatus.BOOKED.value,
            )
            self.db.add(slot)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise translate_integrity_error(exc, unique_code="slot_overlap")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(slot)
        logger.info(f"Time slot {slot.id} created for library {library_id} on {slot_date} {start_time}-{end_time}")
        return slot

    def update_time_slot(
        self,
        time_slot_id: UUID,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        capacity: Optional[int] = None,
        status: Optional[str] = None,
    ) -> TimeSlot:
        """
        Re-time, resize, block or unblock a slot.

        Times are frozen once the slot holds bookings, capacity cannot drop
        below the current booked count, and only AVAILABLE or BLOCKED may be
        set explicitly. Status is re-derived from occupancy afterwards unless
        the slot ends up BLOCKED.
        """
        if status is not None and status not in SETTABLE_SLOT_STATUSES:
            raise ValidationError("invalid_status", "Status must be AVAILABLE or BLOCKED")
        if capacity is not None and capacity < 0:
            raise ValidationError("invalid_capacity", "Capacity cannot be negative")

        current = self.db.get(TimeSlot, time_slot_id)
        if current is None:
            raise NotFoundError("time_slot")

        try:
            # Same lock order as create: library, then slot
            lock_library(self.db, current.library_id)
            slot = lock_time_slot(self.db, time_slot_id)
            if slot is None:
                raise NotFoundError("time_slot")
            refresh_slot_occupancy(self.db, slot)

            retimed = (start_time is not None and start_time != slot.start_time) or (
                end_time is not None and end_time != slot.end_time
            )
            if retimed:
                if slot.booked_count > 0:
                    raise ConflictError("slot_has_bookings", "Cannot modify time when slot has bookings")
                new_start = start_time or slot.start_time
                new_end = end_time or slot.end_time
                if new_start >= new_end:
                    raise ValidationError("invalid_time_range", "Start time must be before end time")
                self._check_overlap(slot.library_id, slot.date, new_start, new_end, exclude_id=slot.id)
                slot.start_time = new_start
                slot.end_time = new_end

            if capacity is not None:
                if capacity < slot.booked_count:
                    raise ConflictError(
                        "capacity_below_bookings",
                        f"Capacity cannot be less than the {slot.booked_count} existing bookings",
                    )
                slot.capacity = capacity

            if status is not None:
                slot.status = status
            refresh_slot_occupancy(self.db, slot)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise translate_integrity_error(exc, unique_code="slot_overlap")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(slot)
        logger.info(f"Time slot {slot.id} updated: {slot.start_time}-{slot.end_time}, capacity {slot.capacity}, status {slot.status}")
        return slot

    def delete_time_slot(self, time_slot_id: UUID) -> None:
        """Delete a slot that no booking or payment has ever referenced."""
        try:
            slot = lock_time_slot(self.db, time_slot_id)
            if slot is None:
                raise NotFoundError("time_slot")

            references = self.db.query(func.count(Booking.id)).filter(Booking.time_slot_id == slot.id).scalar()
            if references:
                raise ConflictError("slot_has_bookings", "Cannot delete time slot with bookings")
            pending = self.db.query(func.count(Payment.id)).filter(Payment.time_slot_id == slot.id).scalar()
            if pending:
                raise ConflictError("slot_has_payments", "Cannot delete time slot referenced by a payment")

            self.db.delete(slot)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise translate_integrity_error(exc)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Time slot {time_slot_id} deleted")

    def _check_overlap(
        self,
        library_id: UUID,
        slot_date: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        # Half-open intervals: [start, end) overlaps [s, e) iff start < e and s < end
        query = self.db.query(TimeSlot).filter(
            TimeSlot.library_id == library_id,
            TimeSlot.date == slot_date,
            TimeSlot.start_time < end_time,
            TimeSlot.end_time > start_time
        )
        if exclude_id is not None:
            query = query.filter(TimeSlot.id != exclude_id)
        if query.first():
            raise ConflictError("slot_overlap", "Time slot overlaps with existing slot")
