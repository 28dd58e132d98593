from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import date, time
from uuid import UUID
import logging

from app.core.errors import envelope
from app.database import get_db
from app.schemas.booking import BookingCreate, BookingStatusUpdate, SeatResponse
from app.services.availability_service import AvailabilityService
from app.services.booking_lifecycle_service import BookingLifecycleService
from app.services.booking_service import BookingService, booking_summary

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/available")
def get_available_seats(
    library_id: UUID = Query(..., alias="libraryId"),
    slot_date: date = Query(..., alias="date"),
    start_time: time = Query(..., alias="startTime"),
    end_time: time = Query(..., alias="endTime"),
    db: Session = Depends(get_db)
):
    """Seats still free in the slot matching the given window"""
    availability = AvailabilityService(db)
    slot = availability.find_slot(library_id, slot_date, start_time, end_time)
    seats = availability.list_available_seats(library_id, slot.id)
    return envelope(
        data=[SeatResponse.model_validate(seat).model_dump(by_alias=True, mode="json") for seat in seats],
        message="Available seats retrieved successfully"
    )

@router.post("", status_code=status.HTTP_201_CREATED)
def create_booking(booking_data: BookingCreate, db: Session = Depends(get_db)):
    """Reserve a seat in a time slot"""
    booking = BookingService(db).create_booking(
        student_id=booking_data.student_id,
        library_id=booking_data.library_id,
        plan_id=booking_data.plan_id,
        time_slot_id=booking_data.time_slot_id,
        seat_id=booking_data.seat_id,
        total_amount=booking_data.total_amount,
    )
    return envelope(data=booking_summary(booking), message="Booking created successfully")

@router.get("/{booking_id}")
def get_booking(booking_id: UUID, db: Session = Depends(get_db)):
    booking = BookingService(db).get_booking(booking_id)
    return envelope(data=booking_summary(booking), message="Booking retrieved successfully")

@router.delete("/{booking_id}")
def cancel_booking(booking_id: UUID, db: Session = Depends(get_db)):
    """Cancel a booking; cancelling twice is a no-op"""
    booking, changed = BookingLifecycleService(db).cancel_booking(booking_id)
    message = "Booking cancelled successfully" if changed else "Booking already cancelled"
    return envelope(data=booking_summary(booking), message=message)

@router.patch("/{booking_id}/status")
def update_booking_status(booking_id: UUID, status_data: BookingStatusUpdate, db: Session = Depends(get_db)):
    booking, changed = BookingLifecycleService(db).update_booking_status(booking_id, status_data.status)
    message = "Booking status updated successfully" if changed else "Booking status unchanged"
    return envelope(data=booking_summary(booking), message=message)
