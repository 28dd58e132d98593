from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from app.core.errors import envelope
from app.database import get_db
from app.schemas.timeslot import TimeSlotCreate, TimeSlotResponse, TimeSlotUpdate
from app.services.availability_service import AvailabilityService
from app.services.time_slot_service import TimeSlotService

router = APIRouter()

def _slot_data(slot) -> dict:
    return TimeSlotResponse.model_validate(slot).model_dump(by_alias=True, mode="json")

@router.get("/available")
def get_available_time_slots(
    library_id: UUID = Query(..., alias="libraryId"),
    slot_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db)
):
    """Open slots of a library on a date, earliest first"""
    slots = AvailabilityService(db).list_available_time_slots(library_id, slot_date)
    return envelope(data=[_slot_data(slot) for slot in slots], message="Time slots retrieved successfully")

@router.get("/library/{library_id}")
def get_library_time_slots(
    library_id: UUID,
    slot_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db)
):
    """All slots of a library with their remaining spots, for the librarian's schedule"""
    slots = AvailabilityService(db).list_time_slots(library_id, slot_date)
    return envelope(data=[_slot_data(slot) for slot in slots], message="Time slots retrieved successfully")

@router.get("/{time_slot_id}")
def get_time_slot(time_slot_id: UUID, db: Session = Depends(get_db)):
    slot = AvailabilityService(db).get_time_slot(time_slot_id)
    return envelope(data=_slot_data(slot), message="Time slot retrieved successfully")

@router.post("", status_code=status.HTTP_201_CREATED)
def create_time_slot(slot_data: TimeSlotCreate, db: Session = Depends(get_db)):
    slot = TimeSlotService(db).create_time_slot(
        library_id=slot_data.library_id,
        slot_date=slot_data.date,
        start_time=slot_data.start_time,
        end_time=slot_data.end_time,
        capacity=slot_data.capacity,
    )
    return envelope(data=_slot_data(slot), message="Time slot created successfully")

@router.put("/{time_slot_id}")
def update_time_slot(time_slot_id: UUID, slot_data: TimeSlotUpdate, db: Session = Depends(get_db)):
    slot = TimeSlotService(db).update_time_slot(
        time_slot_id,
        start_time=slot_data.start_time,
        end_time=slot_data.end_time,
        capacity=slot_data.capacity,
        status=slot_data.status,
    )
    return envelope(data=_slot_data(slot), message="Time slot updated successfully")

@router.delete("/{time_slot_id}")
def delete_time_slot(time_slot_id: UUID, db: Session = Depends(get_db)):
    TimeSlotService(db).delete_time_slot(time_slot_id)
    return envelope(message="Time slot deleted successfully")
