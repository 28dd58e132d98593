from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from uuid import UUID

# Fields are optional so the booking engine reports missing ones itself
class BookingCreate(BaseModel):
    student_id: Optional[UUID] = Field(default=None, alias="studentId")
    library_id: Optional[UUID] = Field(default=None, alias="libraryId")
    plan_id: Optional[UUID] = Field(default=None, alias="planId")
    time_slot_id: Optional[UUID] = Field(default=None, alias="timeSlotId")
    seat_id: Optional[UUID] = Field(default=None, alias="seatId")
    total_amount: Optional[Decimal] = Field(default=None, alias="totalAmount")

    class Config:
        populate_by_name = True

class BookingStatusUpdate(BaseModel):
    status: Optional[str] = None

class SeatResponse(BaseModel):
    id: UUID
    library_id: UUID = Field(serialization_alias="libraryId")
    seat_number: str = Field(serialization_alias="seatNumber")
    status: str
    is_active: bool = Field(serialization_alias="isActive")

    class Config:
        from_attributes = True
