from pydantic import BaseModel, Field
from typing import Optional
from datetime import date as date_type, time
from uuid import UUID

class TimeSlotCreate(BaseModel):
    library_id: Optional[UUID] = Field(default=None, alias="libraryId")
    date: Optional[date_type] = None
    start_time: Optional[time] = Field(default=None, alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    capacity: Optional[int] = None

    class Config:
        populate_by_name = True

class TimeSlotUpdate(BaseModel):
    start_time: Optional[time] = Field(default=None, alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    capacity: Optional[int] = None
    status: Optional[str] = None

    class Config:
        populate_by_name = True

class TimeSlotResponse(BaseModel):
    id: UUID
    library_id: UUID = Field(serialization_alias="libraryId")
    date: date_type
    start_time: time = Field(serialization_alias="startTime")
    end_time: time = Field(serialization_alias="endTime")
    capacity: int
    booked_count: int = Field(serialization_alias="bookedCount")
    status: str
    available_spots: int = Field(serialization_alias="availableSpots")
    is_bookable: bool = Field(serialization_alias="isBookable")

    class Config:
        from_attributes = True
