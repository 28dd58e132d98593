from sqlalchemy import Column, String, Integer, Boolean, DateTime, Date, Time, Text, ForeignKey, Numeric, Index, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid

from app.database import Base


class SeatStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    MAINTENANCE = "MAINTENANCE"


class TimeSlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class Librarian(Base):
    __tablename__ = "librarians"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    identity_id = Column(String, unique=True, nullable=True)  # external identity provider subject
    first_name = Column(String, nullable=False)
    last_name = Column(String)
    email = Column(String, unique=True, nullable=False, index=True)
    contact_number = Column(String(15))
    # RazorpayX payout destination
    razorpay_contact_id = Column(String)
    razorpay_account_id = Column(String)  # fund account id
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    libraries = relationship("Library", back_populates="librarian")
    payments = relationship("Payment", back_populates="librarian")


class Library(Base):
    __tablename__ = "libraries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    librarian_id = Column(Uuid(as_uuid=True), ForeignKey("librarians.id"), nullable=False)
    library_name = Column(String, nullable=False)
    address = Column(Text)
    city = Column(String)
    opening_time = Column(Time)
    closing_time = Column(Time)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    librarian = relationship("Librarian", back_populates="libraries")
    seats = relationship("Seat", back_populates="library", cascade="all, delete-orphan")
    time_slots = relationship("TimeSlot", back_populates="library", cascade="all, delete-orphan")
    plans = relationship("Plan", back_populates="library", cascade="all, delete-orphan")


class Seat(Base):
    __tablename__ = "seats"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    library_id = Column(Uuid(as_uuid=True), ForeignKey("libraries.id"), nullable=False, index=True)
    seat_number = Column(String, nullable=False)
    # Cached occupancy hint; the bookings table is the source of truth
    status = Column(String, nullable=False, default=SeatStatus.AVAILABLE.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    library = relationship("Library", back_populates="seats")
    bookings = relationship("Booking", back_populates="seat")


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    library_id = Column(Uuid(as_uuid=True), ForeignKey("libraries.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)  # wall-clock, library local
    end_time = Column(Time, nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    booked_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=TimeSlotStatus.AVAILABLE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    library = relationship("Library", back_populates="time_slots")
    bookings = relationship("Booking", back_populates="time_slot")

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_time_slots_capacity_non_negative"),
        CheckConstraint("booked_count >= 0 AND booked_count <= capacity", name="ck_time_slots_booked_within_capacity"),
        Index("ix_time_slots_library_date", "library_id", "date"),
    )

    @property
    def available_spots(self) -> int:
        return max(self.capacity - self.booked_count, 0)

    @property
    def is_bookable(self) -> bool:
        return self.available_spots > 0


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    library_id = Column(Uuid(as_uuid=True), ForeignKey("libraries.id"), nullable=False, index=True)
    plan_name = Column(String, nullable=False)
    days = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    library = relationship("Library", back_populates="plans")
