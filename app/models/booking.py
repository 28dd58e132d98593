from sqlalchemy import Column, String, DateTime, Date, Text, ForeignKey, Numeric, Index, Uuid, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid

from app.database import Base


class BookingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


# Statuses that hold a (seat, time slot) pair
LIVE_BOOKING_STATUSES = (BookingStatus.ACTIVE.value, BookingStatus.COMPLETED.value)

_LIVE_PREDICATE = text("status IN ('ACTIVE', 'COMPLETED')")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    library_id = Column(Uuid(as_uuid=True), ForeignKey("libraries.id"), nullable=False)
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("plans.id"), nullable=False)
    time_slot_id = Column(Uuid(as_uuid=True), ForeignKey("time_slots.id"), nullable=False, index=True)
    seat_id = Column(Uuid(as_uuid=True), ForeignKey("seats.id"), nullable=False)
    status = Column(String, nullable=False, default=BookingStatus.ACTIVE.value)
    check_in_time = Column(DateTime(timezone=True))
    check_out_time = Column(DateTime(timezone=True))
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    cancelled_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    student = relationship("Student", back_populates="bookings")
    library = relationship("Library")
    plan = relationship("Plan")
    time_slot = relationship("TimeSlot", back_populates="bookings")
    seat = relationship("Seat", back_populates="bookings")
    history = relationship("BookingStatusHistory", back_populates="booking", order_by="BookingStatusHistory.changed_at")

    __table_args__ = (
        # No double booking: one live booking per seat and time slot
        Index(
            "uq_bookings_seat_slot_live",
            "seat_id",
            "time_slot_id",
            unique=True,
            postgresql_where=_LIVE_PREDICATE,
            sqlite_where=_LIVE_PREDICATE,
        ),
    )


class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    from_status = Column(String)  # NULL for the creation entry
    to_status = Column(String, nullable=False)
    reason = Column(Text)
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="history")
