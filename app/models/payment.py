from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid

from app.database import Base


class PaymentStatus(str, enum.Enum):
    CREATED = "CREATED"
    PAID = "PAID"
    TRANSFERRED = "TRANSFERRED"
    FAILED = "FAILED"


# Captured statuses; a repeated capture webhook for these is a no-op
SETTLED_PAYMENT_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.TRANSFERRED.value)

# Every status move a payment may make. FAILED is not terminal: the client can
# report a checkout as failed while the gateway still captures the order, and a
# verified capture then moves it to PAID. That recovery keeps failure_reason and
# stamps failure_recovered_at so it stays distinguishable from a clean capture.
PAYMENT_TRANSITIONS = {
    PaymentStatus.CREATED.value: {PaymentStatus.PAID.value, PaymentStatus.FAILED.value},
    PaymentStatus.FAILED.value: {PaymentStatus.PAID.value},
    PaymentStatus.PAID.value: {PaymentStatus.TRANSFERRED.value},
    PaymentStatus.TRANSFERRED.value: set(),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in PAYMENT_TRANSITIONS.get(from_status, set())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    librarian_id = Column(Uuid(as_uuid=True), ForeignKey("librarians.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    # Gateway fields
    razorpay_order_id = Column(String, unique=True, nullable=False)
    razorpay_payment_id = Column(String)
    razorpay_signature = Column(String)
    razorpay_transfer_id = Column(String)  # payout id
    status = Column(String, nullable=False, default=PaymentStatus.CREATED.value)
    payment_date = Column(DateTime(timezone=True))
    transferred_at = Column(DateTime(timezone=True))
    failure_reason = Column(Text)
    failure_recovered_at = Column(DateTime(timezone=True))  # capture arrived after FAILED
    # Payout bookkeeping for out-of-band reconciliation
    payout_attempts = Column(Integer, nullable=False, default=0)
    payout_error = Column(Text)
    # Optional booking intent handed to the booking engine on capture
    library_id = Column(Uuid(as_uuid=True), ForeignKey("libraries.id"))
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("plans.id"))
    time_slot_id = Column(Uuid(as_uuid=True), ForeignKey("time_slots.id"))
    seat_id = Column(Uuid(as_uuid=True), ForeignKey("seats.id"))
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"))
    booking_error = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    student = relationship("Student", back_populates="payments")
    librarian = relationship("Librarian", back_populates="payments")
    booking = relationship("Booking")

    @property
    def has_booking_intent(self) -> bool:
        return all([self.library_id, self.plan_id, self.time_slot_id, self.seat_id])
