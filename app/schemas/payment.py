from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from uuid import UUID

class PaymentOrderCreate(BaseModel):
    librarian_id: Optional[UUID] = Field(default=None, alias="librarianId")
    student_id: Optional[UUID] = Field(default=None, alias="studentId")
    amount: Optional[Decimal] = None
    # Optional booking made once the payment is captured
    library_id: Optional[UUID] = Field(default=None, alias="libraryId")
    plan_id: Optional[UUID] = Field(default=None, alias="planId")
    time_slot_id: Optional[UUID] = Field(default=None, alias="timeSlotId")
    seat_id: Optional[UUID] = Field(default=None, alias="seatId")

    class Config:
        populate_by_name = True

class PaymentWebhook(BaseModel):
    event: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    student_id: Optional[str] = None
    librarian_id: Optional[str] = Field(default=None, alias="librarianId")

    class Config:
        populate_by_name = True

class PaymentOrderFailed(BaseModel):
    razorpay_order_id: Optional[str] = None
    reason: Optional[str] = None

class PayoutAccountCreate(BaseModel):
    librarian_id: Optional[UUID] = Field(default=None, alias="librarianId")
    account_holder_name: Optional[str] = Field(default=None, alias="accountHolderName")
    ifsc: Optional[str] = None
    account_number: Optional[str] = Field(default=None, alias="accountNumber")

    class Config:
        populate_by_name = True
