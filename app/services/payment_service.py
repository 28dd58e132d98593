import logging
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, GatewayError, NotFoundError, PersistenceError, ValidationError
from app.models.library import Librarian, Library
from app.models.payment import Payment, PaymentStatus, can_transition
from app.models.student import Student
from app.services.razorpay_service import RazorpayService

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

# Largest value a Numeric(10, 2) money column holds
MAX_AMOUNT = Decimal("99999999.99")


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a rupee amount without rounding it.

    Rejects non-numbers, NaN/Infinity, negatives, more than two decimal
    places and anything above MAX_AMOUNT with ValidationError("invalid_amount").
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid_amount", f"{field} must be a decimal number")
    if not amount.is_finite():
        raise ValidationError("invalid_amount", f"{field} must be a decimal number")
    if amount < 0:
        raise ValidationError("invalid_amount", f"{field} cannot be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError("invalid_amount", f"{field} cannot exceed {MAX_AMOUNT}")
    if amount != amount.quantize(_CENT):
        raise ValidationError("invalid_amount", f"{field} cannot have more than 2 decimal places")
    return amount.quantize(_CENT)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(_CENT)


def platform_fee_minor(amount_minor: int, fee_percentage: int) -> int:
    """round(amount * pct / 100) in integer arithmetic, half up."""
    return (amount_minor * fee_percentage + 50) // 100


class PaymentService:
    """Creates gateway orders and the local Payment rows that track them."""

    def __init__(self, db: Session, gateway: RazorpayService, fee_percentage: Optional[int] = None):
        self.db = db
        self.gateway = gateway
        self.fee_percentage = settings.PLATFORM_FEE_PERCENTAGE if fee_percentage is None else fee_percentage

    def create_order(
        self,
        librarian_id: Optional[UUID],
        student_id: Optional[UUID],
        amount: Any,
        library_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        time_slot_id: Optional[UUID] = None,
        seat_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """Create a Razorpay order and a CREATED payment record for it"""
        if not librarian_id or not student_id or amount is None:
            raise ValidationError("missing_fields", "librarianId, studentId, and amount are required")
        amount = parse_amount(amount)
        if amount == 0:
            raise ValidationError("invalid_amount", "Amount must be greater than 0")

        intent = [library_id, plan_id, time_slot_id, seat_id]
        if any(intent) and not all(intent):
            raise ValidationError("incomplete_booking_intent", "libraryId, planId, timeSlotId and seatId must be given together")

        if self.db.get(Student, student_id) is None:
            raise NotFoundError("student")
        if self.db.get(Librarian, librarian_id) is None:
            raise NotFoundError("librarian")
        if library_id:
            library = self.db.get(Library, library_id)
            if library is None or library.librarian_id != librarian_id:
                raise NotFoundError("library")

        amount_minor = to_minor_units(amount)
        fee_minor = platform_fee_minor(amount_minor, self.fee_percentage)
        payment_id = uuid.uuid4()

        # Razorpay receipt must be <= 40 chars
        result = self.gateway.create_order(
            amount=amount_minor,
            currency=settings.CURRENCY,
            receipt=f"pay_{payment_id.hex}",
            notes={
                "payment_id": str(payment_id),
                "student_id": str(student_id),
                "librarian_id": str(librarian_id),
                "platform_fee_percentage": str(self.fee_percentage),
            },
        )
        if not result["success"]:
            raise GatewayError("order_creation_failed", f"Failed to create payment order: {result.get('error')}")
        order = result["order"]

        payment = Payment(
            id=payment_id,
            student_id=student_id,
            librarian_id=librarian_id,
            amount=amount,
            platform_fee=from_minor_units(fee_minor),
            currency=order.get("currency", settings.CURRENCY),
            razorpay_order_id=order["id"],
            status=PaymentStatus.CREATED.value,
            library_id=library_id,
            plan_id=plan_id,
            time_slot_id=time_slot_id,
            seat_id=seat_id,
        )
        try:
            self.db.add(payment)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            # The remote order exists but nothing tracks it locally
            logger.error(
                f"Orphaned Razorpay order {order['id']} (receipt pay_{payment_id.hex}, amount {amount_minor}): {e}"
            )
            raise PersistenceError("payment_record_failed", "Failed to record payment order")

        logger.info(f"Payment {payment.id} created for Razorpay order {order['id']} ({amount} {payment.currency}, fee {payment.platform_fee})")
        return {
            "orderId": order["id"],
            "amount": str(amount),
            "amountMinor": amount_minor,
            "currency": payment.currency,
            "paymentId": str(payment.id),
            "platformFee": str(payment.platform_fee),
        }

    def mark_order_failed(self, razorpay_order_id: Optional[str], reason: Optional[str] = None) -> Payment:
        """Record a checkout the client reports as failed or abandoned."""
        if not razorpay_order_id:
            raise ValidationError("missing_fields", "razorpay_order_id is required")

        payment = self.db.query(Payment).filter(
            Payment.razorpay_order_id == razorpay_order_id
        ).with_for_update().first()
        if payment is None:
            raise NotFoundError("payment", "Payment record not found")

        if payment.status == PaymentStatus.FAILED.value:
            self.db.rollback()
            return payment
        if not can_transition(payment.status, PaymentStatus.FAILED.value):
            self.db.rollback()
            raise ConflictError("invalid_transition", f"Payment is already {payment.status}")

        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = reason or "checkout_failed"
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} marked FAILED: {payment.failure_reason}")
        return payment

    def register_payout_account(
        self,
        librarian_id: Optional[UUID],
        account_holder_name: Optional[str],
        ifsc: Optional[str],
        account_number: Optional[str],
    ) -> Librarian:
        """Create the RazorpayX contact and fund account payouts are sent to."""
        if not all([librarian_id, account_holder_name, ifsc, account_number]):
            raise ValidationError("missing_fields", "librarianId, accountHolderName, ifsc and accountNumber are required")

        librarian = self.db.get(Librarian, librarian_id)
        if librarian is None:
            raise NotFoundError("librarian")

        if not librarian.razorpay_contact_id:
            name = f"{librarian.first_name} {librarian.last_name or ''}".strip()
            result = self.gateway.create_contact(
                name=name,
                email=librarian.email,
                contact=librarian.contact_number or "",
                reference_id=str(librarian.id),
            )
            if not result["success"]:
                raise GatewayError("contact_creation_failed", "Failed to create payout contact")
            librarian.razorpay_contact_id = result["contact"]["id"]
            self.db.commit()

        result = self.gateway.create_fund_account(
            contact_id=librarian.razorpay_contact_id,
            account_holder_name=account_holder_name,
            ifsc=ifsc,
            account_number=account_number,
        )
        if not result["success"]:
            raise GatewayError("fund_account_creation_failed", "Failed to create payout fund account")

        librarian.razorpay_account_id = result["fund_account"]["id"]
        self.db.commit()
        self.db.refresh(librarian)
        logger.info(f"Payout account {librarian.razorpay_account_id} registered for librarian {librarian.id}")
        return librarian
