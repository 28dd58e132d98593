"""
Reconciles Razorpay capture callbacks with local payments.

Callbacks arrive at least once, so every step is keyed on the gateway order id
and guarded by a row lock on the payment plus a status check against
PAYMENT_TRANSITIONS. A capture for a payment the client already reported as
FAILED is honoured (FAILED -> PAID) and recorded via failure_recovered_at.
Capture is committed before anything else happens; the booking hand-off and
the payout to the library operator run afterwards and record their own
failures on the payment instead of undoing the capture.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AppError,
    AuthError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PayoutError,
    ValidationError,
)
from app.models.payment import Payment, PaymentStatus, SETTLED_PAYMENT_STATUSES, can_transition
from app.services.booking_service import BookingService, utcnow
from app.services.payment_service import from_minor_units, to_minor_units
from app.services.razorpay_service import RazorpayService

logger = logging.getLogger(__name__)

CAPTURE_EVENT = "payment.captured"


def lock_payment_by_order(db: Session, razorpay_order_id: str) -> Optional[Payment]:
    return db.query(Payment).filter(
        Payment.razorpay_order_id == razorpay_order_id
    ).with_for_update().populate_existing().first()


def lock_payment(db: Session, payment_id: UUID) -> Optional[Payment]:
    return db.query(Payment).filter(Payment.id == payment_id).with_for_update().populate_existing().first()


def payout_amount_minor(payment: Payment) -> int:
    return to_minor_units(payment.amount) - to_minor_units(payment.platform_fee)


def payment_summary(payment: Payment) -> Dict[str, Any]:
    return {
        "paymentId": str(payment.id),
        "orderId": payment.razorpay_order_id,
        "status": payment.status,
        "amount": str(payment.amount),
        "platformFee": str(payment.platform_fee),
        "payoutAmount": str(from_minor_units(payout_amount_minor(payment))),
        "currency": payment.currency,
        "transferId": payment.razorpay_transfer_id,
        "payoutPending": payment.status == PaymentStatus.PAID.value,
        "payoutError": payment.payout_error,
        "bookingId": str(payment.booking_id) if payment.booking_id else None,
        "bookingError": payment.booking_error,
        "recoveredFromFailure": payment.failure_recovered_at is not None,
    }


class PaymentWebhookService:
    def __init__(self, db: Session, gateway: RazorpayService):
        self.db = db
        self.gateway = gateway

    def handle_webhook(
        self,
        event: Optional[str],
        razorpay_order_id: Optional[str],
        razorpay_payment_id: Optional[str],
        razorpay_signature: Optional[str],
        student_id: Optional[str],
        librarian_id: Optional[str],
    ) -> Dict[str, Any]:
        """
        Process a payment callback.

        Returns a dict with "processed" (whether this call changed anything),
        a human readable "message" and, for capture events, the payment summary.

        Raises:
            ValidationError: missing fields or parties that do not match the order
            AuthError: signature mismatch
            ConfigurationError: no gateway secret configured
            NotFoundError: no payment for the order id
        """
        if not all([event, razorpay_order_id, razorpay_payment_id, razorpay_signature, student_id, librarian_id]):
            raise ValidationError("missing_fields", "Missing required fields")

        if not self.gateway.key_secret:
            logger.error("Razorpay key secret is not configured; cannot verify webhook")
            raise ConfigurationError("gateway_not_configured", "Payment gateway secret is not configured")

        if not self.gateway.verify_signature(razorpay_order_id, razorpay_payment_id, razorpay_signature):
            logger.warning(f"Rejected webhook for order {razorpay_order_id}: signature mismatch")
            raise AuthError()

        if event != CAPTURE_EVENT:
            logger.info(f"Ignoring webhook event {event} for order {razorpay_order_id}")
            return {"processed": False, "message": "Event ignored", "payment": None}

        try:
            payment = lock_payment_by_order(self.db, razorpay_order_id)
            if payment is None:
                raise NotFoundError("payment", "Payment record not found")
            if str(payment.student_id) != str(student_id) or str(payment.librarian_id) != str(librarian_id):
                logger.warning(f"Webhook parties do not match payment {payment.id} for order {razorpay_order_id}")
                raise ValidationError("party_mismatch", "Student or librarian does not match the order")

            if payment.status in SETTLED_PAYMENT_STATUSES:
                self.db.rollback()
                logger.info(f"Payment {payment.id} already {payment.status}; duplicate capture ignored")
                return {"processed": False, "message": "Payment already processed", "payment": payment_summary(payment)}

            if not can_transition(payment.status, PaymentStatus.PAID.value):
                raise ConflictError("invalid_transition", f"Payment is {payment.status} and cannot be captured")
            if payment.status == PaymentStatus.FAILED.value:
                payment.failure_recovered_at = utcnow()
                logger.warning(f"Capture received for payment {payment.id} previously marked FAILED ({payment.failure_reason}); recovering to PAID")

            payment.status = PaymentStatus.PAID.value
            payment.razorpay_payment_id = razorpay_payment_id
            payment.razorpay_signature = razorpay_signature
            payment.payment_date = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        payment_id = payment.id
        logger.info(f"Payment {payment_id} captured as {razorpay_payment_id}")

        booked = self._hand_off_booking(payment_id)
        if booked:
            payment = self._pay_out(payment_id)
        else:
            payment = self.db.get(Payment, payment_id)

        if payment.status == PaymentStatus.TRANSFERRED.value:
            message = "Payment processed and payout completed"
        else:
            message = "Payment captured; payout pending"
        return {"processed": True, "message": message, "payment": payment_summary(payment)}

    def retry_payout(self, payment_id: UUID) -> Dict[str, Any]:
        """Re-attempt the payout of a captured payment."""
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("payment", "Payment record not found")
        if payment.status == PaymentStatus.TRANSFERRED.value:
            return {"processed": False, "message": "Payout already completed", "payment": payment_summary(payment)}
        if payment.status != PaymentStatus.PAID.value:
            raise ConflictError("payout_not_allowed", f"Payment is {payment.status}; only PAID payments can be paid out")
        if payment.has_booking_intent and payment.booking_id is None:
            raise ConflictError("booking_not_created", "Captured payment has no booking; refund instead of paying out")

        payment = self._pay_out(payment_id)
        if payment.status != PaymentStatus.TRANSFERRED.value:
            raise PayoutError(message=f"Payout failed: {payment.payout_error}", data=payment_summary(payment))
        return {"processed": True, "message": "Payout completed", "payment": payment_summary(payment)}

    def _hand_off_booking(self, payment_id: UUID) -> bool:
        """Create the booking a payment was made for. False leaves the payout pending."""
        payment = self.db.get(Payment, payment_id)
        if not payment.has_booking_intent or payment.booking_id is not None:
            return True

        try:
            booking = BookingService(self.db).create_booking(
                student_id=payment.student_id,
                library_id=payment.library_id,
                plan_id=payment.plan_id,
                time_slot_id=payment.time_slot_id,
                seat_id=payment.seat_id,
                total_amount=payment.amount,
            )
        except AppError as e:
            payment = self.db.get(Payment, payment_id)
            payment.booking_error = f"{e.code}: {e.message}"
            self.db.commit()
            logger.error(f"Payment {payment_id} captured but booking failed ({e.code}); payout held")
            return False

        payment = self.db.get(Payment, payment_id)
        payment.booking_id = booking.id
        payment.booking_error = None
        self.db.commit()
        logger.info(f"Payment {payment_id} booked as {booking.id}")
        return True

    def _pay_out(self, payment_id: UUID) -> Payment:
        """Send amount - platform fee to the operator. Never raises on gateway failure."""
        try:
            payment = lock_payment(self.db, payment_id)
            # A concurrent retry may already have paid out
            if not can_transition(payment.status, PaymentStatus.TRANSFERRED.value):
                self.db.rollback()
                return payment

            librarian = payment.librarian
            if not librarian.razorpay_account_id:
                payment.payout_error = "No payout account registered for librarian"
                self.db.commit()
                logger.warning(f"Payout for payment {payment_id} pending: librarian {librarian.id} has no fund account")
                return payment

            amount_minor = payout_amount_minor(payment)
            payment.payout_attempts = (payment.payout_attempts or 0) + 1
            result = self.gateway.create_payout(
                amount=amount_minor,
                fund_account_id=librarian.razorpay_account_id,
                reference_id=str(payment.id),
                currency=payment.currency,
            )
            if result["success"]:
                payment.status = PaymentStatus.TRANSFERRED.value
                payment.razorpay_transfer_id = result["payout"]["id"]
                payment.transferred_at = utcnow()
                payment.payout_error = None
            else:
                payment.payout_error = result.get("error") or result.get("message")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        if payment.status == PaymentStatus.TRANSFERRED.value:
            logger.info(f"Payment {payment_id} paid out {amount_minor} paise as {payment.razorpay_transfer_id}")
        else:
            logger.warning(f"Payout for payment {payment_id} failed (attempt {payment.payout_attempts}): {payment.payout_error}")
        return payment
