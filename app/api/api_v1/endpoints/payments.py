from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from app.core.errors import envelope
from app.database import get_db
from app.schemas.payment import PaymentOrderCreate, PaymentOrderFailed, PaymentWebhook, PayoutAccountCreate
from app.services.payment_service import PaymentService
from app.services.payment_webhook_service import PaymentWebhookService
from app.services.razorpay_service import RazorpayService, get_payment_gateway

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/create-order")
def create_payment_order(
    order_data: PaymentOrderCreate,
    db: Session = Depends(get_db),
    gateway: RazorpayService = Depends(get_payment_gateway)
):
    """Create a Razorpay order for a student paying a librarian"""
    order = PaymentService(db, gateway).create_order(
        librarian_id=order_data.librarian_id,
        student_id=order_data.student_id,
        amount=order_data.amount,
        library_id=order_data.library_id,
        plan_id=order_data.plan_id,
        time_slot_id=order_data.time_slot_id,
        seat_id=order_data.seat_id,
    )
    return envelope(data=order, message="Payment order created successfully")

@router.post("/webhook")
def payment_webhook(
    webhook_data: PaymentWebhook,
    db: Session = Depends(get_db),
    gateway: RazorpayService = Depends(get_payment_gateway)
):
    """Razorpay capture callback; safe to deliver more than once"""
    result = PaymentWebhookService(db, gateway).handle_webhook(
        event=webhook_data.event,
        razorpay_order_id=webhook_data.razorpay_order_id,
        razorpay_payment_id=webhook_data.razorpay_payment_id,
        razorpay_signature=webhook_data.razorpay_signature,
        student_id=webhook_data.student_id,
        librarian_id=webhook_data.librarian_id,
    )
    return envelope(data=result["payment"], message=result["message"])

@router.post("/order-failed")
def payment_order_failed(
    failure_data: PaymentOrderFailed,
    db: Session = Depends(get_db),
    gateway: RazorpayService = Depends(get_payment_gateway)
):
    payment = PaymentService(db, gateway).mark_order_failed(failure_data.razorpay_order_id, failure_data.reason)
    return envelope(
        data={"paymentId": str(payment.id), "status": payment.status, "failureReason": payment.failure_reason},
        message="Payment marked as failed"
    )

@router.post("/{payment_id}/retry-payout")
def retry_payout(
    payment_id: UUID,
    db: Session = Depends(get_db),
    gateway: RazorpayService = Depends(get_payment_gateway)
):
    result = PaymentWebhookService(db, gateway).retry_payout(payment_id)
    return envelope(data=result["payment"], message=result["message"])

@router.post("/payout-account")
def register_payout_account(
    account_data: PayoutAccountCreate,
    db: Session = Depends(get_db),
    gateway: RazorpayService = Depends(get_payment_gateway)
):
    """Register the bank account a librarian's payouts go to"""
    librarian = PaymentService(db, gateway).register_payout_account(
        librarian_id=account_data.librarian_id,
        account_holder_name=account_data.account_holder_name,
        ifsc=account_data.ifsc,
        account_number=account_data.account_number,
    )
    return envelope(
        data={
            "librarianId": str(librarian.id),
            "contactId": librarian.razorpay_contact_id,
            "fundAccountId": librarian.razorpay_account_id,
        },
        message="Payout account registered successfully"
    )
