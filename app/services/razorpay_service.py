import hashlib
import hmac
import logging
from typing import Dict, Any, Optional

import httpx
import razorpay

from app.core.config import settings

logger = logging.getLogger(__name__)


def compute_signature(secret: str, razorpay_order_id: str, razorpay_payment_id: str) -> str:
    """HMAC-SHA256 hex digest over "<order_id>|<payment_id>"."""
    body = f"{razorpay_order_id}|{razorpay_payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class RazorpayService:
    """Razorpay checkout (orders, signatures) and RazorpayX payouts."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        payout_account_number: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.payout_account_number = payout_account_number or settings.RAZORPAY_PAYOUT_ACCOUNT_NUMBER
        self.base_url = (base_url or settings.RAZORPAYX_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))
        self.client.set_app_details({"title": "seat-booking", "version": "1.0.0"})

    def create_order(self, amount: int, currency: str = "INR", receipt: str = None, notes: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Create a Razorpay order

        Args:
            amount: Amount in paise (e.g., 100000 for Rs.1000)
            currency: Currency code (default: INR)
            receipt: Receipt ID for the order (max 40 chars)
            notes: Additional notes for the order

        Returns:
            Dict containing order details
        """
        try:
            order_data = {
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "payment_capture": 1,
                "notes": notes or {},
            }

            order = self.client.order.create(data=order_data)
            logger.info(f"Razorpay order created: {order['id']}")

            return {
                "success": True,
                "order": order,
                "message": "Order created successfully"
            }

        except Exception as e:
            logger.error(f"Error creating Razorpay order: {str(e)}")
            return {
                "success": False,
                "error": str(e),
                "message": "Failed to create order"
            }

    def verify_signature(self, razorpay_order_id: str, razorpay_payment_id: str, razorpay_signature: str) -> bool:
        """Constant-time check of a checkout/webhook signature."""
        expected_signature = compute_signature(self.key_secret, razorpay_order_id, razorpay_payment_id)
        # Bytes, not str: compare_digest rejects non-ASCII str input with TypeError
        return hmac.compare_digest(expected_signature.encode("utf-8"), razorpay_signature.encode("utf-8"))

    def _post(self, path: str, payload: Dict[str, Any], headers: Dict[str, str] = None) -> Dict[str, Any]:
        response = httpx.post(
            f"{self.base_url}{path}",
            json=payload,
            auth=(self.key_id, self.key_secret),
            headers=headers or {},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def create_contact(self, name: str, email: str, contact: str, reference_id: str) -> Dict[str, Any]:
        """Create a RazorpayX contact for a library operator"""
        try:
            contact_obj = self._post("/contacts", {
                "name": name,
                "email": email,
                "contact": contact,
                "type": "vendor",
                "reference_id": reference_id,
                "notes": {"librarian_id": reference_id},
            })
            logger.info(f"RazorpayX contact created: {contact_obj['id']}")
            return {"success": True, "contact": contact_obj, "message": "Contact created successfully"}
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Error creating RazorpayX contact: {str(e)}")
            return {"success": False, "error": str(e), "message": "Failed to create contact"}

    def create_fund_account(self, contact_id: str, account_holder_name: str, ifsc: str, account_number: str) -> Dict[str, Any]:
        """Attach a bank account to a RazorpayX contact"""
        try:
            fund_account = self._post("/fund_accounts", {
                "contact_id": contact_id,
                "account_type": "bank_account",
                "bank_account": {
                    "name": account_holder_name,
                    "ifsc": ifsc,
                    "account_number": account_number,
                },
            })
            logger.info(f"RazorpayX fund account created: {fund_account['id']}")
            return {"success": True, "fund_account": fund_account, "message": "Fund account created successfully"}
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Error creating RazorpayX fund account: {str(e)}")
            return {"success": False, "error": str(e), "message": "Failed to create fund account"}

    def create_payout(self, amount: int, fund_account_id: str, reference_id: str, currency: str = "INR") -> Dict[str, Any]:
        """
        Pay out to a library operator's fund account

        Args:
            amount: Amount in paise
            fund_account_id: Operator's RazorpayX fund account
            reference_id: Our payment id; doubles as the payout idempotency key

        Returns:
            Dict containing payout details
        """
        try:
            payout = self._post(
                "/payouts",
                {
                    "account_number": self.payout_account_number,
                    "fund_account_id": fund_account_id,
                    "amount": amount,
                    "currency": currency,
                    "mode": settings.PAYOUT_MODE,
                    "purpose": "payout",
                    "queue_if_low_balance": True,
                    "reference_id": reference_id,
                    "narration": "Library booking payout",
                },
                headers={"X-Payout-Idempotency": reference_id},
            )
            logger.info(f"RazorpayX payout created: {payout['id']}")
            return {"success": True, "payout": payout, "message": "Payout created successfully"}
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Error creating RazorpayX payout: {str(e)}")
            return {"success": False, "error": str(e), "message": "Failed to send payout"}


# Global Razorpay service instance
razorpay_service = RazorpayService()


def get_payment_gateway() -> RazorpayService:
    return razorpay_service
