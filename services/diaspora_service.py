"""Diaspora transfers: a sender abroad asks OpaY to pay out to a number in Algeria"""

import logging
from typing import Any, Dict, Optional

from models import RequestStatus
from services.backend_client import BackendClient, eq
from utils import messages
from utils.decimal_precision import Numeric, to_json_number
from utils.exception_handler import ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)


def _optional(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class DiasporaService:
    def __init__(self, backend: BackendClient, notifications=None):
        self.backend = backend
        self.notifications = notifications

    async def get_latest_transfer(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.backend.select_one(
            "diaspora_transfers", {"sender_id": eq(user_id)}, order="created_at.desc"
        )

    async def create_transfer(
        self,
        user_id: str,
        recipient_phone: str,
        amount: Numeric,
        sender_country: str,
        sender_city: Optional[str] = None,
        recipient_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Queue a pending transfer request.

        The exchange rate and the DZD amount are set by the admin who approves
        it; nothing is debited from the sender's wallet here.
        """
        if not (recipient_phone or "").strip() or amount in (None, "") or not (sender_country or "").strip():
            raise ValidationError("diaspora transfer missing fields", messages.DIASPORA_MISSING_FIELDS)
        phone = InputValidator.validate_recipient_phone(recipient_phone)
        value = InputValidator.parse_amount(str(amount))

        record = {
            "sender_id": user_id,
            "recipient_phone": phone,
            "recipient_name": _optional(recipient_name),
            "amount": to_json_number(value),
            "sender_country": sender_country.strip(),
            "sender_city": _optional(sender_city),
            "note": _optional(note),
            "status": RequestStatus.PENDING.value,
        }
        rows = await self.backend.insert("diaspora_transfers", record)
        transfer = rows[0] if rows else record
        logger.info(f"🌍 Diaspora transfer {transfer.get('id')} requested by {user_id}: {value} to {phone}")

        if self.notifications:
            self.notifications.fire("new_diaspora_transfer", {
                "id": transfer.get("id"),
                "amount": value,
                "recipient_phone": phone,
                "sender_country": record["sender_country"],
            })
        return transfer
