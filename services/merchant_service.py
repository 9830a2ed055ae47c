"""Merchant requests: a user asks to become a merchant, an admin decides"""

import logging
from typing import Any, Dict, Optional

from models import RequestStatus
from services.backend_client import BackendClient, eq
from utils import messages
from utils.exception_handler import ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)


class MerchantService:
    def __init__(self, backend: BackendClient, notifications=None):
        self.backend = backend
        self.notifications = notifications

    async def get_my_request(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.backend.select_one(
            "merchant_requests", {"user_id": eq(user_id)}, order="created_at.desc"
        )

    async def submit_request(
        self, user_id: str, business_name: str, business_type: str, phone: str
    ) -> Dict[str, Any]:
        existing = await self.get_my_request(user_id)
        if existing:
            status = existing.get("status")
            if status == RequestStatus.PENDING.value:
                raise ValidationError("merchant request already pending", "لديك طلب قيد المراجعة بالفعل")
            if status == RequestStatus.APPROVED.value:
                raise ValidationError("already a merchant", "أنت تاجر معتمد بالفعل")

        record = {
            "business_name": InputValidator.require_text(business_name, messages.GENERIC_ERROR),
            "business_type": InputValidator.require_text(business_type, messages.GENERIC_ERROR),
            "phone": InputValidator.validate_mobile_phone(phone),
        }
        rows = await self.backend.insert("merchant_requests", {"user_id": user_id, **record})
        logger.info(f"🏪 Merchant request submitted by {user_id}")
        if self.notifications:
            self.notifications.fire("new_merchant_request", record)
        return rows[0] if rows else record
