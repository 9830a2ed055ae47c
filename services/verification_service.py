"""
Identity verification requests

The user sends their national ID number, the name and birth date printed on
the card and photos of both sides. Photos go to the identity-documents
bucket; the request row waits for an admin decision in verification_requests.
"""

import logging
import time
from datetime import date
from typing import Any, Dict, Optional

from config import Config
from models import ReceiptFile, RequestStatus
from services.backend_client import BackendClient, eq
from utils import messages
from utils.exception_handler import BackendError, ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)


class VerificationService:
    def __init__(self, backend: BackendClient, notifications=None):
        self.backend = backend
        self.notifications = notifications

    async def get_latest_request(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.backend.select_one(
            "verification_requests",
            {"user_id": eq(user_id)},
            columns="id,status,rejection_reason,submitted_at",
            order="submitted_at.desc",
        )

    async def upload_document(self, user_id: str, side: str, document: ReceiptFile) -> str:
        path = f"{user_id}/{side}_{int(time.time() * 1000)}.{document.extension}"
        try:
            await self.backend.upload(Config.ID_DOCUMENT_BUCKET, path, document.content, document.content_type)
        except BackendError as e:
            logger.error(f"❌ ID {side} upload failed for user {user_id}: {e}")
            raise ValidationError(f"id document upload failed: {e}", messages.ID_UPLOAD_FAILED) from e
        return self.backend.public_url(Config.ID_DOCUMENT_BUCKET, path)

    async def submit_request(
        self,
        user_id: str,
        national_id: str,
        full_name: str,
        date_of_birth: date,
        front: Optional[ReceiptFile],
        back: Optional[ReceiptFile],
    ) -> Dict[str, Any]:
        latest = await self.get_latest_request(user_id)
        status = latest.get("status") if latest else None
        if status == RequestStatus.PENDING.value:
            raise ValidationError("verification already pending", messages.VERIFICATION_PENDING)
        if status == RequestStatus.APPROVED.value:
            raise ValidationError("already verified", messages.ALREADY_VERIFIED)

        national_id = InputValidator.validate_national_id(national_id)
        full_name = InputValidator.require_text(full_name, messages.FULL_NAME_REQUIRED)
        InputValidator.validate_receipt(front)
        InputValidator.validate_receipt(back)

        front_url = await self.upload_document(user_id, "front", front)
        back_url = await self.upload_document(user_id, "back", back)

        rows = await self.backend.insert("verification_requests", {
            "user_id": user_id,
            "national_id": national_id,
            "full_name": full_name,
            "date_of_birth": date_of_birth.isoformat(),
            "id_front_image": front_url,
            "id_back_image": back_url,
            "status": RequestStatus.PENDING.value,
        })
        request = rows[0] if rows else {"user_id": user_id, "status": RequestStatus.PENDING.value}
        logger.info(f"🪪 Verification request {request.get('id')} submitted by {user_id}")

        # profile badge only, the request row is already in
        try:
            await self.backend.update(
                "profiles",
                {"national_id": national_id, "identity_verification_status": RequestStatus.PENDING.value},
                {"user_id": eq(user_id)},
            )
        except BackendError as e:
            logger.warning(f"⚠️ Profile verification status not updated for {user_id}: {e}")

        if self.notifications:
            self.notifications.fire("new_verification_request", {
                "id": request.get("id"), "user_id": user_id, "full_name": full_name,
            })
        return request
