"""QR payloads for peer transfers and gift cards, and the user's receive-QR image"""

import json
import logging
import re
import time
from io import BytesIO
from typing import Any, Dict, Optional

import qrcode
import qrcode.constants
from qrcode.main import QRCode
from PIL import Image

from models import ScannedUser
from services.shop_service import GIFT_CARD_MAX_DIGITS, GIFT_CARD_MIN_DIGITS
from utils import messages
from utils.exception_handler import ValidationError

logger = logging.getLogger(__name__)

USER_PAYLOAD_TYPE = "opay_user"
GIFT_CARD_PAYLOAD_TYPE = "opal_gift_card"


class QRCodeService:
    """Builds and parses the JSON payloads carried by OpaY QR codes"""

    @classmethod
    def build_transfer_payload(
        cls, user_id: str, full_name: str, phone: str, timestamp: Optional[int] = None
    ) -> str:
        return json.dumps({
            "type": USER_PAYLOAD_TYPE,
            "userId": user_id,
            "fullName": full_name,
            "phone": phone,
            "timestamp": timestamp if timestamp is not None else int(time.time() * 1000),
        }, ensure_ascii=False)

    @classmethod
    def _load_json(cls, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(raw or "")
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    @classmethod
    def parse_transfer_payload(cls, raw: Optional[str]) -> ScannedUser:
        """A user QR must carry the type marker, userId, fullName and phone"""
        data = cls._load_json(raw)
        if not data or data.get("type") != USER_PAYLOAD_TYPE:
            raise ValidationError("not an OpaY user QR", messages.QR_UNREADABLE)
        user_id, full_name, phone = data.get("userId"), data.get("fullName"), data.get("phone")
        if not (user_id and full_name and phone):
            raise ValidationError("user QR is missing fields", messages.QR_UNREADABLE)
        return ScannedUser(user_id=str(user_id), full_name=str(full_name), phone=str(phone))

    @classmethod
    def parse_gift_card_code(cls, raw: Optional[str]) -> str:
        """
        Card code from a scanned gift card.

        Accepts the JSON payload {"type": "opal_gift_card", "cardCode": ...}
        or any text whose digits form the code (first 12 digits kept).
        """
        data = cls._load_json(raw)
        if data and data.get("type") == GIFT_CARD_PAYLOAD_TYPE and data.get("cardCode"):
            text = str(data["cardCode"])
        else:
            text = raw or ""
        digits = re.sub(r"\D", "", text)[:GIFT_CARD_MAX_DIGITS]
        if len(digits) < GIFT_CARD_MIN_DIGITS:
            raise ValidationError(f"gift card QR has {len(digits)} digits", messages.QR_INVALID_CARD)
        return digits

    @classmethod
    def generate_qr_image(cls, data: str, box_size: int = 10, border: int = 1) -> Image.Image:
        qr = QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=box_size,
            border=border,
        )
        qr.add_data(data)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        return img.get_image() if hasattr(img, "get_image") else img

    @classmethod
    def generate_user_qr_png(cls, user_id: str, full_name: str, phone: str) -> bytes:
        """PNG bytes of the QR other users scan to send money to this user"""
        payload = cls.build_transfer_payload(user_id, full_name, phone)
        try:
            img = cls.generate_qr_image(payload)
            buffered = BytesIO()
            img.save(buffered, format="PNG")
        except (ValueError, OSError) as e:
            logger.error(f"❌ QR generation failed for user {user_id}: {e}", exc_info=True)
            raise ValidationError(f"qr generation failed: {e}", messages.QR_GENERATION_FAILED) from e
        logger.info(f"📷 Generated receive QR for user {user_id}")
        return buffered.getvalue()
