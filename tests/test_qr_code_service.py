"""QR payload building and parsing for transfers and gift cards"""

import json

import pytest

from services.qr_code_service import GIFT_CARD_PAYLOAD_TYPE, USER_PAYLOAD_TYPE, QRCodeService
from utils import messages
from utils.exception_handler import ValidationError


class TestTransferPayload:

    def test_build(self):
        raw = QRCodeService.build_transfer_payload("user-1", "أمينة", "0661234567", timestamp=1700000000000)
        data = json.loads(raw)
        assert data == {
            "type": USER_PAYLOAD_TYPE,
            "userId": "user-1",
            "fullName": "أمينة",
            "phone": "0661234567",
            "timestamp": 1700000000000,
        }
        assert "أمينة" in raw

    def test_parse_own_payload(self):
        raw = QRCodeService.build_transfer_payload("user-1", "Amina B", "0661234567")
        scanned = QRCodeService.parse_transfer_payload(raw)
        assert (scanned.user_id, scanned.full_name, scanned.phone) == ("user-1", "Amina B", "0661234567")

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "hello",
        "[1, 2]",
        json.dumps({"type": "other", "userId": "u", "fullName": "n", "phone": "p"}),
        json.dumps({"type": USER_PAYLOAD_TYPE, "userId": "u", "fullName": "n"}),
    ])
    def test_rejects_foreign_or_incomplete(self, raw):
        with pytest.raises(ValidationError) as exc:
            QRCodeService.parse_transfer_payload(raw)
        assert exc.value.user_message == messages.QR_UNREADABLE


class TestGiftCardPayload:

    def test_json_payload(self):
        raw = json.dumps({"type": GIFT_CARD_PAYLOAD_TYPE, "cardCode": "1234-5678-9012"})
        assert QRCodeService.parse_gift_card_code(raw) == "123456789012"

    def test_plain_digits(self):
        assert QRCodeService.parse_gift_card_code("CARD 12345678901") == "12345678901"

    def test_keeps_first_twelve_digits(self):
        assert QRCodeService.parse_gift_card_code("12345678901234") == "123456789012"

    def test_too_few_digits(self):
        with pytest.raises(ValidationError) as exc:
            QRCodeService.parse_gift_card_code("1234")
        assert exc.value.user_message == messages.QR_INVALID_CARD


class TestQrImage:

    def test_user_qr_is_png(self):
        png = QRCodeService.generate_user_qr_png("user-1", "Amina B", "0661234567")
        assert png.startswith(b"\x89PNG")
