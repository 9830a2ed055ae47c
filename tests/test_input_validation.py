"""Phone, amount, receipt and ID card validation"""

from datetime import date
from decimal import Decimal

import pytest

from models import ReceiptFile
from utils import messages
from utils.exception_handler import ValidationError
from utils.input_validation import InputValidator


class TestPhones:

    @pytest.mark.parametrize("raw,expected", [
        ("0661234567", "0661234567"),
        ("0661 23 45 67", "0661234567"),
        ("+213661234567", "0661234567"),
        ("00213 661 23 45 67", "0661234567"),
    ])
    def test_normalize(self, raw, expected):
        assert InputValidator.normalize_phone(raw) == expected

    @pytest.mark.parametrize("phone", ["0661234567", "+213 661 23 45 67"])
    def test_mobilis_accepted(self, phone):
        assert InputValidator.validate_mobilis_phone(phone) == "0661234567"

    @pytest.mark.parametrize("phone", ["0771234567", "0551234567", "066123456", "06612345678", "", None])
    def test_mobilis_rejected(self, phone):
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_mobilis_phone(phone)
        assert exc.value.user_message == messages.INVALID_MOBILIS_PHONE

    @pytest.mark.parametrize("phone", ["0551234567", "0661234567", "0771234567"])
    def test_any_algerian_mobile(self, phone):
        assert InputValidator.validate_mobile_phone(phone) == phone

    def test_landline_rejected(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_mobile_phone("0211234567")

    def test_recipient_length(self):
        assert InputValidator.validate_recipient_phone("055 123 45 67") == "0551234567"
        with pytest.raises(ValidationError):
            InputValidator.validate_recipient_phone("055123")


class TestAmounts:

    @pytest.mark.parametrize("text,expected", [
        ("1000", Decimal("1000")),
        ("1 500 دج", Decimal("1500")),
        ("2,000", Decimal("2000")),
        ("12.5", Decimal("12.5")),
        ("750 DA", Decimal("750")),
    ])
    def test_parse(self, text, expected):
        assert InputValidator.parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["", None, "abc", "0", "0.0", "-500", "12x300", "1000 ou 2000", "1.2.3"])
    def test_parse_rejects(self, text):
        with pytest.raises(ValidationError) as exc:
            InputValidator.parse_amount(text)
        assert exc.value.user_message == messages.INVALID_AMOUNT

    def test_range(self):
        assert InputValidator.validate_amount_range("150", 100, 5000) == Decimal("150")
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_amount_range(6000, 100, 5000)
        assert exc.value.user_message == messages.AMOUNT_ABOVE_MAX.format(max="5,000 دج")


class TestReceipts:

    def test_valid(self, receipt):
        assert InputValidator.validate_receipt(receipt) is receipt

    def test_missing(self):
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_receipt(ReceiptFile(filename="r.png", content=b""))
        assert exc.value.user_message == messages.RECEIPT_REQUIRED

    def test_too_large(self):
        big = ReceiptFile(filename="r.png", content=b"x" * 11, content_type="image/png")
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_receipt(big, max_bytes=10)
        assert exc.value.user_message == messages.RECEIPT_TOO_LARGE

    def test_not_an_image(self):
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_receipt(ReceiptFile(filename="r.pdf", content=b"%PDF", content_type="application/pdf"))
        assert exc.value.user_message == messages.RECEIPT_NOT_IMAGE


class TestIdentity:

    def test_national_id_spaces_removed(self):
        assert InputValidator.validate_national_id("1099 0012 3456 7890 12") == "109900123456789012"

    @pytest.mark.parametrize("value", [None, "", "12345", "10990012345678901A", "1099001234567890123"])
    def test_national_id_rejected(self, value):
        with pytest.raises(ValidationError) as exc:
            InputValidator.validate_national_id(value)
        assert exc.value.user_message == messages.INVALID_NATIONAL_ID

    @pytest.mark.parametrize("text", ["25/04/1995", "25-04-1995", "1995-04-25"])
    def test_birth_date_formats(self, text):
        assert InputValidator.parse_birth_date(text, today=date(2026, 3, 14)) == date(1995, 4, 25)

    @pytest.mark.parametrize("text", ["", "31/02/1995", "04/25/1995", "14/03/2026", "01/01/1850"])
    def test_birth_date_rejected(self, text):
        with pytest.raises(ValidationError) as exc:
            InputValidator.parse_birth_date(text, today=date(2026, 3, 14))
        assert exc.value.user_message == messages.INVALID_BIRTH_DATE
