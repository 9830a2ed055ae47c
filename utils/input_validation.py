"""
Input Validation Utilities
Client-side checks that run before any backend round trip
"""

import re
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from config import Config
from models import ReceiptFile
from utils.decimal_precision import MonetaryDecimal, Numeric
from utils.exception_handler import ValidationError
from utils import messages

logger = logging.getLogger(__name__)


class InputValidator:
    """Input validation for wallet flows"""

    MOBILIS_PATTERN = re.compile(r"^06\d{8}$")
    ALGERIAN_MOBILE_PATTERN = re.compile(r"^0[567]\d{8}$")
    AMOUNT_PATTERN = re.compile(r"\d+(?:\.\d+)?")
    CURRENCY_SUFFIX = re.compile(r"(?:دج|دينار|dzd|da)$", re.IGNORECASE)
    WHITESPACE = re.compile(r"\s+")
    NATIONAL_ID_PATTERN = re.compile(r"^\d{18}$")
    BIRTH_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%Y-%m-%d")

    @classmethod
    def normalize_phone(cls, phone: Optional[str]) -> str:
        """Strip whitespace; +213 / 00213 numbers become the national 0XXXXXXXXX form"""
        cleaned = cls.WHITESPACE.sub("", phone or "")
        if cleaned.startswith("+") or cleaned.startswith("00213"):
            try:
                parsed = phonenumbers.parse(cleaned.replace("00213", "+213", 1), "DZ")
                national = phonenumbers.format_number(parsed, PhoneNumberFormat.NATIONAL)
                cleaned = re.sub(r"\D", "", national)
            except NumberParseException as e:
                logger.debug(f"Unparseable phone {cleaned!r}: {e}")
        return cleaned

    @classmethod
    def validate_mobilis_phone(cls, phone: Optional[str]) -> str:
        """Mobilis sender number for Flexy deposits: 06 followed by 8 digits"""
        cleaned = cls.normalize_phone(phone)
        if not cls.MOBILIS_PATTERN.match(cleaned):
            raise ValidationError(f"invalid Mobilis number {cleaned!r}", messages.INVALID_MOBILIS_PHONE)
        return cleaned

    @classmethod
    def validate_mobile_phone(cls, phone: Optional[str]) -> str:
        """Any Algerian mobile number (Djezzy 07, Mobilis 06, Ooredoo 05)"""
        cleaned = cls.normalize_phone(phone)
        if not cls.ALGERIAN_MOBILE_PATTERN.match(cleaned):
            raise ValidationError(f"invalid mobile number {cleaned!r}", messages.INVALID_PHONE)
        return cleaned

    @classmethod
    def validate_recipient_phone(cls, phone: Optional[str]) -> str:
        """Manual transfer entry: at least 10 characters once spaces are removed"""
        cleaned = cls.normalize_phone(phone)
        if len(cleaned) < 10:
            raise ValidationError(f"recipient phone too short {cleaned!r}", messages.INVALID_PHONE)
        return cleaned

    @classmethod
    def parse_amount(cls, text: Optional[str]) -> Decimal:
        """Positive amount, optionally grouped and suffixed with the currency ('1 500 دج' -> 1500)"""
        cleaned = cls.CURRENCY_SUFFIX.sub("", re.sub(r"[,\s]", "", text or ""))
        match = cls.AMOUNT_PATTERN.fullmatch(cleaned)
        if not match:
            raise ValidationError(f"no amount in {text!r}", messages.INVALID_AMOUNT)
        amount = MonetaryDecimal.to_decimal(match.group())
        if amount <= 0:
            raise ValidationError(f"non-positive amount {amount}", messages.INVALID_AMOUNT)
        return amount

    @classmethod
    def validate_amount_range(
        cls, amount: Numeric, min_amount: Numeric = None, max_amount: Numeric = None
    ) -> Decimal:
        value = MonetaryDecimal.to_decimal(amount)
        if value <= 0:
            raise ValidationError(f"non-positive amount {value}", messages.INVALID_AMOUNT)
        if min_amount is not None and value < MonetaryDecimal.to_decimal(min_amount):
            raise ValidationError(
                f"amount {value} below minimum {min_amount}",
                messages.AMOUNT_BELOW_MIN.format(min=MonetaryDecimal.format_dzd(min_amount)),
            )
        if max_amount is not None and value > MonetaryDecimal.to_decimal(max_amount):
            raise ValidationError(
                f"amount {value} above maximum {max_amount}",
                messages.AMOUNT_ABOVE_MAX.format(max=MonetaryDecimal.format_dzd(max_amount)),
            )
        return value

    @classmethod
    def validate_receipt(cls, receipt: Optional[ReceiptFile], max_bytes: Optional[int] = None) -> ReceiptFile:
        if receipt is None or not receipt.content:
            raise ValidationError("receipt missing", messages.RECEIPT_REQUIRED)
        limit = max_bytes or Config.RECEIPT_MAX_BYTES
        if receipt.size > limit:
            raise ValidationError(f"receipt is {receipt.size} bytes, limit {limit}", messages.RECEIPT_TOO_LARGE)
        if not receipt.content_type.startswith("image/"):
            raise ValidationError(f"receipt type {receipt.content_type}", messages.RECEIPT_NOT_IMAGE)
        return receipt

    @classmethod
    def validate_national_id(cls, value: Optional[str]) -> str:
        """Algerian national identification number: 18 digits"""
        cleaned = cls.WHITESPACE.sub("", value or "")
        if not cls.NATIONAL_ID_PATTERN.match(cleaned):
            raise ValidationError(f"invalid national id {cleaned!r}", messages.INVALID_NATIONAL_ID)
        return cleaned

    @classmethod
    def parse_birth_date(cls, text: Optional[str], today: Optional[date] = None) -> date:
        """dd/mm/yyyy, dd-mm-yyyy or ISO; must be in the past"""
        value = (text or "").strip()
        parsed = None
        for fmt in cls.BIRTH_DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt).date()
                break
            except ValueError:
                continue
        today = today or date.today()
        if parsed is None or parsed >= today or parsed.year < 1900:
            raise ValidationError(f"invalid birth date {value!r}", messages.INVALID_BIRTH_DATE)
        return parsed

    @classmethod
    def require_text(cls, value: Optional[str], field_message: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError("required field missing", field_message)
        return value
