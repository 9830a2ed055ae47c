#!/usr/bin/env python3
"""
Decimal Precision Utilities for Financial Calculations
Enforces consistent Decimal usage across all dinar and dollar amounts
"""

import logging
from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import Union, Optional

logger = logging.getLogger(__name__)

# Set global decimal precision for financial calculations
getcontext().prec = 28

Numeric = Union[str, int, float, Decimal, None]


class MonetaryDecimal:
    """Enforces Decimal-only monetary operations with proper precision"""

    DZD_PRECISION = Decimal("0.01")  # centimes
    DZD_WHOLE = Decimal("1")  # whole dinars
    USD_PRECISION = Decimal("0.01")
    RATE_PRECISION = Decimal("0.0001")

    @classmethod
    def to_decimal(cls, value: Numeric, context: str = "monetary") -> Decimal:
        """Convert any numeric input to Decimal; unparseable or non-finite input is zero"""
        if value is None:
            return Decimal("0")

        if isinstance(value, bool):
            return Decimal(int(value))

        if isinstance(value, Decimal):
            decimal_value = value
        else:
            try:
                text = str(value).strip().replace(",", "")
                if not text:
                    return Decimal("0")
                decimal_value = Decimal(text)
            except Exception as e:
                logger.debug(f"Non-numeric value {value!r} in context {context}: {e}")
                return Decimal("0")

        if not decimal_value.is_finite():
            logger.warning(f"Non-finite value {value!r} in context {context}, using 0")
            return Decimal("0")

        if abs(decimal_value) > Decimal("999999999999"):
            logger.warning(f"Unusually large monetary value: {decimal_value} in context: {context}")

        return decimal_value

    @classmethod
    def to_optional_decimal(cls, value: Numeric, context: str = "monetary") -> Optional[Decimal]:
        """Like to_decimal, but a missing value stays None"""
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return cls.to_decimal(value, context)

    @classmethod
    def quantize_dzd(cls, amount: Numeric) -> Decimal:
        """Quantize amount to centimes"""
        return cls.to_decimal(amount, "DZD").quantize(cls.DZD_PRECISION, rounding=ROUND_HALF_UP)

    @classmethod
    def round_dzd(cls, amount: Numeric) -> Decimal:
        """Round half-up to a whole dinar"""
        return cls.to_decimal(amount, "DZD").quantize(cls.DZD_WHOLE, rounding=ROUND_HALF_UP)

    @classmethod
    def quantize_usd(cls, amount: Numeric) -> Decimal:
        """Quantize amount to USD precision (2 decimal places)"""
        return cls.to_decimal(amount, "USD").quantize(cls.USD_PRECISION, rounding=ROUND_HALF_UP)

    @classmethod
    def percentage_of(cls, amount: Numeric, percentage: Numeric) -> Decimal:
        """amount * percentage / 100, unrounded"""
        return cls.to_decimal(amount) * cls.to_decimal(percentage) / Decimal("100")

    @classmethod
    def format_dzd(cls, amount: Numeric) -> str:
        """Format for display: '1,234 دج' or '1,234.50 دج'"""
        value = cls.quantize_dzd(amount)
        if value == value.to_integral_value():
            return f"{int(value):,} دج"
        return f"{value:,.2f} دج"

    @classmethod
    def format_usd(cls, amount: Numeric) -> str:
        return f"${cls.quantize_usd(amount):,.2f}"


def to_json_number(value: Numeric) -> Union[int, float]:
    """Backend JSON wants numbers, not strings; whole values go out as int"""
    decimal_value = MonetaryDecimal.to_decimal(value)
    if decimal_value == decimal_value.to_integral_value():
        return int(decimal_value)
    return float(decimal_value)
