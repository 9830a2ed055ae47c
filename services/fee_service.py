"""
Fee Service - one fee calculator for every wallet flow
Replaces the per-page fee arithmetic (deposits, withdrawals, transfers, phone
top-ups, digital cards, betting) with a single policy object and function.

    fee   = amount * value / 100   (percentage)  |  value   (fixed)
    fee  += fixed_amount           (platform fee configs combine both)
    fee   = clamp(fee, min_fee, max_fee)
    net   = amount - fee           (deposit style, fee taken from the amount)
    total = amount + fee           (top-up style, fee charged on top)
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from config import Config
from models import (
    DigitalCardFeeSettings,
    FeeConfig,
    FeeType,
    PhoneOperator,
    PhoneTopupSettings,
)
from utils.decimal_precision import MonetaryDecimal, Numeric
from utils.exception_handler import FeePolicyError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class FeeStyle(Enum):
    DEPOSIT = "deposit"  # user receives amount - fee
    TOPUP = "topup"  # user pays amount + fee


class FeeRounding(Enum):
    CENTS = "cents"
    WHOLE = "whole"


@dataclass(frozen=True)
class FeePolicy:
    """Typed fee rule; missing min/max mean unbounded"""
    fee_type: FeeType = FeeType.PERCENTAGE
    fee_value: Decimal = ZERO
    min_fee: Optional[Decimal] = None
    max_fee: Optional[Decimal] = None
    fixed_amount: Decimal = ZERO
    enabled: bool = True
    rounding: FeeRounding = FeeRounding.CENTS

    @classmethod
    def percentage(cls, value: Numeric, min_fee: Numeric = None, max_fee: Numeric = None,
                   rounding: FeeRounding = FeeRounding.CENTS) -> "FeePolicy":
        return cls(
            fee_type=FeeType.PERCENTAGE,
            fee_value=MonetaryDecimal.to_decimal(value),
            min_fee=MonetaryDecimal.to_optional_decimal(min_fee),
            max_fee=MonetaryDecimal.to_optional_decimal(max_fee),
            rounding=rounding,
        )

    @classmethod
    def fixed(cls, value: Numeric, min_fee: Numeric = None, max_fee: Numeric = None,
              rounding: FeeRounding = FeeRounding.CENTS) -> "FeePolicy":
        return cls(
            fee_type=FeeType.FIXED,
            fee_value=MonetaryDecimal.to_decimal(value),
            min_fee=MonetaryDecimal.to_optional_decimal(min_fee),
            max_fee=MonetaryDecimal.to_optional_decimal(max_fee),
            rounding=rounding,
        )

    @classmethod
    def none(cls) -> "FeePolicy":
        return cls(enabled=False)

    @classmethod
    def from_fee_config(cls, config: Optional[FeeConfig]) -> "FeePolicy":
        """Platform deposit/withdrawal/transfer fee settings"""
        if config is None or not config.enabled:
            return cls.none()
        return cls(
            fee_type=FeeType.PERCENTAGE,
            fee_value=config.percentage,
            fixed_amount=config.fixed_amount,
            min_fee=config.min_fee,
            max_fee=config.max_fee,
        )

    @classmethod
    def from_operator(cls, operator: PhoneOperator) -> "FeePolicy":
        return cls(
            fee_type=FeeType.parse(operator.fee_type),
            fee_value=operator.fee_value,
            min_fee=operator.fee_min,
            max_fee=operator.fee_max,
            rounding=FeeRounding.WHOLE,
        )

    @classmethod
    def from_topup_settings(cls, settings: PhoneTopupSettings) -> "FeePolicy":
        return cls(
            fee_type=FeeType.parse(settings.global_fee_type),
            fee_value=settings.global_fee_value,
            min_fee=settings.global_fee_min,
            max_fee=settings.global_fee_max,
            rounding=FeeRounding.WHOLE,
        )

    @classmethod
    def from_digital_card_settings(cls, settings: Optional[DigitalCardFeeSettings]) -> "FeePolicy":
        if settings is None:
            return cls.none()
        return cls(
            fee_type=FeeType.parse(settings.fee_type),
            fee_value=settings.fee_value,
            min_fee=settings.min_fee,
            max_fee=settings.max_fee,
        )

    def validate_for_range(self, min_amount: Numeric, max_amount: Numeric) -> "FeePolicy":
        """
        Reject a policy that would take more than the whole amount somewhere in
        [min_amount, max_amount]. With a percentage of at most 100, fee - amount
        never grows with the amount, so checking the lower bound is enough.
        """
        if not self.enabled:
            return self
        low = MonetaryDecimal.to_decimal(min_amount)
        high = MonetaryDecimal.to_decimal(max_amount)
        if low > high:
            raise FeePolicyError(f"Minimum amount {low} is above maximum amount {high}")
        if self.fee_value < ZERO or self.fixed_amount < ZERO:
            raise FeePolicyError("Fee values cannot be negative")
        if self.min_fee is not None and self.max_fee is not None and self.min_fee > self.max_fee:
            raise FeePolicyError(f"Minimum fee {self.min_fee} is above maximum fee {self.max_fee}")
        if self.fee_type == FeeType.PERCENTAGE and self.fee_value > Decimal("100"):
            raise FeePolicyError(f"Fee percentage {self.fee_value} is above 100")
        fee_at_low = compute_fee(low, self)
        if fee_at_low > low:
            raise FeePolicyError(
                f"Fee {fee_at_low} exceeds the minimum amount {low}; net would be negative"
            )
        return self


@dataclass(frozen=True)
class FeeBreakdown:
    amount: Decimal
    fee: Decimal
    net: Decimal
    total: Decimal
    policy: FeePolicy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "fee": self.fee,
            "net": self.net,
            "total": self.total,
            "fee_type": self.policy.fee_type.value,
            "fee_value": self.policy.fee_value,
        }


def _clamp(fee: Decimal, min_fee: Optional[Decimal], max_fee: Optional[Decimal]) -> Decimal:
    fee = max(fee, min_fee if min_fee is not None else ZERO)
    if max_fee is not None:
        fee = min(fee, max_fee)
    return fee


def _round(fee: Decimal, rounding: FeeRounding) -> Decimal:
    if rounding == FeeRounding.WHOLE:
        return MonetaryDecimal.round_dzd(fee)
    return MonetaryDecimal.quantize_dzd(fee)


def compute_fee(amount: Numeric, policy: FeePolicy) -> Decimal:
    """The clamped fee for amount >= 0; no net/total bookkeeping"""
    if not policy.enabled:
        return ZERO
    value = MonetaryDecimal.to_decimal(amount, "fee amount")
    if policy.fee_type == FeeType.PERCENTAGE:
        raw = MonetaryDecimal.percentage_of(value, policy.fee_value)
    else:
        raw = policy.fee_value
    raw += policy.fixed_amount
    return _round(_clamp(raw, policy.min_fee, policy.max_fee), policy.rounding)


def calculate_fee(
    amount: Numeric, policy: Optional[FeePolicy], style: FeeStyle = FeeStyle.DEPOSIT
) -> FeeBreakdown:
    """
    Full breakdown for a flow. Unparseable or non-positive amounts and
    missing/disabled policies give a zero fee. In deposit style the fee is
    capped at the amount so net never goes negative.
    """
    value = MonetaryDecimal.to_decimal(amount, "fee amount")
    policy = policy or FeePolicy.none()

    if value <= ZERO or not policy.enabled:
        fee = ZERO
    else:
        fee = compute_fee(value, policy)
        if style == FeeStyle.DEPOSIT and fee > value:
            logger.warning(f"⚠️ Fee {fee} capped at amount {value}")
            fee = value

    breakdown = FeeBreakdown(
        amount=value,
        fee=fee,
        net=value - fee,
        total=value + fee,
        policy=policy,
    )
    logger.debug(f"Fee breakdown ({style.value}): amount={value} fee={fee}")
    return breakdown


# ===== POLICY RESOLUTION =====

def resolve_topup_policy(
    operator: Optional[PhoneOperator], settings: Optional[PhoneTopupSettings]
) -> FeePolicy:
    """Operator fees when enabled, global fees otherwise, nothing without settings"""
    if settings is None:
        return FeePolicy.none()
    if settings.use_operator_fees:
        if operator is None:
            return FeePolicy.none()
        return FeePolicy.from_operator(operator)
    return FeePolicy.from_topup_settings(settings)


def effective_order_fee(
    stored_fee: Numeric, amount: Numeric, operator: Optional[PhoneOperator]
) -> Decimal:
    """Recorded fee of a top-up order; legacy rows stored 0 and are re-derived from the operator"""
    fee = MonetaryDecimal.to_decimal(stored_fee)
    if fee > ZERO or operator is None:
        return fee
    return calculate_fee(amount, FeePolicy.from_operator(operator), FeeStyle.TOPUP).fee


def betting_fee_policy() -> FeePolicy:
    return FeePolicy.percentage(
        Config.BETTING_FEE_PERCENTAGE,
        min_fee=Config.BETTING_MIN_FEE,
        max_fee=Config.BETTING_MAX_FEE,
    )


def flexy_fee_policy(fee_percentage: Numeric) -> FeePolicy:
    return FeePolicy.percentage(fee_percentage, rounding=FeeRounding.WHOLE)
