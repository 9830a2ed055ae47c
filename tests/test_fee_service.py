"""
Fee calculator tests
Percentage and fixed fees with min/max clamps, deposit vs top-up style,
policy validation and top-up policy resolution
"""

from decimal import Decimal

import pytest

from models import FeeConfig, FeeType, PhoneOperator, PhoneTopupSettings
from services.fee_service import (
    FeePolicy,
    FeeRounding,
    FeeStyle,
    betting_fee_policy,
    calculate_fee,
    compute_fee,
    effective_order_fee,
    flexy_fee_policy,
    resolve_topup_policy,
)
from utils.decimal_precision import MonetaryDecimal
from utils.exception_handler import FeePolicyError


def clamp(value, low, high):
    value = max(value, low if low is not None else Decimal("0"))
    return min(value, high) if high is not None else value


AMOUNTS = ["0", "1", "99.99", "250", "1000", "12345.67", "999999"]


class TestPercentageFee:
    """fee == clamp(amount * p / 100, min, max)"""

    @pytest.mark.parametrize("amount", AMOUNTS)
    @pytest.mark.parametrize("percentage,min_fee,max_fee", [
        ("0", None, None),
        ("2", "10", "500"),
        ("5", None, None),
        ("1.5", "0", "100"),
        ("100", "5", None),
    ])
    def test_matches_clamped_percentage(self, amount, percentage, min_fee, max_fee):
        policy = FeePolicy.percentage(percentage, min_fee=min_fee, max_fee=max_fee)
        expected = clamp(
            Decimal(amount) * Decimal(percentage) / Decimal("100"),
            MonetaryDecimal.to_optional_decimal(min_fee),
            MonetaryDecimal.to_optional_decimal(max_fee),
        )
        assert compute_fee(amount, policy) == MonetaryDecimal.quantize_dzd(expected)

    def test_betting_rule_example(self):
        breakdown = calculate_fee(1000, betting_fee_policy(), FeeStyle.DEPOSIT)
        assert breakdown.fee == Decimal("20")
        assert breakdown.net == Decimal("980")

    def test_betting_rule_clamps(self):
        assert calculate_fee(100, betting_fee_policy()).fee == Decimal("10")
        assert calculate_fee(100000, betting_fee_policy()).fee == Decimal("500")


class TestFixedFee:
    """fee == clamp(f, min, max) whatever the amount"""

    @pytest.mark.parametrize("amount", ["1", "1000", "50000"])
    def test_independent_of_amount(self, amount):
        assert compute_fee(amount, FeePolicy.fixed("25")) == Decimal("25")
        assert compute_fee(amount, FeePolicy.fixed("25", min_fee="30")) == Decimal("30")
        assert compute_fee(amount, FeePolicy.fixed("25", max_fee="20")) == Decimal("20")


class TestFeeStyles:

    def test_deposit_style_gives_net(self):
        breakdown = calculate_fee(2000, FeePolicy.percentage("5"), FeeStyle.DEPOSIT)
        assert breakdown.fee == Decimal("100")
        assert breakdown.net == Decimal("1900")

    def test_topup_style_gives_total(self):
        breakdown = calculate_fee(2000, FeePolicy.percentage("5"), FeeStyle.TOPUP)
        assert breakdown.total == Decimal("2100")

    def test_deposit_fee_capped_at_amount(self):
        breakdown = calculate_fee(100, FeePolicy.fixed("500"), FeeStyle.DEPOSIT)
        assert breakdown.fee == Decimal("100")
        assert breakdown.net == Decimal("0")

    @pytest.mark.parametrize("bad_input", [None, "", "abc", "NaN", -50])
    def test_invalid_or_negative_amount_is_zero_fee(self, bad_input):
        breakdown = calculate_fee(bad_input, FeePolicy.fixed("30"))
        assert breakdown.fee == Decimal("0")

    def test_disabled_policy_charges_nothing(self):
        assert calculate_fee(5000, FeePolicy.none()).fee == Decimal("0")
        assert calculate_fee(5000, None).fee == Decimal("0")

    def test_whole_dinar_rounding(self):
        breakdown = calculate_fee(1013, flexy_fee_policy("5"))
        assert breakdown.fee == Decimal("51")
        assert breakdown.net == Decimal("962")

    def test_cents_rounding(self):
        policy = FeePolicy.percentage("1.5", rounding=FeeRounding.CENTS)
        assert compute_fee("333", policy) == Decimal("5.00")
        assert compute_fee("337", policy) == Decimal("5.06")

    def test_platform_fee_config_adds_fixed_part(self):
        config = FeeConfig(enabled=True, percentage=Decimal("1"), fixed_amount=Decimal("10"))
        assert compute_fee(2000, FeePolicy.from_fee_config(config)) == Decimal("30")

    def test_disabled_platform_fee_config(self):
        config = FeeConfig(enabled=False, percentage=Decimal("3"))
        assert not FeePolicy.from_fee_config(config).enabled


class TestNetNeverNegative:
    """A policy accepted for [min, max] keeps net >= 0 on the whole range"""

    @pytest.mark.parametrize("policy", [
        FeePolicy.percentage("5", rounding=FeeRounding.WHOLE),
        FeePolicy.percentage("2", min_fee="10", max_fee="500"),
        FeePolicy.fixed("50"),
        FeePolicy.percentage("100"),
    ])
    def test_validated_policies_keep_net_non_negative(self, policy):
        policy.validate_for_range(100, 5000)
        for amount in range(100, 5001, 37):
            assert calculate_fee(amount, policy, FeeStyle.DEPOSIT).net >= 0

    def test_fixed_fee_above_minimum_amount_rejected(self):
        with pytest.raises(FeePolicyError):
            FeePolicy.fixed("150").validate_for_range(100, 5000)

    def test_min_fee_above_minimum_amount_rejected(self):
        with pytest.raises(FeePolicyError):
            FeePolicy.percentage("1", min_fee="200").validate_for_range(100, 5000)

    def test_percentage_above_hundred_rejected(self):
        with pytest.raises(FeePolicyError):
            FeePolicy.percentage("120").validate_for_range(100, 5000)

    def test_inverted_bounds_rejected(self):
        with pytest.raises(FeePolicyError):
            FeePolicy.percentage("1", min_fee="50", max_fee="10").validate_for_range(100, 5000)
        with pytest.raises(FeePolicyError):
            FeePolicy.percentage("1").validate_for_range(5000, 100)


class TestTopupPolicyResolution:

    @pytest.fixture
    def operator(self):
        return PhoneOperator(
            id="op-1", name="Mobilis", slug="mobilis",
            fee_type="percentage", fee_value=Decimal("2"), fee_min=Decimal("0"),
        )

    def test_no_settings_means_no_fee(self, operator):
        assert not resolve_topup_policy(operator, None).enabled

    def test_operator_fees(self, operator):
        policy = resolve_topup_policy(operator, PhoneTopupSettings(use_operator_fees=True))
        assert policy.fee_type == FeeType.PERCENTAGE
        assert policy.fee_value == Decimal("2")
        assert policy.rounding == FeeRounding.WHOLE

    def test_global_fees(self, operator):
        settings = PhoneTopupSettings(
            use_operator_fees=False, global_fee_type="fixed", global_fee_value=Decimal("15")
        )
        policy = resolve_topup_policy(operator, settings)
        assert compute_fee(1000, policy) == Decimal("15")

    def test_stored_fee_wins(self, operator):
        assert effective_order_fee("35", 1000, operator) == Decimal("35")

    def test_legacy_zero_fee_rederived_from_operator(self, operator):
        assert effective_order_fee("0", 1000, operator) == Decimal("20")
        assert effective_order_fee(0, 1000, None) == Decimal("0")
