"""
Top-up Service - phone airtime, betting accounts and game packages

All three are paid from the wallet balance and settled by stored procedures;
the client previews fees (charged on top of the amount) and validates input.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from caching.simple_cache import SimpleCache, settings_cache
from config import Config
from models import PhoneOperator, PhoneTopupSettings, RpcResult
from services.backend_client import BackendClient, eq
from services.fee_service import (
    FeeBreakdown,
    FeeStyle,
    betting_fee_policy,
    calculate_fee,
    resolve_topup_policy,
)
from utils import messages
from utils.decimal_precision import Numeric, to_json_number
from utils.exception_handler import BackendError, ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

OPERATORS_CACHE_KEY = "phone_operators:active"
TOPUP_SETTINGS_KEY = "phone_topup_settings"


@dataclass
class TopupQuote:
    operator: PhoneOperator
    phone_number: str
    fee: FeeBreakdown

    @property
    def total(self) -> Decimal:
        return self.fee.total


class TopupService:
    def __init__(self, backend: BackendClient, cache: Optional[SimpleCache] = None):
        self.backend = backend
        self.cache = cache or settings_cache

    # ----- phone top-up -----

    async def list_operators(self) -> List[PhoneOperator]:
        async def load():
            rows = await self.backend.select(
                "phone_operators", {"is_active": eq(True)}, order="display_order.asc"
            )
            return [PhoneOperator.from_row(row) for row in rows]

        return await self.cache.get_or_load(OPERATORS_CACHE_KEY, load, Config.SETTINGS_CACHE_TTL)

    async def get_operator(self, operator_id: str) -> PhoneOperator:
        for operator in await self.list_operators():
            if operator.id == operator_id:
                return operator
        raise ValidationError(f"unknown operator {operator_id}", messages.GENERIC_ERROR)

    async def topup_settings(self) -> Optional[PhoneTopupSettings]:
        """None when no settings row exists (then top-ups carry no fee)"""
        cache_key = f"platform_settings:{TOPUP_SETTINGS_KEY}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            row = await self.backend.select_one(
                "platform_settings", {"setting_key": eq(TOPUP_SETTINGS_KEY)}, columns="setting_value"
            )
        except BackendError as e:
            logger.warning(f"⚠️ Phone top-up settings unavailable: {e}")
            return None
        if not row or not row.get("setting_value"):
            return None
        settings = PhoneTopupSettings.from_row(row["setting_value"])
        self.cache.set(cache_key, settings, Config.SETTINGS_CACHE_TTL)
        return settings

    async def preview_phone_topup(self, operator_id: str, phone_number: str, amount: Numeric) -> TopupQuote:
        operator = await self.get_operator(operator_id)
        phone = InputValidator.validate_mobile_phone(phone_number)
        value = InputValidator.validate_amount_range(amount, operator.min_amount or None, operator.max_amount)
        settings = await self.topup_settings()
        if settings is not None and not settings.enabled:
            raise ValidationError("phone top-up disabled", messages.GENERIC_ERROR)
        fee = calculate_fee(value, resolve_topup_policy(operator, settings), FeeStyle.TOPUP)
        return TopupQuote(operator=operator, phone_number=phone, fee=fee)

    async def create_phone_topup(
        self, operator_id: str, phone_number: str, amount: Numeric, notes: Optional[str] = None
    ) -> RpcResult:
        quote = await self.preview_phone_topup(operator_id, phone_number, amount)
        payload = await self.backend.rpc("process_phone_topup_order", {
            "_operator_id": quote.operator.id,
            "_phone_number": quote.phone_number,
            "_amount": to_json_number(quote.fee.amount),
            "_notes": notes or None,
        })
        result = RpcResult.from_payload("process_phone_topup_order", payload).raise_for_error()
        logger.info(f"✅ Phone top-up {quote.fee.amount} DZD to {quote.phone_number} ({quote.operator.name})")
        return result

    async def list_phone_topups(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.backend.select(
            "phone_topup_orders",
            {"user_id": eq(user_id)},
            columns="*,phone_operators(name,name_ar,slug)",
            order="created_at.desc",
            limit=limit,
        )

    # ----- betting -----

    @staticmethod
    def preview_betting_deposit(amount: Numeric) -> FeeBreakdown:
        """2% clamped to [10, 500]; 1000 DZD -> fee 20, net 980"""
        return calculate_fee(amount, betting_fee_policy(), FeeStyle.DEPOSIT)

    async def verify_betting_account(self, platform_id: str, player_id: str, promo_code: str = "") -> RpcResult:
        player_id = InputValidator.require_text(player_id, messages.GENERIC_ERROR)
        payload = await self.backend.rpc("verify_betting_account", {
            "_platform_id": platform_id,
            "_player_id": player_id,
            "_promo_code": promo_code or "",
        })
        return RpcResult.from_payload("verify_betting_account", payload).raise_for_error()

    async def create_betting_deposit(self, platform_id: str, player_id: str, amount: Numeric) -> RpcResult:
        player_id = InputValidator.require_text(player_id, messages.GENERIC_ERROR)
        value = InputValidator.validate_amount_range(amount)
        payload = await self.backend.rpc("process_betting_deposit", {
            "_platform_id": platform_id,
            "_player_id": player_id,
            "_amount": to_json_number(value),
        })
        result = RpcResult.from_payload("process_betting_deposit", payload).raise_for_error()
        logger.info(f"✅ Betting deposit {value} DZD for player {player_id}")
        return result

    # ----- games -----

    async def list_game_packages(self, platform_id: str) -> List[Dict[str, Any]]:
        return await self.backend.select(
            "game_packages", {"platform_id": eq(platform_id), "is_active": eq(True)}, order="price.asc"
        )

    async def create_game_topup(
        self,
        platform_id: str,
        package_id: str,
        player_id: str,
        amount: Numeric,
        notes: Optional[str] = None,
    ) -> RpcResult:
        player_id = InputValidator.require_text(player_id, messages.GENERIC_ERROR)
        value = InputValidator.validate_amount_range(amount)
        payload = await self.backend.rpc("process_game_topup_order", {
            "_amount": to_json_number(value),
            "_notes": notes or None,
            "_package_id": package_id,
            "_platform_id": platform_id,
            "_player_id": player_id,
        })
        result = RpcResult.from_payload("process_game_topup_order", payload).raise_for_error()
        logger.info(f"✅ Game top-up {value} DZD for player {player_id}")
        return result
