"""
Shop Service - gift cards, digital cards, AliExpress orders and card delivery
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from caching.simple_cache import SimpleCache, settings_cache
from config import Config
from models import DigitalCardFeeSettings, RequestStatus, RpcResult
from services.backend_client import BackendClient, in_
from services.fee_service import FeeBreakdown, FeePolicy, FeeStyle, calculate_fee
from utils import messages
from utils.decimal_precision import MonetaryDecimal, Numeric, to_json_number
from utils.exception_handler import BackendError, ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

GIFT_CARD_MIN_DIGITS = 11
GIFT_CARD_MAX_DIGITS = 12
ALIEXPRESS_URL_PATTERN = re.compile(r"^https?://([a-z0-9-]+\.)*aliexpress\.[a-z.]+/", re.IGNORECASE)


def normalize_gift_card_code(code: Optional[str]) -> str:
    digits = re.sub(r"\D", "", code or "")[:GIFT_CARD_MAX_DIGITS]
    if len(digits) < GIFT_CARD_MIN_DIGITS:
        raise ValidationError(f"gift card code has {len(digits)} digits", messages.GIFT_CARD_INVALID)
    return digits


@dataclass
class AliExpressQuote:
    price_usd: Decimal
    shipping_usd: Decimal
    exchange_rate: Decimal

    @property
    def total_usd(self) -> Decimal:
        return self.price_usd + self.shipping_usd

    @property
    def total_dzd(self) -> Decimal:
        return MonetaryDecimal.quantize_dzd(self.total_usd * self.exchange_rate)

    @property
    def service_fee_dzd(self) -> Decimal:
        return Decimal("0")

    @property
    def final_total_dzd(self) -> Decimal:
        return self.total_dzd + self.service_fee_dzd


class ShopService:
    def __init__(self, backend: BackendClient, cache: Optional[SimpleCache] = None):
        self.backend = backend
        self.cache = cache or settings_cache

    # ----- gift cards -----

    async def redeem_gift_card(self, user_id: str, card_code: str) -> RpcResult:
        code = normalize_gift_card_code(card_code)
        payload = await self.backend.rpc("redeem_gift_card", {"_card_code": code, "_user_id": user_id})
        result = RpcResult.from_payload("redeem_gift_card", payload).raise_for_error()
        logger.info(f"🎁 Gift card redeemed by {user_id}: {result.get_decimal('amount')} DZD")
        return result

    # ----- digital cards -----

    async def list_card_types(self) -> List[Dict[str, Any]]:
        return await self.backend.select("digital_card_types", order="display_order.asc")

    async def digital_card_fee_settings(self) -> Optional[DigitalCardFeeSettings]:
        """Latest settings row, None when none exists"""
        row = await self.backend.select_one(
            "digital_card_fee_settings", order="created_at.desc"
        )
        return DigitalCardFeeSettings.from_row(row) if row else None

    async def preview_digital_card(self, amount_usd: Numeric, exchange_rate: Numeric) -> FeeBreakdown:
        usd = InputValidator.validate_amount_range(amount_usd)
        rate = MonetaryDecimal.to_decimal(exchange_rate)
        if rate <= 0:
            raise ValidationError("card type has no exchange rate", messages.GENERIC_ERROR)
        settings = await self.digital_card_fee_settings()
        amount_dzd = MonetaryDecimal.quantize_dzd(usd * rate)
        return calculate_fee(amount_dzd, FeePolicy.from_digital_card_settings(settings), FeeStyle.TOPUP)

    async def purchase_digital_card(self, card_type_id: str, account_id: str, amount_usd: Numeric) -> RpcResult:
        account_id = InputValidator.require_text(account_id, messages.GENERIC_ERROR)
        usd = InputValidator.validate_amount_range(amount_usd)
        payload = await self.backend.rpc("process_digital_card_order", {
            "_card_type_id": card_type_id,
            "_account_id": account_id,
            "_amount_usd": to_json_number(usd),
        })
        result = RpcResult.from_payload("process_digital_card_order", payload).raise_for_error()
        logger.info(f"💳 Digital card order ${usd} for account {account_id}")
        return result

    # ----- AliExpress -----

    async def aliexpress_settings(self) -> Dict[str, Decimal]:
        cache_key = "platform_settings:aliexpress"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        rows = await self.backend.select(
            "platform_settings",
            {"setting_key": in_(["aliexpress_exchange_rate", "aliexpress_default_shipping_fee"])},
            columns="setting_key,setting_value",
        )
        values = {row.get("setting_key"): row.get("setting_value") for row in rows}
        rate = MonetaryDecimal.to_decimal(values.get("aliexpress_exchange_rate"))
        shipping = MonetaryDecimal.to_decimal(values.get("aliexpress_default_shipping_fee"))
        settings = {
            "exchange_rate": rate if rate > 0 else Config.ALIEXPRESS_DEFAULT_EXCHANGE_RATE,
            "default_shipping_fee": shipping if shipping > 0 else Config.ALIEXPRESS_DEFAULT_SHIPPING_USD,
        }
        self.cache.set(cache_key, settings, Config.SETTINGS_CACHE_TTL)
        return settings

    async def scrape_aliexpress(self, url: str) -> Dict[str, Any]:
        """Product title/image/price through the scrape-aliexpress function"""
        url = (url or "").strip()
        if not ALIEXPRESS_URL_PATTERN.match(url):
            raise ValidationError(f"not an AliExpress url: {url!r}", "الرابط غير صالح")
        payload = await self.backend.invoke("scrape-aliexpress", {"url": url})
        if not isinstance(payload, dict):
            raise BackendError("scrape-aliexpress returned no product")
        if payload.get("error"):
            raise BackendError(f"scrape-aliexpress: {payload['error']}", user_message=str(payload["error"]))
        return payload

    async def aliexpress_quote(
        self, price_usd: Numeric, shipping_usd: Numeric = None, exchange_rate: Numeric = None
    ) -> AliExpressQuote:
        settings = await self.aliexpress_settings()
        price = InputValidator.validate_amount_range(price_usd)
        shipping = (
            MonetaryDecimal.to_decimal(shipping_usd)
            if shipping_usd is not None
            else settings["default_shipping_fee"]
        )
        if shipping < 0:
            raise ValidationError("negative shipping", messages.INVALID_AMOUNT)
        rate = MonetaryDecimal.to_decimal(exchange_rate) if exchange_rate is not None else settings["exchange_rate"]
        return AliExpressQuote(price_usd=price, shipping_usd=shipping, exchange_rate=rate)

    async def create_aliexpress_order(
        self,
        user_id: str,
        product_url: str,
        product_title: str,
        quote: AliExpressQuote,
        product_image: Optional[str] = None,
    ) -> Dict[str, Any]:
        rows = await self.backend.insert("aliexpress_orders", {
            "user_id": user_id,
            "product_url": product_url,
            "product_title": product_title,
            "product_image": product_image,
            "price_usd": to_json_number(quote.price_usd),
            "shipping_cost_usd": to_json_number(quote.shipping_usd),
            "total_usd": to_json_number(quote.total_usd),
            "exchange_rate": to_json_number(quote.exchange_rate),
            "total_dzd": to_json_number(quote.total_dzd),
            "service_fee_percentage": 0,
            "service_fee_dzd": 0,
            "final_total_dzd": to_json_number(quote.final_total_dzd),
            "status": RequestStatus.PENDING.value,
        })
        if not rows:
            raise BackendError("aliexpress order insert returned no row")
        logger.info(f"🛒 AliExpress order for {user_id}: {quote.final_total_dzd} DZD")
        return rows[0]

    # ----- card delivery -----

    async def delivery_fee(self, wilaya: Optional[str] = None) -> Decimal:
        """Wilaya override, else the configured default, else 400 DZD"""
        try:
            settings = await self.backend.select_one("delivery_fee_settings")
        except BackendError as e:
            logger.warning(f"⚠️ Delivery fee settings unavailable: {e}")
            settings = None
        if not settings:
            return Config.DEFAULT_DELIVERY_FEE
        overrides = settings.get("wilaya_specific_fees") or {}
        if wilaya and overrides.get(wilaya):
            return MonetaryDecimal.to_decimal(overrides[wilaya])
        default_fee = MonetaryDecimal.to_decimal(settings.get("default_fee"))
        return default_fee if default_fee > 0 else Config.DEFAULT_DELIVERY_FEE
