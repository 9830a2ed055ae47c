"""
Flexy Deposit Service - wallet top-up by Mobilis airtime transfer

Flow: the user picks a base amount, gets a unique amount to send to the
platform's receiving number, sends it, uploads the confirmation SMS screenshot
and a pending deposit is created for admin review. The deposit's amount is the
unique amount; transaction_id packs "sender_phone|base|unique" so admins can
match the incoming airtime.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from caching.simple_cache import SimpleCache, settings_cache
from config import Config
from models import Deposit, FlexyDepositSettings, PaymentMethod, ReceiptFile, RequestStatus
from services.admin_service import require_admin
from services.backend_client import BackendClient, eq, gte
from services.fee_service import FeeBreakdown, FeeStyle, calculate_fee, flexy_fee_policy
from services.unique_amount_service import UniqueAmountService, start_of_today
from utils import messages
from utils.decimal_precision import MonetaryDecimal, Numeric, to_json_number
from utils.exception_handler import BackendError, UniqueAmountUnavailableError, ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

SETTINGS_KEY = "flexy_deposit_settings"
SETTINGS_CACHE_KEY = f"platform_settings:{SETTINGS_KEY}"


def default_settings() -> FlexyDepositSettings:
    return FlexyDepositSettings(
        enabled=Config.FLEXY_ENABLED,
        receiving_number=Config.FLEXY_RECEIVING_NUMBER,
        fee_percentage=Config.FLEXY_FEE_PERCENTAGE,
        min_amount=Config.FLEXY_MIN_AMOUNT,
        max_amount=Config.FLEXY_MAX_AMOUNT,
        daily_limit=Config.FLEXY_DAILY_LIMIT,
    )


@dataclass
class FlexyQuote:
    """What the user must send and what they will be credited"""
    base_amount: Decimal
    unique_amount: Decimal
    fee: FeeBreakdown
    receiving_number: str

    @property
    def net_amount(self) -> Decimal:
        return self.fee.net


class FlexyDepositService:
    def __init__(
        self,
        backend: BackendClient,
        unique_amounts: Optional[UniqueAmountService] = None,
        cache: Optional[SimpleCache] = None,
        notifications=None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.backend = backend
        self.unique_amounts = unique_amounts or UniqueAmountService(backend, clock=clock)
        self.cache = cache or settings_cache
        self.notifications = notifications
        self.clock = clock

    # ----- settings -----

    async def get_settings(self) -> FlexyDepositSettings:
        """Stored settings merged over defaults; defaults when the lookup fails"""
        cached = self.cache.get(SETTINGS_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            row = await self.backend.select_one(
                "platform_settings", {"setting_key": eq(SETTINGS_KEY)}, columns="setting_value"
            )
        except BackendError as e:
            logger.warning(f"⚠️ Flexy settings unavailable, using defaults: {e}")
            return default_settings()

        settings = FlexyDepositSettings.from_row(
            row.get("setting_value") if row else None, defaults=default_settings()
        )
        self.cache.set(SETTINGS_CACHE_KEY, settings, Config.SETTINGS_CACHE_TTL)
        return settings

    async def update_settings(self, admin_id: str, settings: FlexyDepositSettings) -> FlexyDepositSettings:
        await require_admin(self.backend, admin_id)
        flexy_fee_policy(settings.fee_percentage).validate_for_range(
            settings.min_amount, settings.max_amount
        )
        if settings.daily_limit < 0:
            raise ValidationError("daily limit cannot be negative", messages.INVALID_AMOUNT)
        if settings.receiving_number:
            settings.receiving_number = InputValidator.validate_mobilis_phone(settings.receiving_number)

        await self.backend.insert(
            "platform_settings",
            {"setting_key": SETTINGS_KEY, "setting_value": settings.to_row()},
            upsert=True,
            on_conflict="setting_key",
        )
        self.cache.delete(SETTINGS_CACHE_KEY)
        logger.info(f"✅ Flexy settings updated by admin {admin_id}")
        return settings

    # ----- quotes -----

    @staticmethod
    def calculate_fee(amount: Numeric, settings: FlexyDepositSettings) -> FeeBreakdown:
        """Fee on the unique amount, rounded to whole dinars; net = amount - fee"""
        return calculate_fee(amount, flexy_fee_policy(settings.fee_percentage), FeeStyle.DEPOSIT)

    async def get_today_count(self, user_id: str) -> int:
        return await self.backend.count(
            "deposits",
            {
                "user_id": eq(user_id),
                "payment_method": eq(PaymentMethod.FLEXY_MOBILIS.value),
                "created_at": gte(start_of_today(self.clock())),
            },
        )

    async def _check_can_deposit(self, user_id: Optional[str], base: Decimal) -> FlexyDepositSettings:
        if not user_id:
            raise ValidationError("not logged in", messages.LOGIN_REQUIRED)
        settings = await self.get_settings()
        if not settings.enabled:
            raise ValidationError("flexy disabled", messages.FLEXY_DISABLED)
        if not settings.receiving_number:
            raise ValidationError("no receiving number configured", messages.FLEXY_NO_RECEIVING_NUMBER)
        if base < settings.min_amount or base > settings.max_amount:
            raise ValidationError(
                f"base {base} outside {settings.min_amount}-{settings.max_amount}",
                messages.AMOUNT_OUT_OF_RANGE.format(
                    min=int(settings.min_amount), max=int(settings.max_amount)
                ),
            )
        today = await self.get_today_count(user_id)
        if today >= settings.daily_limit:
            raise ValidationError(
                f"daily limit {settings.daily_limit} reached",
                messages.FLEXY_DAILY_LIMIT.format(limit=settings.daily_limit),
            )
        return settings

    async def prepare_quote(self, user_id: Optional[str], base_amount: Numeric) -> FlexyQuote:
        """Validate the base amount and pick a free unique amount to send"""
        base = MonetaryDecimal.round_dzd(base_amount)
        settings = await self._check_can_deposit(user_id, base)
        unique = await self.unique_amounts.get_available_unique_amount(base)
        quote = FlexyQuote(
            base_amount=base,
            unique_amount=unique,
            fee=self.calculate_fee(unique, settings),
            receiving_number=settings.receiving_number,
        )
        logger.info(f"📱 Flexy quote for user {user_id}: base {base} -> unique {unique}, net {quote.net_amount}")
        return quote

    # ----- submission -----

    async def _is_duplicate(self, user_id: str, unique_amount: Decimal) -> bool:
        since = self.clock() - timedelta(minutes=Config.DUPLICATE_WINDOW_MINUTES)
        row = await self.backend.select_one(
            "deposits",
            {
                "user_id": eq(user_id),
                "payment_method": eq(PaymentMethod.FLEXY_MOBILIS.value),
                "amount": eq(int(unique_amount)),
                "created_at": gte(since),
            },
            columns="id",
        )
        return row is not None

    async def _check_still_unique(self, unique: Decimal) -> None:
        """The quote may be old by now; another pending deposit could have taken the amount"""
        try:
            available = await self.unique_amounts.is_amount_available(unique)
        except BackendError as e:
            logger.error(f"❌ Unique amount recheck failed for {unique}: {e}")
            raise UniqueAmountUnavailableError(
                f"could not recheck {unique}", messages.UNIQUE_AMOUNT_CHECK_FAILED
            ) from e
        if not available:
            logger.warning(f"⚠️ Flexy amount {unique} was taken since it was quoted")
            raise UniqueAmountUnavailableError(f"{unique} already pending", messages.UNIQUE_AMOUNT_TAKEN)

    async def upload_receipt(self, user_id: str, receipt: ReceiptFile) -> str:
        path = f"{user_id}/flexy_{int(time.time() * 1000)}.{receipt.extension}"
        try:
            await self.backend.upload(Config.RECEIPT_BUCKET, path, receipt.content, receipt.content_type)
        except BackendError as e:
            logger.error(f"❌ Flexy receipt upload failed for user {user_id}: {e}")
            raise ValidationError(f"receipt upload failed: {e}", messages.RECEIPT_UPLOAD_FAILED) from e
        return self.backend.public_url(Config.RECEIPT_BUCKET, path)

    async def create_deposit(
        self,
        user_id: Optional[str],
        base_amount: Numeric,
        unique_amount: Numeric,
        sender_phone: str,
        receipt: Optional[ReceiptFile],
    ) -> Deposit:
        base = MonetaryDecimal.round_dzd(base_amount)
        unique = MonetaryDecimal.round_dzd(unique_amount)
        if unique <= 0:
            raise ValidationError("unique amount missing", messages.INVALID_AMOUNT)

        settings = await self._check_can_deposit(user_id, base)
        phone = InputValidator.validate_mobilis_phone(sender_phone)
        InputValidator.validate_receipt(receipt)

        if await self._is_duplicate(user_id, unique):
            raise ValidationError(f"duplicate flexy deposit {unique}", messages.FLEXY_DUPLICATE)
        await self._check_still_unique(unique)

        receipt_url = await self.upload_receipt(user_id, receipt)

        try:
            rows = await self.backend.insert("deposits", {
                "user_id": user_id,
                "amount": to_json_number(unique),
                "payment_method": PaymentMethod.FLEXY_MOBILIS.value,
                "transaction_id": f"{phone}|{int(base)}|{int(unique)}",
                "receipt_image": receipt_url,
                "status": RequestStatus.PENDING.value,
            })
        except BackendError as e:
            logger.error(f"❌ Flexy deposit insert failed for user {user_id}: {e}")
            raise
        if not rows:
            raise BackendError("deposit insert returned no row", user_message=messages.FLEXY_SUBMIT_FAILED)

        deposit = Deposit.from_row(rows[0])
        fee = self.calculate_fee(unique, settings)
        logger.info(f"✅ Flexy deposit {deposit.id} created: {unique} DZD (net {fee.net}) from {phone}")

        if self.notifications:
            self.notifications.fire("new_deposit", {
                "id": deposit.id,
                "amount": unique,
                "payment_method": PaymentMethod.FLEXY_MOBILIS.value,
                "sender_phone": phone,
                "net_amount": fee.net,
            })
        return deposit
