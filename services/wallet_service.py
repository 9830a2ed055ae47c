"""
Wallet Service - balance, deposits, withdrawals and peer transfers

Balances are authoritative on the backend: get_balance() asks the backend to
recalculate before reading. Fee previews use the platform fee settings
(deposit_fees / withdrawal_fees / transfer_fees).
"""

import logging
import time
from decimal import Decimal
from typing import Dict, List, Optional

from caching.simple_cache import SimpleCache, settings_cache
from config import Config
from models import (
    Deposit,
    FeeConfig,
    ReceiptFile,
    RequestStatus,
    RpcResult,
    Transfer,
    UserBalance,
    Withdrawal,
    WithdrawalMethod,
)
from services.backend_client import BackendClient, eq, in_, or_
from services.fee_service import FeeBreakdown, FeePolicy, FeeStyle, calculate_fee
from utils import messages
from utils.decimal_precision import MonetaryDecimal, Numeric, to_json_number
from utils.exception_handler import BackendError, ValidationError
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

FEE_SETTING_KEYS = ("deposit_fees", "withdrawal_fees", "transfer_fees")
FEE_CACHE_KEY = "platform_settings:fees"
WITHDRAWAL_METHODS_KEY = "withdrawal_methods"

# withdrawal methods paid out to an account vs. in cash at an agent
ACCOUNT_METHODS = {
    WithdrawalMethod.OPAY.value,
    WithdrawalMethod.BARID_BANK.value,
    WithdrawalMethod.CCP.value,
    WithdrawalMethod.ALBARAKA.value,
    WithdrawalMethod.BADR.value,
}
DEFAULT_DISABLED_METHODS = {WithdrawalMethod.ALBARAKA.value, WithdrawalMethod.BADR.value}


class WalletService:
    def __init__(
        self,
        backend: BackendClient,
        cache: Optional[SimpleCache] = None,
        notifications=None,
    ):
        self.backend = backend
        self.cache = cache or settings_cache
        self.notifications = notifications

    # ----- balance -----

    async def get_balance(self, user_id: str) -> UserBalance:
        try:
            await self.backend.rpc("recalculate_user_balance", {"_user_id": user_id})
        except BackendError as e:
            # stale balance is still better than none
            logger.warning(f"⚠️ Balance recalculation failed for {user_id}: {e}")

        row = await self.backend.select_one("user_balances", {"user_id": eq(user_id)})
        if row is None:
            rows = await self.backend.insert("user_balances", {"user_id": user_id, "balance": 0})
            row = rows[0] if rows else {"user_id": user_id, "balance": 0}
            logger.info(f"🆕 Created zero balance row for user {user_id}")
        return UserBalance.from_row(row)

    async def _require_funds(self, user_id: str, needed: Decimal) -> UserBalance:
        balance = await self.get_balance(user_id)
        if balance.balance < needed:
            raise ValidationError(
                f"balance {balance.balance} below required {needed}", messages.INSUFFICIENT_BALANCE
            )
        return balance

    # ----- fee settings -----

    async def fee_settings(self) -> Dict[str, FeeConfig]:
        cached = self.cache.get(FEE_CACHE_KEY)
        if cached is not None:
            return cached

        rows = await self.backend.select(
            "platform_settings",
            {"setting_key": in_(FEE_SETTING_KEYS)},
            columns="setting_key,setting_value",
        )
        settings = {key: FeeConfig() for key in FEE_SETTING_KEYS}
        for row in rows:
            key = row.get("setting_key")
            if key in settings:
                settings[key] = FeeConfig.from_row(row.get("setting_value"))
        self.cache.set(FEE_CACHE_KEY, settings, Config.SETTINGS_CACHE_TTL)
        return settings

    async def preview_fee(self, kind: str, amount: Numeric) -> FeeBreakdown:
        """kind is deposit / withdrawal / transfer"""
        settings = await self.fee_settings()
        policy = FeePolicy.from_fee_config(settings.get(f"{kind}_fees"))
        style = FeeStyle.DEPOSIT if kind == "deposit" else FeeStyle.TOPUP
        return calculate_fee(amount, policy, style)

    # ----- deposits -----

    async def create_deposit(
        self,
        user_id: str,
        amount: Numeric,
        payment_method: str,
        receipt: ReceiptFile,
        transaction_id: Optional[str] = None,
    ) -> Deposit:
        value = InputValidator.validate_amount_range(amount)
        InputValidator.validate_receipt(receipt)
        path = f"{user_id}/{payment_method}_{int(time.time() * 1000)}.{receipt.extension}"
        await self.backend.upload(Config.RECEIPT_BUCKET, path, receipt.content, receipt.content_type)

        rows = await self.backend.insert("deposits", {
            "user_id": user_id,
            "amount": to_json_number(value),
            "payment_method": payment_method,
            "transaction_id": transaction_id,
            "receipt_image": self.backend.public_url(Config.RECEIPT_BUCKET, path),
            "status": RequestStatus.PENDING.value,
        })
        if not rows:
            raise BackendError("deposit insert returned no row")
        deposit = Deposit.from_row(rows[0])
        logger.info(f"✅ Deposit {deposit.id} created: {value} DZD via {payment_method}")
        if self.notifications:
            self.notifications.fire("new_deposit", {
                "id": deposit.id, "amount": value, "payment_method": payment_method,
            })
        return deposit

    async def list_deposits(self, user_id: str, limit: int = 20) -> List[Deposit]:
        rows = await self.backend.select(
            "deposits", {"user_id": eq(user_id)}, order="created_at.desc", limit=limit
        )
        return [Deposit.from_row(row) for row in rows]

    # ----- withdrawals -----

    async def withdrawal_method_enabled(self, method: str) -> bool:
        row = await self.backend.select_one(
            "platform_settings", {"setting_key": eq(WITHDRAWAL_METHODS_KEY)}, columns="setting_value"
        )
        settings = (row or {}).get("setting_value") or {}
        entry = settings.get(method) if isinstance(settings, dict) else None
        if isinstance(entry, dict) and "enabled" in entry:
            return bool(entry["enabled"])
        return method not in DEFAULT_DISABLED_METHODS

    async def create_withdrawal(
        self,
        user_id: str,
        amount: Numeric,
        method: str,
        account_number: Optional[str] = None,
        account_holder_name: Optional[str] = None,
        cash_location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Withdrawal:
        value = InputValidator.validate_amount_range(amount)
        valid_methods = {m.value for m in WithdrawalMethod}
        if method not in valid_methods or not await self.withdrawal_method_enabled(method):
            raise ValidationError(f"withdrawal method {method} unavailable", messages.WITHDRAWAL_METHOD_DISABLED)

        if method in ACCOUNT_METHODS:
            account_number = InputValidator.require_text(account_number, messages.WITHDRAWAL_ACCOUNT_REQUIRED)
            account_holder_name = InputValidator.require_text(account_holder_name, messages.WITHDRAWAL_ACCOUNT_REQUIRED)
        else:
            cash_location = InputValidator.require_text(cash_location, messages.WITHDRAWAL_LOCATION_REQUIRED)

        fee = await self.preview_fee("withdrawal", value)
        await self._require_funds(user_id, fee.total)

        rows = await self.backend.insert("withdrawals", {
            "user_id": user_id,
            "amount": to_json_number(value),
            "withdrawal_method": method,
            "account_number": account_number,
            "account_holder_name": account_holder_name,
            "cash_location": cash_location,
            "notes": notes,
        })
        if not rows:
            raise BackendError("withdrawal insert returned no row")
        withdrawal = Withdrawal.from_row(rows[0])
        logger.info(f"✅ Withdrawal {withdrawal.id} created: {value} DZD via {method}")
        if self.notifications:
            self.notifications.fire("new_withdrawal", {
                "id": withdrawal.id, "amount": value, "withdrawal_method": method,
            })
        return withdrawal

    async def list_withdrawals(self, user_id: str, limit: int = 20) -> List[Withdrawal]:
        rows = await self.backend.select(
            "withdrawals", {"user_id": eq(user_id)}, order="created_at.desc", limit=limit
        )
        return [Withdrawal.from_row(row) for row in rows]

    # ----- transfers -----

    async def process_transfer(
        self, user_id: str, recipient_phone: str, amount: Numeric, note: Optional[str] = None
    ) -> RpcResult:
        phone = InputValidator.validate_recipient_phone(recipient_phone)
        value = InputValidator.validate_amount_range(amount)
        fee = await self.preview_fee("transfer", value)
        await self._require_funds(user_id, fee.total)

        payload = await self.backend.rpc("process_transfer", {
            "recipient_phone_param": phone,
            "amount_param": to_json_number(value),
            "note_param": note or None,
        })
        result = RpcResult.from_payload("process_transfer", payload).raise_for_error()
        logger.info(f"✅ Transfer of {value} DZD from {user_id} to {phone}")
        return result

    async def list_transfers(self, user_id: str, limit: int = 20) -> List[Transfer]:
        rows = await self.backend.select(
            "transfers",
            {"or": or_(f"sender_id.eq.{user_id}", f"recipient_id.eq.{user_id}")},
            order="created_at.desc",
            limit=limit,
        )
        return [Transfer.from_row(row) for row in rows]

    async def find_profile_by_phone(self, phone: str) -> Optional[Dict]:
        return await self.backend.select_one(
            "profiles", {"phone": eq(InputValidator.normalize_phone(phone))},
            columns="user_id,full_name,phone",
        )
