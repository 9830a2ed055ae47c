"""
Admin Service - approval queues for pending financial requests

Every decision goes through a backend stored procedure; the client only checks
the caller's role, requires a reason for rejections and shapes the arguments.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from caching.simple_cache import SimpleCache, settings_cache
from models import AppRole, Deposit, PendingQueue, RequestStatus, RpcResult, Withdrawal
from services.backend_client import BackendClient, eq
from utils import messages
from utils.decimal_precision import MonetaryDecimal, Numeric, to_json_number
from utils.exception_handler import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)

# queue name -> table holding its pending rows
PENDING_QUEUES = {
    "deposits": "deposits",
    "withdrawals": "withdrawals",
    "verifications": "verification_requests",
    "merchants": "merchant_requests",
    "betting": "betting_transactions",
    "digital_cards": "digital_card_orders",
    "game_topups": "game_topup_orders",
    "phone_topups": "phone_topup_orders",
    "diaspora": "diaspora_transfers",
}

# cache keys filled from platform_settings and phone_operators
REFERENCE_CACHE_PREFIXES = ("platform_settings:", "phone_operators:")


async def has_role(backend: BackendClient, user_id: str, role: AppRole = AppRole.ADMIN) -> bool:
    """Backend has_role(_role, _user_id); anything but a true answer is False"""
    result = await backend.rpc("has_role", {"_role": role.value, "_user_id": user_id})
    return result is True or (isinstance(result, str) and result.lower() == "true")


async def require_admin(backend: BackendClient, user_id: Optional[str]) -> None:
    if not user_id or not await has_role(backend, user_id, AppRole.ADMIN):
        logger.warning(f"🚫 Admin action refused for user {user_id}")
        raise AuthorizationError(f"user {user_id} is not an admin", user_message=messages.NOT_AUTHORIZED)


def _require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("rejection reason required", user_message=messages.REJECTION_REASON_REQUIRED)
    return reason


class AdminService:
    """Admin console operations, each guarded by has_role(admin)"""

    def __init__(self, backend: BackendClient, cache: Optional[SimpleCache] = None):
        self.backend = backend
        self.cache = cache or settings_cache

    async def _rpc(self, admin_id: str, function: str, params: Dict[str, Any]) -> RpcResult:
        await require_admin(self.backend, admin_id)
        payload = await self.backend.rpc(function, params)
        result = RpcResult.from_payload(function, payload).raise_for_error()
        logger.info(f"✅ Admin {admin_id}: {function} ok")
        return result

    # ----- queues -----

    async def pending_queue(self, admin_id: str, queue: str, limit: int = 50) -> PendingQueue:
        if queue not in PENDING_QUEUES:
            raise ValidationError(f"unknown queue {queue}")
        await require_admin(self.backend, admin_id)
        rows = await self.backend.select(
            PENDING_QUEUES[queue],
            {"status": eq(RequestStatus.PENDING.value)},
            order="created_at.asc",
            limit=limit,
        )
        return PendingQueue(name=queue, rows=rows)

    async def pending_deposits(self, admin_id: str, limit: int = 50) -> List[Deposit]:
        queue = await self.pending_queue(admin_id, "deposits", limit)
        return [Deposit.from_row(row) for row in queue.rows]

    async def pending_withdrawals(self, admin_id: str, limit: int = 50) -> List[Withdrawal]:
        queue = await self.pending_queue(admin_id, "withdrawals", limit)
        return [Withdrawal.from_row(row) for row in queue.rows]

    async def queue_counts(self, admin_id: str) -> Dict[str, int]:
        await require_admin(self.backend, admin_id)
        counts = {}
        for queue, table in PENDING_QUEUES.items():
            counts[queue] = await self.backend.count(table, {"status": eq(RequestStatus.PENDING.value)})
        return counts

    # ----- deposits -----

    async def approve_deposit(
        self,
        admin_id: str,
        deposit_id: str,
        notes: Optional[str] = None,
        adjusted_amount: Numeric = None,
    ) -> RpcResult:
        params: Dict[str, Any] = {
            "_deposit_id": deposit_id,
            "_admin_id": admin_id,
            "_notes": notes or None,
        }
        if adjusted_amount is not None:
            amount = MonetaryDecimal.to_decimal(adjusted_amount)
            if amount <= 0:
                raise ValidationError("adjusted amount must be positive", user_message=messages.INVALID_AMOUNT)
            params["_adjusted_amount"] = to_json_number(amount)
        return await self._rpc(admin_id, "approve_deposit", params)

    async def reject_deposit(self, admin_id: str, deposit_id: str, reason: str) -> Deposit:
        reason = _require_reason(reason)
        await require_admin(self.backend, admin_id)
        rows = await self.backend.update(
            "deposits",
            {
                "status": RequestStatus.REJECTED.value,
                "admin_notes": reason,
                "processed_by": admin_id,
                "processed_at": datetime.now(timezone.utc).isoformat(),
            },
            {"id": eq(deposit_id)},
        )
        if not rows:
            raise ValidationError(f"deposit {deposit_id} not found", user_message="الطلب غير موجود")
        logger.info(f"✅ Admin {admin_id}: deposit {deposit_id} rejected")
        return Deposit.from_row(rows[0])

    # ----- withdrawals -----

    async def approve_withdrawal(self, admin_id: str, withdrawal_id: str, notes: Optional[str] = None) -> RpcResult:
        return await self._rpc(admin_id, "approve_withdrawal", {
            "_withdrawal_id": withdrawal_id, "_admin_id": admin_id, "_notes": notes or None,
        })

    async def reject_withdrawal(self, admin_id: str, withdrawal_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_withdrawal", {
            "_withdrawal_id": withdrawal_id, "_admin_id": admin_id, "_reason": _require_reason(reason),
        })

    # ----- identity verification -----

    async def approve_verification_request(self, admin_id: str, request_id: str) -> RpcResult:
        return await self._rpc(admin_id, "approve_verification_request", {
            "_request_id": request_id, "_admin_id": admin_id,
        })

    async def reject_verification_request(self, admin_id: str, request_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_verification_request", {
            "_request_id": request_id, "_admin_id": admin_id, "_reason": _require_reason(reason),
        })

    # ----- merchants -----

    async def approve_merchant_request(
        self, admin_id: str, request_id: str, commission_rate: Numeric = None
    ) -> RpcResult:
        params: Dict[str, Any] = {"_request_id": request_id, "_admin_id": admin_id}
        if commission_rate is not None:
            rate = MonetaryDecimal.to_decimal(commission_rate)
            if rate < 0 or rate > 100:
                raise ValidationError("commission rate out of range", user_message="نسبة العمولة غير صالحة")
            params["_commission_rate"] = to_json_number(rate)
        return await self._rpc(admin_id, "approve_merchant_request", params)

    async def reject_merchant_request(self, admin_id: str, request_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_merchant_request", {
            "_request_id": request_id, "_admin_id": admin_id, "_reason": _require_reason(reason),
        })

    # ----- orders with (_id, _admin_notes) procedures -----

    async def approve_betting_deposit(self, admin_id: str, transaction_id: str, notes: Optional[str] = None) -> RpcResult:
        return await self._rpc(admin_id, "approve_betting_deposit", {
            "_transaction_id": transaction_id, "_admin_notes": notes or None,
        })

    async def reject_betting_deposit(self, admin_id: str, transaction_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_betting_deposit", {
            "_transaction_id": transaction_id, "_admin_notes": _require_reason(reason),
        })

    async def approve_digital_card_order(self, admin_id: str, order_id: str, notes: Optional[str] = None) -> RpcResult:
        return await self._rpc(admin_id, "approve_digital_card_order", {
            "_order_id": order_id, "_admin_notes": notes or None,
        })

    async def reject_digital_card_order(self, admin_id: str, order_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_digital_card_order", {
            "_order_id": order_id, "_admin_notes": _require_reason(reason),
        })

    async def approve_game_topup_order(self, admin_id: str, order_id: str, notes: Optional[str] = None) -> RpcResult:
        return await self._rpc(admin_id, "approve_game_topup_order", {
            "_order_id": order_id, "_admin_notes": notes or None,
        })

    async def reject_game_topup_order(self, admin_id: str, order_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_game_topup_order", {
            "_order_id": order_id, "_admin_notes": _require_reason(reason),
        })

    async def approve_phone_topup_order(self, admin_id: str, order_id: str, notes: Optional[str] = None) -> RpcResult:
        return await self._rpc(admin_id, "approve_phone_topup_order", {
            "_order_id": order_id, "_admin_notes": notes or None,
        })

    async def reject_phone_topup_order(self, admin_id: str, order_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_phone_topup_order", {
            "_order_id": order_id, "_admin_notes": _require_reason(reason),
        })

    # ----- diaspora transfers -----

    async def approve_diaspora_transfer(
        self,
        admin_id: str,
        transfer_id: str,
        exchange_rate: Numeric,
        received_amount: Numeric = None,
        notes: Optional[str] = None,
    ) -> RpcResult:
        rate = MonetaryDecimal.to_decimal(exchange_rate)
        if rate <= 0:
            raise ValidationError("exchange rate must be positive", user_message="سعر الصرف غير صالح")
        params: Dict[str, Any] = {
            "_transfer_id": transfer_id,
            "_admin_id": admin_id,
            "_exchange_rate": to_json_number(rate),
            "_admin_notes": notes or None,
        }
        if received_amount is not None:
            params["_received_amount"] = to_json_number(received_amount)
        return await self._rpc(admin_id, "approve_diaspora_transfer", params)

    async def reject_diaspora_transfer(self, admin_id: str, transfer_id: str, reason: str) -> RpcResult:
        return await self._rpc(admin_id, "reject_diaspora_transfer", {
            "_transfer_id": transfer_id, "_admin_id": admin_id, "_rejection_reason": _require_reason(reason),
        })

    # ----- balances -----

    async def recalculate_user_balance(self, admin_id: str, user_id: str) -> RpcResult:
        return await self._rpc(admin_id, "recalculate_user_balance", {"_user_id": user_id})

    async def recalculate_all_balances(self, admin_id: str) -> RpcResult:
        return await self._rpc(admin_id, "recalculate_all_balances", {})

    # ----- reference data -----

    async def refresh_reference_data(self, admin_id: str) -> Dict[str, Any]:
        """Drop cached platform settings and operators so the next read hits the backend"""
        await require_admin(self.backend, admin_id)
        dropped = sum(self.cache.delete_prefix(prefix) for prefix in REFERENCE_CACHE_PREFIXES)
        stats = self.cache.get_stats()
        logger.info(f"🔄 Admin {admin_id} refreshed {dropped} cached entries (hit rate {stats['hit_rate']}%)")
        return {"dropped": dropped, **stats}
