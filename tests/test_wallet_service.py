"""Wallet balance, fee previews, withdrawals, transfers and admin notifications"""

from decimal import Decimal
from unittest.mock import AsyncMock, Mock, patch

import pytest

from services.notification_service import NotificationService
from services.wallet_service import WalletService
from utils import messages
from utils.exception_handler import BackendError, RpcRejectedError, ValidationError

FEE_ROWS = [
    {"setting_key": "transfer_fees", "setting_value": {"enabled": True, "percentage": 1, "min_fee": 10}},
    {"setting_key": "withdrawal_fees", "setting_value": {"enabled": True, "fixed_amount": 50}},
    {"setting_key": "deposit_fees", "setting_value": {"enabled": False, "percentage": 3}},
]


def platform_settings(methods=None):
    def rows(filters):
        if filters.get("setting_key") == "eq.withdrawal_methods":
            return [{"setting_value": methods or {}}]
        return FEE_ROWS
    return rows


@pytest.fixture
def wallet_backend(fake_backend):
    fake_backend.tables["platform_settings"] = platform_settings()
    fake_backend.tables["user_balances"] = [{"user_id": "user-1", "balance": 5000}]
    return fake_backend


@pytest.fixture
def notifications():
    return Mock()


@pytest.fixture
def wallet(wallet_backend, notifications):
    return WalletService(wallet_backend, notifications=notifications)


class TestBalance:

    @pytest.mark.asyncio
    async def test_recalculates_then_reads(self, wallet, wallet_backend):
        balance = await wallet.get_balance("user-1")
        assert balance.balance == Decimal("5000")
        assert wallet_backend.rpc_calls("recalculate_user_balance") == [{"_user_id": "user-1"}]

    @pytest.mark.asyncio
    async def test_missing_row_created_at_zero(self, wallet, wallet_backend):
        wallet_backend.tables["user_balances"] = []
        balance = await wallet.get_balance("user-2")
        assert balance.balance == Decimal("0")
        assert wallet_backend.inserted == [("user_balances", {"user_id": "user-2", "balance": 0})]

    @pytest.mark.asyncio
    async def test_recalculation_failure_still_reads(self, wallet, wallet_backend):
        wallet_backend.failing["rpc:recalculate_user_balance"] = BackendError("timeout")
        assert (await wallet.get_balance("user-1")).balance == Decimal("5000")


class TestFeePreview:

    @pytest.mark.asyncio
    async def test_transfer_fee_min_applies(self, wallet):
        breakdown = await wallet.preview_fee("transfer", 500)
        assert breakdown.fee == Decimal("10")
        assert breakdown.total == Decimal("510")

    @pytest.mark.asyncio
    async def test_disabled_deposit_fee(self, wallet):
        assert (await wallet.preview_fee("deposit", 2000)).fee == Decimal("0")

    @pytest.mark.asyncio
    async def test_settings_cached(self, wallet, wallet_backend):
        await wallet.preview_fee("transfer", 500)
        await wallet.preview_fee("withdrawal", 500)
        assert len([c for c in wallet_backend.calls if c[0] == "select"]) == 1


class TestWithdrawals:

    @pytest.mark.asyncio
    async def test_account_withdrawal(self, wallet, wallet_backend, notifications):
        withdrawal = await wallet.create_withdrawal("user-1", 1000, "ccp", "0012345", "Amina B")
        table, row = wallet_backend.inserted[-1]
        assert table == "withdrawals"
        assert row["amount"] == 1000
        assert row["account_number"] == "0012345"
        assert withdrawal.withdrawal_method == "ccp"
        notifications.fire.assert_called_once()

    @pytest.mark.asyncio
    async def test_account_details_required(self, wallet):
        with pytest.raises(ValidationError) as exc:
            await wallet.create_withdrawal("user-1", 1000, "barid_bank", "  ", "Amina B")
        assert exc.value.user_message == messages.WITHDRAWAL_ACCOUNT_REQUIRED

    @pytest.mark.asyncio
    async def test_cash_needs_location(self, wallet):
        with pytest.raises(ValidationError) as exc:
            await wallet.create_withdrawal("user-1", 1000, "cash")
        assert exc.value.user_message == messages.WITHDRAWAL_LOCATION_REQUIRED

    @pytest.mark.asyncio
    async def test_methods_disabled_by_default(self, wallet):
        with pytest.raises(ValidationError) as exc:
            await wallet.create_withdrawal("user-1", 1000, "badr", "1", "Amina B")
        assert exc.value.user_message == messages.WITHDRAWAL_METHOD_DISABLED

    @pytest.mark.asyncio
    async def test_method_switched_off_in_settings(self, wallet, wallet_backend):
        wallet_backend.tables["platform_settings"] = platform_settings({"ccp": {"enabled": False}})
        with pytest.raises(ValidationError):
            await wallet.create_withdrawal("user-1", 1000, "ccp", "1", "Amina B")

    @pytest.mark.asyncio
    async def test_fee_counted_against_balance(self, wallet, wallet_backend):
        # 4980 + 50 fixed fee > 5000
        with pytest.raises(ValidationError) as exc:
            await wallet.create_withdrawal("user-1", 4980, "cash", cash_location="Oran")
        assert exc.value.user_message == messages.INSUFFICIENT_BALANCE
        assert wallet_backend.inserted == []


class TestTransfers:

    @pytest.mark.asyncio
    async def test_transfer_rpc_params(self, wallet, wallet_backend):
        wallet_backend.rpc_results["process_transfer"] = {"success": True, "transfer_id": "tr-1"}
        result = await wallet.process_transfer("user-1", "0551 23 45 67", "1500", note="loyer")
        assert result.data["transfer_id"] == "tr-1"
        assert wallet_backend.rpc_calls("process_transfer") == [{
            "recipient_phone_param": "0551234567", "amount_param": 1500, "note_param": "loyer",
        }]

    @pytest.mark.asyncio
    async def test_rejected_transfer(self, wallet, wallet_backend):
        wallet_backend.rpc_results["process_transfer"] = {"success": False, "error": "المستلم غير موجود"}
        with pytest.raises(RpcRejectedError) as exc:
            await wallet.process_transfer("user-1", "0551234567", 100)
        assert exc.value.user_message == "المستلم غير موجود"

    @pytest.mark.asyncio
    async def test_short_phone_never_reaches_backend(self, wallet, wallet_backend):
        with pytest.raises(ValidationError):
            await wallet.process_transfer("user-1", "0551", 100)
        assert wallet_backend.rpc_calls("process_transfer") == []

    @pytest.mark.asyncio
    async def test_history_filter(self, wallet, wallet_backend):
        wallet_backend.tables["transfers"] = [
            {"id": "tr-1", "sender_id": "user-1", "recipient_id": "user-9", "amount": 100},
        ]
        (transfer,) = await wallet.list_transfers("user-1")
        assert transfer.direction_for("user-1") == "sent"
        select = [c for c in wallet_backend.calls if c[1] == "transfers"][0]
        assert select[2] == {"or": "(sender_id.eq.user-1,recipient_id.eq.user-1)"}


class TestNotifications:

    @pytest.mark.asyncio
    async def test_send_invokes_function(self, fake_backend):
        sent = await NotificationService(fake_backend).send("new_deposit", {"id": "dep-1", "amount": Decimal("1013")})
        assert sent is True
        assert ("invoke", "telegram-notify", {"type": "new_deposit", "record": {"id": "dep-1", "amount": 1013}}) in fake_backend.calls

    @pytest.mark.asyncio
    async def test_failure_swallowed(self, fake_backend):
        fake_backend.failing["invoke:telegram-notify"] = BackendError("down")
        assert await NotificationService(fake_backend).send("new_deposit", {}) is False

    @pytest.mark.asyncio
    async def test_fire_schedules_task(self, fake_backend):
        service = NotificationService(fake_backend)
        with patch.object(service, "send", new=AsyncMock(return_value=True)) as send:
            task = service.fire("new_withdrawal", {"id": "wd-1"})
            await task
        send.assert_awaited_once_with("new_withdrawal", {"id": "wd-1"})

    def test_fire_without_loop_dropped(self, fake_backend):
        assert NotificationService(fake_backend).fire("new_deposit", {}) is None
