"""Telegram handlers with mocked updates: error replies, session gating, submit actions"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, Mock, patch

import pytest

from components.confirmation import CONFIRM_CHOICE
from config import Config
from handlers import admin as admin_handlers
from handlers import scenes as scene_handlers
from handlers import topup as topup_handlers
from handlers.session import QR_DECODER_FACTORY_KEY, build_services, require_session
from handlers.start import start_command
from models import FlexyDepositSettings, RpcResult, ScannedUser
from scenes import ALL_SCENES
from services.scene_engine import SceneEngine, SceneInput, SceneState, SceneStatus
from utils import messages
from utils.exception_handler import UniqueAmountUnavailableError, ValidationError, safe_telegram_handler


def scene_state(scene_id, **data):
    return SceneState(scene_id=scene_id, user_id=4242, current_step="confirm",
                      status=SceneStatus.PROCESSING, data={"backend_user_id": "user-1", **data})


class TestSafeHandler:

    @pytest.mark.asyncio
    async def test_domain_error_replied(self, telegram_update, telegram_context):
        @safe_telegram_handler
        async def handler(update, context):
            raise ValidationError("bad", messages.INVALID_AMOUNT)

        await handler(telegram_update, telegram_context)
        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"❌ {messages.INVALID_AMOUNT}")

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_reply(self, telegram_update, telegram_context):
        @safe_telegram_handler
        async def handler(update, context):
            raise KeyError("boom")

        assert await handler(telegram_update, telegram_context) is None
        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"❌ {messages.GENERIC_ERROR}")


class TestSession:

    def test_require_session(self, telegram_context):
        assert require_session(telegram_context).user_id == "user-1"
        telegram_context.user_data = {}
        with pytest.raises(ValidationError):
            require_session(telegram_context)

    def test_camera_factory_needs_decoder(self, telegram_context):
        assert build_services(telegram_context)["camera_factory"] is None
        telegram_context.application.bot_data[QR_DECODER_FACTORY_KEY] = Mock
        assert build_services(telegram_context)["camera_factory"] is not None

    @pytest.mark.asyncio
    async def test_start_without_link(self, telegram_update, telegram_context):
        telegram_context.user_data = {}
        await start_command(telegram_update, telegram_context)
        telegram_update.effective_message.reply_text.assert_awaited_once_with(messages.LOGIN_REQUIRED)

    @pytest.mark.asyncio
    async def test_start_shows_menu(self, telegram_update, telegram_context):
        await start_command(telegram_update, telegram_context)
        text = telegram_update.effective_message.reply_text.call_args[0][0]
        assert "Amina B" in text


class TestSubmitActions:

    @pytest.mark.asyncio
    async def test_flexy(self, receipt):
        flexy = Mock(create_deposit=AsyncMock())
        state = scene_state(
            "flexy_deposit", base_amount=Decimal("1000"), unique_amount=Decimal("1013"),
            sender_phone="0661234567", receipt=receipt,
        )
        result = await scene_handlers.submit_flexy_deposit(state, {"flexy": flexy})
        assert result == messages.FLEXY_SUBMITTED
        flexy.create_deposit.assert_awaited_once_with(
            "user-1", Decimal("1000"), Decimal("1013"), "0661234567", receipt
        )

    @pytest.mark.asyncio
    async def test_transfer(self):
        wallet = Mock(process_transfer=AsyncMock())
        recipient = ScannedUser(user_id="user-9", full_name="Karim D", phone="0551234567")
        state = scene_state("qr_transfer", recipient=recipient, amount=Decimal("1500"))
        result = await scene_handlers.submit_transfer(state, {"wallet": wallet})
        wallet.process_transfer.assert_awaited_once_with("user-1", "0551234567", Decimal("1500"))
        assert "Karim D" in result

    @pytest.mark.asyncio
    async def test_gift_card(self):
        shop = Mock(redeem_gift_card=AsyncMock(
            return_value=RpcResult(function="redeem_gift_card", success=True, data={"amount": 2000})
        ))
        state = scene_state("gift_card_redemption", card_code="123456789012")
        result = await scene_handlers.submit_gift_card(state, {"shop": shop})
        assert result == messages.GIFT_CARD_REDEEMED.format(amount="2,000 دج")

    @pytest.mark.asyncio
    async def test_verification(self, receipt):
        verification = Mock(submit_request=AsyncMock())
        state = scene_state(
            "identity_verification", national_id="109900123456789012", full_name="Amina Benali",
            date_of_birth=date(1995, 4, 25), id_front=receipt, id_back=receipt,
        )
        result = await scene_handlers.submit_verification(state, {"verification": verification})
        assert result == messages.VERIFICATION_SUBMITTED
        verification.submit_request.assert_awaited_once_with(
            "user-1", "109900123456789012", "Amina Benali", date(1995, 4, 25), receipt, receipt
        )

    def test_every_scene_has_an_action(self):
        from scenes import ALL_SCENES

        assert {scene.scene_id for scene in ALL_SCENES} == set(scene_handlers.SUBMIT_ACTIONS)

    @pytest.mark.asyncio
    async def test_taken_unique_amount_sends_user_back_for_a_new_one(self, telegram_update, telegram_context, receipt):
        engine = SceneEngine()
        for scene in ALL_SCENES:
            engine.register_scene(scene)
        await engine.start_scene("flexy_deposit", 4242, {"backend_user_id": "user-1"})
        await engine.advance(4242, "phone", {"base_amount": Decimal("1000"), "unique_amount": Decimal("1012")})
        await engine.advance(4242, "receipt", {"sender_phone": "0661234567"})
        await engine.advance(4242, "confirm", {"receipt": receipt})

        flexy = Mock(create_deposit=AsyncMock(
            side_effect=UniqueAmountUnavailableError("1012 already pending", messages.UNIQUE_AMOUNT_TAKEN)
        ))
        render = AsyncMock()
        with patch.object(scene_handlers, "get_scene_engine", return_value=engine), \
                patch.object(scene_handlers, "render_current_step", render):
            await scene_handlers._process_input(
                telegram_update, telegram_context, SceneInput(choice=CONFIRM_CHOICE, services={"flexy": flexy})
            )

        state = await engine.require_scene(4242)
        assert state.current_step == "amount"
        assert state.status == SceneStatus.WAITING_INPUT
        assert "unique_amount" not in state.data
        assert state.data["sender_phone"] == "0661234567"
        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"❌ {messages.UNIQUE_AMOUNT_TAKEN}")
        render.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_without_scene(self, telegram_update, telegram_context):
        engine = Mock(cancel=AsyncMock(return_value=False))
        with patch.object(scene_handlers, "get_scene_engine", return_value=engine):
            await scene_handlers.cancel_scene(telegram_update, telegram_context)
        assert telegram_update.effective_message.reply_text.call_args[0][0] == messages.NOTHING_TO_CANCEL


class TestAdminHandlers:

    @pytest.mark.asyncio
    async def test_non_admin_chat_refused(self, telegram_update, telegram_context):
        with patch.object(Config, "ADMIN_USER_IDS", set()):
            await admin_handlers.pending_command(telegram_update, telegram_context)
        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"❌ {messages.NOT_AUTHORIZED}")

    @pytest.mark.asyncio
    async def test_diaspora_approval_needs_rate(self, telegram_update, telegram_context):
        telegram_context.args = ["diaspora", "dt-1"]
        with patch.object(Config, "ADMIN_USER_IDS", {4242}):
            await admin_handlers.approve_command(telegram_update, telegram_context)
        reply = telegram_update.effective_message.reply_text.call_args[0][0]
        assert reply.startswith("❌ /approve diaspora")

    def test_parse_settings_args(self):
        current = FlexyDepositSettings(receiving_number="0660000000")
        updated = admin_handlers.parse_settings_args(["fee_percentage=3", "enabled=no", "daily_limit=5"], current)
        assert updated.fee_percentage == Decimal("3")
        assert updated.enabled is False
        assert updated.daily_limit == 5
        assert updated.receiving_number == "0660000000"

    def test_parse_settings_unknown_key(self):
        with pytest.raises(ValidationError):
            admin_handlers.parse_settings_args(["colour=blue"], FlexyDepositSettings())


class TestDiasporaCommand:

    @pytest.mark.asyncio
    async def test_pipe_separated_fields(self, telegram_update, telegram_context):
        diaspora = Mock(create_transfer=AsyncMock())
        telegram_context.args = "0551234567 | 150 | France | Lyon | Karim D | loyer | mars".split(" ")
        with patch.object(topup_handlers, "build_services", return_value={"diaspora": diaspora}):
            await topup_handlers.diaspora_command(telegram_update, telegram_context)

        diaspora.create_transfer.assert_awaited_once_with(
            "user-1", "0551234567", "150", "France", sender_city="Lyon", recipient_name="Karim D", note="loyer | mars"
        )
        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"✅ {messages.DIASPORA_SUBMITTED}")

    @pytest.mark.asyncio
    async def test_optional_fields_left_empty(self, telegram_update, telegram_context):
        diaspora = Mock(create_transfer=AsyncMock())
        telegram_context.args = ["0551234567|150|Canada"]
        with patch.object(topup_handlers, "build_services", return_value={"diaspora": diaspora}):
            await topup_handlers.diaspora_command(telegram_update, telegram_context)

        diaspora.create_transfer.assert_awaited_once_with(
            "user-1", "0551234567", "150", "Canada", sender_city="", recipient_name="", note=""
        )

    @pytest.mark.asyncio
    async def test_usage_without_previous_transfer(self, telegram_update, telegram_context):
        diaspora = Mock(get_latest_transfer=AsyncMock(return_value=None), create_transfer=AsyncMock())
        with patch.object(topup_handlers, "build_services", return_value={"diaspora": diaspora}):
            await topup_handlers.diaspora_command(telegram_update, telegram_context)

        telegram_update.effective_message.reply_text.assert_awaited_once_with(f"❌ {messages.DIASPORA_USAGE}")
        diaspora.create_transfer.assert_not_called()

    @pytest.mark.asyncio
    async def test_shows_latest_transfer_status(self, telegram_update, telegram_context):
        latest = {"id": "dt-1", "amount": 150, "recipient_phone": "0551234567", "status": "pending"}
        diaspora = Mock(get_latest_transfer=AsyncMock(return_value=latest))
        with patch.object(topup_handlers, "build_services", return_value={"diaspora": diaspora}):
            await topup_handlers.diaspora_command(telegram_update, telegram_context)

        reply = telegram_update.effective_message.reply_text.call_args[0][0]
        assert "0551234567" in reply
        assert messages.status_label("pending") in reply
