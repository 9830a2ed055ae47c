"""
Scene engine tests
Forward/back transitions, gating by validators and requires, exit hooks on
every way out of a step, single submission and timeouts
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from scenes import ALL_SCENES
from services.scene_engine import (
    SceneDefinition,
    SceneEngine,
    SceneStatus,
    SceneStep,
)
from utils import messages
from utils.exception_handler import SceneNotFoundError, SceneValidationError, ValidationError

USER = 4242


def build_hook_scene(sync_hook, async_hook):
    steps = [
        SceneStep(step_id="a", title="A", description="", next_steps=["b"], on_exit=[sync_hook, async_hook]),
        SceneStep(step_id="b", title="B", description="", next_steps=["done"], on_exit=[sync_hook]),
        SceneStep(step_id="done", title="Done", description="", can_go_back=False),
    ]
    return SceneDefinition(
        scene_id="hooks", name="Hooks", description="", steps=steps,
        initial_step="a", final_steps=["done"], submit_step="done",
    )


@pytest.fixture
def engine(movable_clock):
    engine = SceneEngine(clock=movable_clock, timeout_minutes=30)
    for scene in ALL_SCENES:
        engine.register_scene(scene)
    return engine


@pytest.fixture
def hooks():
    return Mock(name="sync_hook"), AsyncMock(name="async_hook")


@pytest.fixture
def hook_engine(engine, hooks):
    engine.register_scene(build_hook_scene(*hooks))
    return engine


async def walk_flexy_to_confirm(engine, receipt):
    await engine.start_scene("flexy_deposit", USER, {"backend_user_id": "user-1"})
    await engine.advance(USER, "phone", {"base_amount": Decimal("1000"), "unique_amount": Decimal("1013")})
    await engine.advance(USER, "receipt", {"sender_phone": "0661234567"})
    return await engine.advance(USER, "confirm", {"receipt": receipt})


class TestDefinitions:

    def test_unknown_next_step_rejected(self):
        with pytest.raises(ValueError):
            SceneDefinition(
                scene_id="broken", name="", description="",
                steps=[SceneStep(step_id="a", title="", description="", next_steps=["nowhere"])],
                initial_step="a", final_steps=[],
            )

    def test_unknown_scene(self, engine):
        with pytest.raises(SceneNotFoundError):
            engine.get_definition("nope")

    def test_shipped_scenes_registered(self, engine):
        assert {"flexy_deposit", "qr_transfer", "gift_card_redemption"} <= set(engine.scene_registry)


class TestFlexyTransitions:
    """Forward only along declared steps, never past a failed check"""

    @pytest.mark.asyncio
    async def test_start_waits_on_initial_step(self, engine):
        state = await engine.start_scene("flexy_deposit", USER)
        assert state.current_step == "amount"
        assert state.status == SceneStatus.WAITING_INPUT
        assert state.history == []

    @pytest.mark.asyncio
    async def test_cannot_skip_steps(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        with pytest.raises(SceneValidationError):
            await engine.advance(USER, "confirm", {"unique_amount": Decimal("1013")})
        assert (await engine.require_scene(USER)).current_step == "amount"

    @pytest.mark.asyncio
    async def test_amount_required_before_phone(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        with pytest.raises(SceneValidationError):
            await engine.advance(USER, "phone")
        state = await engine.require_scene(USER)
        assert state.current_step == "amount"
        assert state.errors

    @pytest.mark.asyncio
    async def test_invalid_phone_blocks_receipt_step(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        await engine.advance(USER, "phone", {"unique_amount": Decimal("1013")})
        with pytest.raises(SceneValidationError) as exc:
            await engine.advance(USER, "receipt", {"sender_phone": "0771234567"})
        assert exc.value.user_message == messages.INVALID_MOBILIS_PHONE
        state = await engine.require_scene(USER)
        assert state.current_step == "phone"
        assert "sender_phone" not in state.data

    @pytest.mark.asyncio
    async def test_confirm_unreachable_without_receipt(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        await engine.advance(USER, "phone", {"unique_amount": Decimal("1013")})
        await engine.advance(USER, "receipt", {"sender_phone": "0661234567"})
        with pytest.raises(SceneValidationError):
            await engine.advance(USER, "confirm")
        assert (await engine.require_scene(USER)).current_step == "receipt"

    @pytest.mark.asyncio
    async def test_confirm_unreachable_with_tampered_phone(self, engine, receipt):
        await engine.start_scene("flexy_deposit", USER)
        await engine.advance(USER, "phone", {"unique_amount": Decimal("1013")})
        await engine.advance(USER, "receipt", {"sender_phone": "0661234567"})
        await engine.update_data(USER, {"sender_phone": "12"})
        with pytest.raises(SceneValidationError):
            await engine.advance(USER, "confirm", {"receipt": receipt})

    @pytest.mark.asyncio
    async def test_forward_then_back_retraces_history(self, engine, receipt):
        state = await walk_flexy_to_confirm(engine, receipt)
        assert state.current_step == "confirm"
        assert state.history == ["amount", "phone", "receipt"]

        assert (await engine.back(USER)).current_step == "receipt"
        assert (await engine.back(USER)).current_step == "phone"
        state = await engine.back(USER)
        assert state.current_step == "amount"
        assert state.history == []

        with pytest.raises(SceneValidationError) as exc:
            await engine.back(USER)
        assert exc.value.user_message == messages.CANNOT_GO_BACK

    @pytest.mark.asyncio
    async def test_status_snapshot(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        status = await engine.get_scene_status(USER)
        assert status["scene_id"] == "flexy_deposit"
        assert status["current_step"] == "confirm"
        assert status["status"] == "waiting_input"


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_runs_action_once_and_completes(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        action = AsyncMock(return_value="ok")

        finished = await engine.submit(USER, action)

        action.assert_awaited_once()
        assert finished.status == SceneStatus.COMPLETED
        assert finished.current_step == "submitted"
        assert finished.data["final_result"] == "ok"
        assert await engine.get_active_scene(USER) is None
        assert engine.state_manager.get_history(USER)[-1] is finished

    @pytest.mark.asyncio
    async def test_second_submit_refused_while_processing(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        gate = asyncio.Event()
        calls = []

        async def slow_action(state):
            calls.append(state.scene_id)
            await gate.wait()
            return "ok"

        first = asyncio.create_task(engine.submit(USER, slow_action))
        await asyncio.sleep(0)
        assert (await engine.require_scene(USER)).status == SceneStatus.PROCESSING

        with pytest.raises(SceneValidationError) as exc:
            await engine.submit(USER, slow_action)
        assert exc.value.user_message == messages.ALREADY_PROCESSING
        with pytest.raises(SceneValidationError):
            await engine.back(USER)

        gate.set()
        finished = await first
        assert finished.status == SceneStatus.COMPLETED
        assert calls == ["flexy_deposit"]

    @pytest.mark.asyncio
    async def test_failed_submit_returns_to_same_step(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        action = AsyncMock(side_effect=ValidationError("rejected", "nope"))

        with pytest.raises(ValidationError):
            await engine.submit(USER, action)

        state = await engine.require_scene(USER)
        assert state.current_step == "confirm"
        assert state.status == SceneStatus.WAITING_INPUT

    @pytest.mark.asyncio
    async def test_submit_only_from_step_before_submit_step(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        action = AsyncMock()
        with pytest.raises(SceneValidationError):
            await engine.submit(USER, action)
        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_requires_final_step(self, engine):
        await engine.start_scene("flexy_deposit", USER)
        with pytest.raises(SceneValidationError):
            await engine.complete(USER)


class TestExitHooks:

    @pytest.mark.asyncio
    async def test_advance_runs_hooks_of_left_step(self, hook_engine, hooks):
        sync_hook, async_hook = hooks
        await hook_engine.start_scene("hooks", USER)
        await hook_engine.advance(USER)
        sync_hook.assert_called_once()
        async_hook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_advance_runs_no_hooks(self, hook_engine, hooks):
        sync_hook, _ = hooks
        await hook_engine.start_scene("hooks", USER)
        with pytest.raises(SceneValidationError):
            await hook_engine.advance(USER, "done")
        sync_hook.assert_not_called()

    @pytest.mark.asyncio
    async def test_back_runs_hooks(self, hook_engine, hooks):
        sync_hook, _ = hooks
        await hook_engine.start_scene("hooks", USER)
        await hook_engine.advance(USER)
        sync_hook.reset_mock()
        await hook_engine.back(USER)
        sync_hook.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_runs_hooks(self, hook_engine, hooks):
        sync_hook, async_hook = hooks
        await hook_engine.start_scene("hooks", USER)
        assert await hook_engine.cancel(USER) is True
        sync_hook.assert_called_once()
        async_hook.assert_awaited_once()
        assert hook_engine.state_manager.get_history(USER)[-1].status == SceneStatus.CANCELLED
        assert await hook_engine.cancel(USER) is False

    @pytest.mark.asyncio
    async def test_starting_another_scene_cancels_the_open_one(self, hook_engine, hooks):
        sync_hook, _ = hooks
        await hook_engine.start_scene("hooks", USER)
        await hook_engine.start_scene("gift_card_redemption", USER)
        sync_hook.assert_called_once()
        assert (await hook_engine.require_scene(USER)).scene_id == "gift_card_redemption"

    @pytest.mark.asyncio
    async def test_timeout_fails_scene_and_runs_hooks(self, hook_engine, hooks, movable_clock):
        sync_hook, _ = hooks
        await hook_engine.start_scene("hooks", USER)
        movable_clock.now = movable_clock.now + timedelta(minutes=31)

        assert await hook_engine.get_active_scene(USER) is None
        sync_hook.assert_called_once()
        assert hook_engine.state_manager.get_history(USER)[-1].status == SceneStatus.FAILED
        with pytest.raises(SceneNotFoundError) as exc:
            await hook_engine.require_scene(USER)
        assert exc.value.user_message == messages.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_the_others(self, hook_engine, hooks):
        sync_hook, async_hook = hooks
        sync_hook.side_effect = RuntimeError("boom")
        await hook_engine.start_scene("hooks", USER)
        await hook_engine.advance(USER)
        async_hook.assert_awaited_once()
        assert (await hook_engine.require_scene(USER)).current_step == "b"


class TestRewind:

    @pytest.mark.asyncio
    async def test_rewind_to_amount_forgets_the_quote(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        state = await engine.rewind(USER, "amount", drop=["unique_amount", "base_amount"])

        assert state.current_step == "amount"
        assert state.history == []
        assert state.status == SceneStatus.WAITING_INPUT
        assert "unique_amount" not in state.data
        assert state.data["sender_phone"] == "0661234567"

        with pytest.raises(SceneValidationError):
            await engine.advance(USER, "phone")

    @pytest.mark.asyncio
    async def test_rewind_ignores_can_go_back(self, engine, receipt):
        # amount is can_go_back=False, but phone can still be rewound to from confirm
        await walk_flexy_to_confirm(engine, receipt)
        state = await engine.rewind(USER, "phone")
        assert state.current_step == "phone"
        assert state.history == ["amount"]

    @pytest.mark.asyncio
    async def test_rewind_to_unvisited_step_refused(self, engine):
        await engine.start_scene("flexy_deposit", USER, {"backend_user_id": "user-1"})
        with pytest.raises(SceneValidationError):
            await engine.rewind(USER, "receipt")

    @pytest.mark.asyncio
    async def test_rewind_runs_exit_hooks(self, hook_engine, hooks):
        await hook_engine.start_scene("hooks", USER)
        await hook_engine.advance(USER, "b")
        hooks[0].reset_mock()
        await hook_engine.rewind(USER, "a")
        hooks[0].assert_called_once()


class TestArchive:

    @pytest.mark.asyncio
    async def test_archive_is_capped_per_user(self, movable_clock, receipt):
        engine = SceneEngine(clock=movable_clock, timeout_minutes=30, history_limit=3)
        for scene in ALL_SCENES:
            engine.register_scene(scene)

        for _ in range(5):
            await engine.start_scene("flexy_deposit", USER, {"backend_user_id": "user-1"})
            await engine.update_data(USER, {"receipt": receipt})
        await engine.cancel(USER)

        history = engine.state_manager.get_history(USER)
        assert len(history) == 3
        assert all(scene.status == SceneStatus.CANCELLED for scene in history)

    @pytest.mark.asyncio
    async def test_archived_scene_drops_uploaded_files(self, engine, receipt):
        await walk_flexy_to_confirm(engine, receipt)
        await engine.cancel(USER)

        (archived,) = engine.state_manager.get_history(USER)
        assert "receipt" not in archived.data
        assert archived.data["unique_amount"] == Decimal("1013")
