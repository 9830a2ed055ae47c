"""
Component Processor - Handles component input processing

Routes a SceneInput to the component handler for its type and applies the
result to the scene: data is merged, then the engine advances to the
component's on_success step (or the step the component picked).
"""

import logging
from typing import Any, Dict

from services.scene_engine import ComponentConfig, ComponentType, SceneState, SceneInput, StepOutcome
from utils.exception_handler import OpayError, SceneValidationError
from .amount_input import AmountInputComponent
from .code_input import CodeInputComponent
from .confirmation import ConfirmationComponent
from .phone_input import PhoneInputComponent
from .qr_scan import QrScanComponent
from .receipt_upload import ReceiptUploadComponent
from .selection_menu import SelectionMenuComponent

logger = logging.getLogger(__name__)


class ComponentProcessor:
    """Processes input for Scene Engine components"""

    def __init__(self, engine):
        self.engine = engine
        self.component_handlers = {
            ComponentType.AMOUNT_INPUT: AmountInputComponent(),
            ComponentType.PHONE_INPUT: PhoneInputComponent(),
            ComponentType.RECEIPT_UPLOAD: ReceiptUploadComponent(),
            ComponentType.SELECTION_MENU: SelectionMenuComponent(),
            ComponentType.CODE_INPUT: CodeInputComponent(),
            ComponentType.QR_SCAN: QrScanComponent(),
            ComponentType.CONFIRMATION: ConfirmationComponent(),
        }

    async def process_component(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> StepOutcome:
        """Process one input with a specific component"""
        handler = self.component_handlers.get(component_config.component_type)
        if not handler:
            return StepOutcome(handled=False, step_id=scene_state.current_step)

        try:
            result = await handler.process_input(scene_state, component_config, scene_input)
        except OpayError as e:
            result = {"success": False, "error": e.user_message}

        if not result:
            return StepOutcome(handled=False, step_id=scene_state.current_step)
        if result.get("success"):
            return await self._handle_success(scene_state, component_config, result)
        return await self._handle_error(scene_state, component_config, result)

    async def _handle_success(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        result: Dict[str, Any],
    ) -> StepOutcome:
        user_id = scene_state.user_id
        data = result.get("data") or {}

        if result.get("submit"):
            await self.engine.update_data(user_id, data)
            return StepOutcome(handled=True, step_id=scene_state.current_step, submit=True)

        target = result.get("next") or component_config.on_success
        if not target:
            await self.engine.update_data(user_id, data)
            return StepOutcome(handled=True, step_id=scene_state.current_step)

        try:
            state = await self.engine.advance(user_id, target, data)
        except SceneValidationError as e:
            return StepOutcome(handled=True, step_id=scene_state.current_step, error=e.user_message)
        return StepOutcome(handled=True, step_id=state.current_step, changed_step=True)

    async def _handle_error(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        result: Dict[str, Any],
    ) -> StepOutcome:
        user_id = scene_state.user_id
        error_msg = result.get("error", "Unknown error")
        await self.engine.state_manager.add_scene_error(user_id, error_msg)

        fallback = component_config.on_error
        if not fallback or not result.get("fallback"):
            return StepOutcome(handled=True, step_id=scene_state.current_step, error=error_msg)

        # fallbacks only ever return to the step the user came from
        if not scene_state.history or scene_state.history[-1] != fallback:
            return StepOutcome(handled=True, step_id=scene_state.current_step, error=error_msg)
        state = await self.engine.back(user_id)
        logger.info(f"Scene {scene_state.scene_id} user {user_id} fell back to {state.current_step}")
        return StepOutcome(handled=True, step_id=state.current_step, error=error_msg, changed_step=True)
