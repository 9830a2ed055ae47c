"""
Phone Input Component

kind "mobilis" accepts Flexy sender numbers (06XXXXXXXX); kind "recipient"
accepts any transfer recipient and looks the number up to show a name.
"""

import logging
from typing import Any, Dict, Optional

from models import ScannedUser
from services.scene_engine import ComponentConfig, SceneInput, SceneState
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)


class PhoneInputComponent:

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        if not scene_input.text:
            return None
        config = component_config.config
        kind = config.get("kind", "mobile")

        if kind == "mobilis":
            phone = InputValidator.validate_mobilis_phone(scene_input.text)
        elif kind == "recipient":
            phone = InputValidator.validate_recipient_phone(scene_input.text)
            return {"success": True, "data": {"recipient": await self._resolve_recipient(scene_input, phone)}}
        else:
            phone = InputValidator.validate_mobile_phone(scene_input.text)

        return {"success": True, "data": {config.get("field", "phone"): phone}}

    @staticmethod
    async def _resolve_recipient(scene_input: SceneInput, phone: str) -> ScannedUser:
        wallet = scene_input.services.get("wallet")
        profile = await wallet.find_profile_by_phone(phone) if wallet else None
        if not profile:
            # the transfer RPC resolves the phone itself and rejects unknown numbers
            return ScannedUser(user_id="", full_name=phone, phone=phone)
        return ScannedUser(
            user_id=str(profile.get("user_id") or ""),
            full_name=profile.get("full_name") or phone,
            phone=profile.get("phone") or phone,
        )
