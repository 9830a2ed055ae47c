"""Code Input Component - short typed values: gift card numbers, ID card fields"""

from typing import Any, Callable, Dict, Optional

from services.scene_engine import ComponentConfig, SceneInput, SceneState
from services.shop_service import normalize_gift_card_code
from utils import messages
from utils.input_validation import InputValidator

# config "kind" -> parser for the typed text
CODE_PARSERS: Dict[str, Callable[[str], Any]] = {
    "gift_card": normalize_gift_card_code,
    "national_id": InputValidator.validate_national_id,
    "full_name": lambda text: InputValidator.require_text(text, messages.FULL_NAME_REQUIRED),
    "birth_date": InputValidator.parse_birth_date,
}


class CodeInputComponent:

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        if not scene_input.text:
            return None
        config = component_config.config
        value = CODE_PARSERS[config.get("kind", "gift_card")](scene_input.text)
        return {
            "success": True,
            "data": {config.get("field", "card_code"): value},
            "submit": bool(config.get("submit")),
        }
