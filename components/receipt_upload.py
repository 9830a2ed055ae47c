"""Receipt Upload Component - the transfer confirmation screenshot"""

from typing import Any, Dict, Optional

from services.scene_engine import ComponentConfig, SceneInput, SceneState
from utils.input_validation import InputValidator


class ReceiptUploadComponent:

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        if scene_input.photo is None:
            return None
        receipt = InputValidator.validate_receipt(scene_input.photo, component_config.config.get("max_bytes"))
        return {"success": True, "data": {component_config.config.get("field", "receipt"): receipt}}
