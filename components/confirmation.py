"""
Confirmation Component

"confirm_yes" asks the handler to submit the scene once every field listed in
the component's requires is filled in. Cancelling is handled by the scene
handler, not here.
"""

import logging
from typing import Any, Dict, Optional

from services.scene_engine import ComponentConfig, SceneInput, SceneState
from utils import messages

logger = logging.getLogger(__name__)

CONFIRM_CHOICE = "confirm_yes"


class ConfirmationComponent:
    """Component for handling transaction confirmations"""

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        if scene_input.choice != CONFIRM_CHOICE:
            return None

        missing = [
            key for key in component_config.config.get("requires", [])
            if scene_state.data.get(key) in (None, "")
        ]
        if missing:
            logger.info(f"Confirmation in {scene_state.scene_id} missing {missing}")
            return {"success": False, "error": messages.STEP_INCOMPLETE}
        return {"success": True, "submit": True}
