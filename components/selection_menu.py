"""
Selection Menu Component

Options whose value names a step move the scene there; other values are
stored under the configured field.
"""

from typing import Any, Dict, Optional

from services.scene_engine import ComponentConfig, SceneInput, SceneState

SELECT_PREFIX = "select_"


class SelectionMenuComponent:

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        choice = scene_input.choice or ""
        if not choice.startswith(SELECT_PREFIX):
            return None
        value = choice[len(SELECT_PREFIX):]
        options = {option["value"]: option for option in component_config.config.get("options", [])}
        if value not in options:
            return None

        result: Dict[str, Any] = {"success": True, "data": {}}
        if options[value].get("step"):
            result["next"] = options[value]["step"]
        else:
            result["data"][component_config.config.get("field", "selection")] = value
        return result
