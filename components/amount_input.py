"""
Amount Input Component

Handles amount entry from text or quick-amount buttons, with range validation.
A step may ask for a quote: "flexy" reserves a unique Flexy amount, a fee kind
("transfer", "withdrawal") attaches the wallet fee preview.
"""

import logging
from typing import Any, Dict, Optional

from services.scene_engine import ComponentConfig, SceneInput, SceneState
from utils.decimal_precision import MonetaryDecimal
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

QUICK_AMOUNT_PREFIX = "amount_"


class AmountInputComponent:
    """Component for handling amount input with validation"""

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        config = component_config.config

        if scene_input.choice and scene_input.choice.startswith(QUICK_AMOUNT_PREFIX):
            raw = scene_input.choice[len(QUICK_AMOUNT_PREFIX):]
        elif scene_input.text:
            raw = scene_input.text
        else:
            return None

        amount = InputValidator.parse_amount(raw)
        amount = InputValidator.validate_amount_range(amount, config.get("min_amount"), config.get("max_amount"))
        field_name = config.get("field", "amount")
        data: Dict[str, Any] = {field_name: amount}

        quote = config.get("quote")
        if quote == "flexy":
            data.update(await self._flexy_quote(scene_state, scene_input, amount))
        elif config.get("fee_kind"):
            wallet = scene_input.services["wallet"]
            data["fee"] = await wallet.preview_fee(config["fee_kind"], amount)

        logger.info(f"💰 Amount {amount} accepted in {scene_state.scene_id}/{scene_state.current_step}")
        return {"success": True, "data": data}

    @staticmethod
    async def _flexy_quote(scene_state: SceneState, scene_input: SceneInput, amount) -> Dict[str, Any]:
        flexy = scene_input.services["flexy"]
        quote = await flexy.prepare_quote(scene_state.data.get("backend_user_id"), amount)
        return {
            "base_amount": quote.base_amount,
            "unique_amount": quote.unique_amount,
            "fee": quote.fee,
            "net_amount": quote.net_amount,
            "receiving_number": quote.receiving_number,
        }


def quick_amount_choice(amount) -> str:
    return f"{QUICK_AMOUNT_PREFIX}{int(MonetaryDecimal.to_decimal(amount))}"
