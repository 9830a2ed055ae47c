"""
Component Renderer - turns the current scene step into a Telegram message

Text comes from the step's title and description (formatted with scene data);
buttons come from the step's components plus back/cancel navigation.
"""

import html
import logging
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from services.fee_service import FeeBreakdown
from services.scene_engine import ComponentType, SceneState, SceneStep
from utils import messages
from utils.decimal_precision import MonetaryDecimal
from .amount_input import quick_amount_choice
from .confirmation import CONFIRM_CHOICE
from .selection_menu import SELECT_PREFIX

logger = logging.getLogger(__name__)

SCENE_CALLBACK_PREFIX = "scene:"
BACK_CALLBACK = f"{SCENE_CALLBACK_PREFIX}back"
CANCEL_CALLBACK = f"{SCENE_CALLBACK_PREFIX}cancel"


class _SafeFormat(dict):
    def __missing__(self, key):
        return ""


def _format_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Decimal):
            values[key] = MonetaryDecimal.format_dzd(value)
        elif isinstance(value, str):
            values[key] = html.escape(value)
        elif isinstance(value, int):
            values[key] = value
    recipient = data.get("recipient")
    if recipient is not None:
        values["recipient_name"] = html.escape(recipient.full_name)
    return values


def _summary(state: SceneState) -> str:
    data = state.data
    lines: List[str] = []
    if data.get("unique_amount") and data.get("receiving_number") and isinstance(data.get("fee"), FeeBreakdown):
        lines.append(messages.flexy_instructions(
            data["receiving_number"], data["unique_amount"], data["fee"].fee, data["fee"].net
        ))
    elif isinstance(data.get("fee"), FeeBreakdown):
        fee = data["fee"]
        lines.append(messages.fee_breakdown_text(fee.amount, fee.fee, fee.total, "المجموع"))
    if data.get("sender_phone"):
        lines.append(f"📱 {data['sender_phone']}")
    if data.get("recipient") is not None:
        recipient = data["recipient"]
        lines.append(f"👤 {html.escape(recipient.full_name)} ({recipient.phone})")
    return "\n".join(lines)


class ComponentRenderer:
    """Renders a scene step as (text, keyboard)"""

    def render(self, state: SceneState, step: SceneStep) -> Tuple[str, InlineKeyboardMarkup]:
        values = _SafeFormat(_format_values(state.data))
        text = f"<b>{step.title}</b>\n\n{step.description.format_map(values)}"
        summary = _summary(state)
        if summary:
            text = f"{text}\n\n{summary}"

        rows: List[List[InlineKeyboardButton]] = []
        for component in step.components:
            rows.extend(self._component_buttons(component.component_type, component.config))

        nav: List[InlineKeyboardButton] = []
        if step.can_go_back and state.history:
            nav.append(InlineKeyboardButton("⬅️ رجوع", callback_data=BACK_CALLBACK))
        if step.components or step.next_steps:
            nav.append(InlineKeyboardButton("✖️ إلغاء", callback_data=CANCEL_CALLBACK))
        if nav:
            rows.append(nav)
        return text, InlineKeyboardMarkup(rows)

    @staticmethod
    def _component_buttons(component_type: ComponentType, config: Dict[str, Any]) -> List[List[InlineKeyboardButton]]:
        if component_type == ComponentType.SELECTION_MENU:
            return [
                [InlineKeyboardButton(option["label"], callback_data=f"{SCENE_CALLBACK_PREFIX}{SELECT_PREFIX}{option['value']}")]
                for option in config.get("options", [])
            ]
        if component_type == ComponentType.AMOUNT_INPUT and config.get("quick_amounts"):
            return [[
                InlineKeyboardButton(
                    MonetaryDecimal.format_dzd(amount),
                    callback_data=f"{SCENE_CALLBACK_PREFIX}{quick_amount_choice(amount)}",
                )
                for amount in config["quick_amounts"]
            ]]
        if component_type == ComponentType.CONFIRMATION:
            return [[InlineKeyboardButton("✅ تأكيد", callback_data=f"{SCENE_CALLBACK_PREFIX}{CONFIRM_CHOICE}")]]
        return []
