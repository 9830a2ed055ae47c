"""
Scene Engine Handler Integration

Entry points for the wizard flows (Flexy deposit, QR transfer, gift card,
identity verification) and the generic routing of text, photos and scene
buttons into the Scene Engine.
Every backend write happens in the scene's submit action.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from components.component_renderer import (
    BACK_CALLBACK,
    CANCEL_CALLBACK,
    SCENE_CALLBACK_PREFIX,
    ComponentRenderer,
)
from handlers.session import build_services, require_session
from handlers.start import main_menu_keyboard
from models import ReceiptFile
from services.qr_code_service import QRCodeService
from services.scene_engine import ComponentType, SceneInput, SceneState, get_scene_engine
from utils import messages
from utils.callback_utils import safe_answer_callback_query, safe_edit_message_text
from utils.decimal_precision import MonetaryDecimal
from utils.exception_handler import UniqueAmountUnavailableError, safe_telegram_handler

logger = logging.getLogger(__name__)

ENTRY_CALLBACKS = {
    "menu_flexy": "flexy_deposit",
    "menu_transfer": "qr_transfer",
    "menu_gift_card": "gift_card_redemption",
    "menu_verify": "identity_verification",
}
ENTRY_COMMANDS = {
    "flexy": "flexy_deposit",
    "transfer": "qr_transfer",
    "giftcard": "gift_card_redemption",
    "verify": "identity_verification",
}

SubmitAction = Callable[[SceneState, Dict[str, Any]], Awaitable[str]]

# scene -> (step that issues the quote, data it produced); a stale unique
# amount at submit sends the user back there for a fresh one
REQUOTE_STEPS = {
    "flexy_deposit": ("amount", ("unique_amount", "base_amount", "fee", "net_amount")),
}


# ===== SUBMIT ACTIONS =====


async def submit_flexy_deposit(state: SceneState, services: Dict[str, Any]) -> str:
    data = state.data
    await services["flexy"].create_deposit(
        data["backend_user_id"],
        data["base_amount"],
        data["unique_amount"],
        data["sender_phone"],
        data["receipt"],
    )
    return messages.FLEXY_SUBMITTED


async def submit_transfer(state: SceneState, services: Dict[str, Any]) -> str:
    data = state.data
    recipient = data["recipient"]
    await services["wallet"].process_transfer(data["backend_user_id"], recipient.phone, data["amount"])
    return messages.TRANSFER_DONE.format(
        amount=MonetaryDecimal.format_dzd(data["amount"]), name=recipient.full_name
    )


async def submit_gift_card(state: SceneState, services: Dict[str, Any]) -> str:
    data = state.data
    result = await services["shop"].redeem_gift_card(data["backend_user_id"], data["card_code"])
    return messages.GIFT_CARD_REDEEMED.format(amount=MonetaryDecimal.format_dzd(result.get_decimal("amount")))


async def submit_verification(state: SceneState, services: Dict[str, Any]) -> str:
    data = state.data
    await services["verification"].submit_request(
        data["backend_user_id"],
        data["national_id"],
        data["full_name"],
        data["date_of_birth"],
        data["id_front"],
        data["id_back"],
    )
    return messages.VERIFICATION_SUBMITTED


SUBMIT_ACTIONS: Dict[str, SubmitAction] = {
    "flexy_deposit": submit_flexy_deposit,
    "qr_transfer": submit_transfer,
    "gift_card_redemption": submit_gift_card,
    "identity_verification": submit_verification,
}


# ===== RENDERING =====


async def render_current_step(update: Update, context: ContextTypes.DEFAULT_TYPE, edit: bool = False) -> None:
    engine = get_scene_engine()
    state = await engine.get_active_scene(update.effective_user.id)
    if state is None:
        return
    step = engine.current_step(state)
    text, markup = ComponentRenderer().render(state, step)

    if any(c.component_type == ComponentType.QR_DISPLAY for c in step.components):
        session = require_session(context)
        png = QRCodeService.generate_user_qr_png(session.user_id, session.full_name or "", session.phone or "")
        await update.effective_message.reply_photo(png)

    if edit and update.callback_query:
        await safe_edit_message_text(update.callback_query, text, reply_markup=markup)
    else:
        await update.effective_message.reply_text(text, reply_markup=markup, parse_mode=ParseMode.HTML)


async def _photo_from_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[ReceiptFile]:
    message = update.effective_message
    if message.photo:
        photo = message.photo[-1]
        telegram_file = await context.bot.get_file(photo.file_id)
        content = bytes(await telegram_file.download_as_bytearray())
        return ReceiptFile(filename=f"{photo.file_unique_id}.jpg", content=content, content_type="image/jpeg")
    document = message.document
    if document:
        telegram_file = await context.bot.get_file(document.file_id)
        content = bytes(await telegram_file.download_as_bytearray())
        return ReceiptFile(
            filename=document.file_name or f"{document.file_unique_id}",
            content=content,
            content_type=document.mime_type or "application/octet-stream",
        )
    return None


# ===== ROUTING =====


async def _process_input(
    update: Update, context: ContextTypes.DEFAULT_TYPE, scene_input: SceneInput, edit: bool = False
) -> None:
    engine = get_scene_engine()
    user_id = update.effective_user.id
    outcome = await engine.handle_input(user_id, scene_input)

    if outcome.error:
        await update.effective_message.reply_text(f"❌ {outcome.error}")
    if outcome.submit:
        state = await engine.require_scene(user_id)
        action = SUBMIT_ACTIONS[state.scene_id]
        try:
            finished = await engine.submit(user_id, functools.partial(action, services=scene_input.services))
        except UniqueAmountUnavailableError as e:
            if state.scene_id not in REQUOTE_STEPS:
                raise
            step_id, stale_keys = REQUOTE_STEPS[state.scene_id]
            await engine.rewind(user_id, step_id, drop=stale_keys)
            await update.effective_message.reply_text(f"❌ {e.user_message}")
            await render_current_step(update, context)
            return
        await update.effective_message.reply_text(
            f"✅ {finished.data.get('final_result', '')}", reply_markup=main_menu_keyboard()
        )
        return
    if outcome.changed_step or not outcome.error:
        await render_current_step(update, context, edit=edit and outcome.changed_step)


@safe_telegram_handler
async def start_scene_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Menu button or command that opens a wizard"""
    query = update.callback_query
    if query:
        await safe_answer_callback_query(query)
        scene_id = ENTRY_CALLBACKS[query.data]
    else:
        command = update.effective_message.text.split()[0].lstrip("/").split("@")[0]
        scene_id = ENTRY_COMMANDS[command]

    session = require_session(context)
    initial_data: Dict[str, Any] = {"backend_user_id": session.user_id}
    if scene_id == "flexy_deposit":
        settings = await build_services(context)["flexy"].get_settings()
        initial_data.update(min_amount=settings.min_amount, max_amount=settings.max_amount)

    await get_scene_engine().start_scene(scene_id, update.effective_user.id, initial_data)
    await render_current_step(update, context)


@safe_telegram_handler
async def scene_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Text and photos while a wizard is open"""
    if await get_scene_engine().get_active_scene(update.effective_user.id) is None:
        return
    scene_input = SceneInput(
        text=update.effective_message.text,
        photo=await _photo_from_message(update, context),
        services=build_services(context),
    )
    await _process_input(update, context, scene_input)


@safe_telegram_handler
async def scene_callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Scene buttons: back, cancel, selections, quick amounts, confirm"""
    query = update.callback_query
    await safe_answer_callback_query(query)
    engine = get_scene_engine()
    user_id = update.effective_user.id

    if query.data == CANCEL_CALLBACK:
        await cancel_scene(update, context)
        return
    if query.data == BACK_CALLBACK:
        await engine.back(user_id)
        await render_current_step(update, context, edit=True)
        return

    scene_input = SceneInput(choice=query.data[len(SCENE_CALLBACK_PREFIX):], services=build_services(context))
    await _process_input(update, context, scene_input, edit=True)


@safe_telegram_handler
async def cancel_scene(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    cancelled = await get_scene_engine().cancel(update.effective_user.id)
    text = messages.CANCELLED if cancelled else messages.NOTHING_TO_CANCEL
    await update.effective_message.reply_text(text, reply_markup=main_menu_keyboard())


SCENE_HANDLERS = [
    CommandHandler(list(ENTRY_COMMANDS), start_scene_handler),
    CommandHandler("cancel", cancel_scene),
    CallbackQueryHandler(start_scene_handler, pattern="^menu_(flexy|transfer|gift_card|verify)$"),
    CallbackQueryHandler(scene_callback_handler, pattern=f"^{SCENE_CALLBACK_PREFIX}"),
    MessageHandler((filters.TEXT & ~filters.COMMAND) | filters.PHOTO | filters.Document.IMAGE, scene_message_handler),
]


def register_scene_handlers(application: Application) -> None:
    for handler in SCENE_HANDLERS:
        application.add_handler(handler)
