"""Start, account linking and the main menu"""

import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from config import Config
from handlers.session import SESSION_KEY, get_session, link_session
from utils import messages
from utils.callback_utils import safe_answer_callback_query, safe_edit_message_text
from utils.exception_handler import safe_telegram_handler

logger = logging.getLogger(__name__)


def main_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("💰 رصيدي", callback_data="menu_balance"),
            InlineKeyboardButton("📲 إيداع فليكسي", callback_data="menu_flexy"),
        ],
        [
            InlineKeyboardButton("💸 تحويل", callback_data="menu_transfer"),
            InlineKeyboardButton("🎁 تعمير بطاقة", callback_data="menu_gift_card"),
        ],
        [
            InlineKeyboardButton("📜 السجل", callback_data="menu_history"),
            InlineKeyboardButton("🪪 توثيق الهوية", callback_data="menu_verify"),
        ],
    ])


def main_menu_text(full_name: str = "") -> str:
    greeting = f"مرحباً {full_name} 👋" if full_name else "مرحباً 👋"
    return f"{greeting}\n\n<b>{Config.PLATFORM_NAME}</b> - محفظتك الرقمية"


@safe_telegram_handler
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/start [access_token] - link the account when opened from the app"""
    if context.args:
        session = await link_session(context, context.args[0])
        await update.effective_message.reply_text(messages.SESSION_LINKED)
    else:
        session = get_session(context)

    if session is None:
        await update.effective_message.reply_text(messages.LOGIN_REQUIRED)
        return
    await update.effective_message.reply_text(
        main_menu_text(session.full_name or ""), reply_markup=main_menu_keyboard(), parse_mode="HTML"
    )


@safe_telegram_handler
async def logout_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop(SESSION_KEY, None)
    await update.effective_message.reply_text("👋 تم فصل حسابك")


@safe_telegram_handler
async def main_menu_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await safe_answer_callback_query(query)
    session = get_session(context)
    await safe_edit_message_text(
        query, main_menu_text(session.full_name if session else ""), reply_markup=main_menu_keyboard()
    )


START_HANDLERS = [
    CommandHandler("start", start_command),
    CommandHandler("logout", logout_command),
    CallbackQueryHandler(main_menu_callback, pattern="^main_menu$"),
]


def register_start_handlers(application: Application) -> None:
    for handler in START_HANDLERS:
        application.add_handler(handler)
