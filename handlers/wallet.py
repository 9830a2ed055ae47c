"""Wallet handlers: balance, history, withdrawals and fee previews"""

import logging
from typing import List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from handlers.session import build_services, require_session
from utils import messages
from utils.callback_utils import safe_answer_callback_query, safe_edit_message_text
from utils.decimal_precision import MonetaryDecimal
from utils.exception_handler import ValidationError, safe_telegram_handler

logger = logging.getLogger(__name__)

BACK_TO_MENU = InlineKeyboardMarkup([[InlineKeyboardButton("⬅️ القائمة", callback_data="main_menu")]])


async def _reply(update: Update, text: str) -> None:
    if update.callback_query:
        await safe_answer_callback_query(update.callback_query)
        await safe_edit_message_text(update.callback_query, text, reply_markup=BACK_TO_MENU)
    else:
        await update.effective_message.reply_text(text, reply_markup=BACK_TO_MENU, parse_mode=ParseMode.HTML)


@safe_telegram_handler
async def balance_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = require_session(context)
    balance = await build_services(context)["wallet"].get_balance(session.user_id)
    await _reply(update, f"💰 رصيدك الحالي: <b>{MonetaryDecimal.format_dzd(balance.balance)}</b>")


@safe_telegram_handler
async def history_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = require_session(context)
    wallet = build_services(context)["wallet"]
    deposits = await wallet.list_deposits(session.user_id, limit=5)
    withdrawals = await wallet.list_withdrawals(session.user_id, limit=5)
    transfers = await wallet.list_transfers(session.user_id, limit=5)

    lines: List[str] = ["<b>📥 الإيداعات</b>"]
    lines += [
        f"{MonetaryDecimal.format_dzd(d.amount)} • {d.payment_method} • {messages.status_label(d.status.value)}"
        for d in deposits
    ] or ["-"]
    lines.append("\n<b>📤 السحوبات</b>")
    lines += [
        f"{MonetaryDecimal.format_dzd(w.amount)} • {w.withdrawal_method} • {messages.status_label(w.status.value)}"
        for w in withdrawals
    ] or ["-"]
    lines.append("\n<b>💸 التحويلات</b>")
    lines += [
        f"{'⬆️' if t.direction_for(session.user_id) == 'sent' else '⬇️'} {MonetaryDecimal.format_dzd(t.amount)}"
        for t in transfers
    ] or ["-"]
    await _reply(update, "\n".join(lines))


@safe_telegram_handler
async def withdraw_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/withdraw <method> <amount> <account_number|cash_location> [holder name...]"""
    session = require_session(context)
    if len(context.args) < 3:
        raise ValidationError("usage", "/withdraw <method> <amount> <account|location> [name]")
    method, amount, target = context.args[0], context.args[1], context.args[2]
    holder = " ".join(context.args[3:]) or None

    wallet = build_services(context)["wallet"]
    if method == "cash":
        withdrawal = await wallet.create_withdrawal(session.user_id, amount, method, cash_location=target)
    else:
        withdrawal = await wallet.create_withdrawal(
            session.user_id, amount, method, account_number=target, account_holder_name=holder
        )
    await update.effective_message.reply_text(
        f"✅ {messages.WITHDRAWAL_SUBMITTED}\n{MonetaryDecimal.format_dzd(withdrawal.amount)} • {method}"
    )


@safe_telegram_handler
async def fees_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/fees <deposit|withdrawal|transfer> <amount>"""
    if len(context.args) != 2 or context.args[0] not in ("deposit", "withdrawal", "transfer"):
        raise ValidationError("usage", "/fees <deposit|withdrawal|transfer> <amount>")
    require_session(context)
    kind, amount = context.args
    fee = await build_services(context)["wallet"].preview_fee(kind, amount)
    if kind == "deposit":
        text = messages.fee_breakdown_text(fee.amount, fee.fee, fee.net)
    else:
        text = messages.fee_breakdown_text(fee.amount, fee.fee, fee.total, "المجموع")
    await update.effective_message.reply_text(text)


WALLET_HANDLERS = [
    CommandHandler("balance", balance_handler),
    CommandHandler("history", history_handler),
    CommandHandler("withdraw", withdraw_command),
    CommandHandler("fees", fees_command),
    CallbackQueryHandler(balance_handler, pattern="^menu_balance$"),
    CallbackQueryHandler(history_handler, pattern="^menu_history$"),
]


def register_wallet_handlers(application: Application) -> None:
    for handler in WALLET_HANDLERS:
        application.add_handler(handler)
