"""
Admin handler for approval queues and platform settings

Telegram ids in ADMIN_USER_IDS get the commands; every action is still
authorized by the backend role check inside AdminService.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from config import Config
from handlers.session import build_services, require_session
from models import FlexyDepositSettings
from services.admin_service import PENDING_QUEUES, AdminService
from utils import messages
from utils.callback_utils import safe_answer_callback_query, safe_edit_message_text
from utils.decimal_precision import MonetaryDecimal
from utils.exception_handler import AuthorizationError, ValidationError, safe_telegram_handler

logger = logging.getLogger(__name__)

APPROVE_CALLBACK_PREFIX = "adm_ok:"

# queue -> approve call; extra is the optional value typed after the id
APPROVERS: Dict[str, Callable[..., Awaitable[Any]]] = {
    "deposits": lambda admin, uid, rid, extra: admin.approve_deposit(uid, rid, adjusted_amount=extra),
    "withdrawals": lambda admin, uid, rid, extra: admin.approve_withdrawal(uid, rid, notes=extra),
    "verifications": lambda admin, uid, rid, extra: admin.approve_verification_request(uid, rid),
    "merchants": lambda admin, uid, rid, extra: admin.approve_merchant_request(uid, rid, commission_rate=extra),
    "betting": lambda admin, uid, rid, extra: admin.approve_betting_deposit(uid, rid, notes=extra),
    "digital_cards": lambda admin, uid, rid, extra: admin.approve_digital_card_order(uid, rid, notes=extra),
    "game_topups": lambda admin, uid, rid, extra: admin.approve_game_topup_order(uid, rid, notes=extra),
    "phone_topups": lambda admin, uid, rid, extra: admin.approve_phone_topup_order(uid, rid, notes=extra),
    "diaspora": lambda admin, uid, rid, extra: admin.approve_diaspora_transfer(uid, rid, exchange_rate=extra),
}

REJECTORS: Dict[str, Callable[..., Awaitable[Any]]] = {
    "deposits": AdminService.reject_deposit,
    "withdrawals": AdminService.reject_withdrawal,
    "verifications": AdminService.reject_verification_request,
    "merchants": AdminService.reject_merchant_request,
    "betting": AdminService.reject_betting_deposit,
    "digital_cards": AdminService.reject_digital_card_order,
    "game_topups": AdminService.reject_game_topup_order,
    "phone_topups": AdminService.reject_phone_topup_order,
    "diaspora": AdminService.reject_diaspora_transfer,
}

# queues whose approval needs an argument and cannot be a one-tap button
NEEDS_ARGUMENT = {"diaspora"}

AMOUNT_KEYS = {"digital_cards": "total_dzd", "diaspora": "amount"}


def is_admin_user(telegram_id: Optional[int]) -> bool:
    return telegram_id is not None and telegram_id in Config.ADMIN_USER_IDS


def _require_admin_chat(update: Update) -> None:
    user = update.effective_user
    if not is_admin_user(user.id if user else None):
        logger.warning(f"🚫 Admin command from non-admin telegram user {user.id if user else None}")
        raise AuthorizationError("telegram user not in ADMIN_USER_IDS", messages.NOT_AUTHORIZED)


def _queue_arg(name: str) -> str:
    if name not in PENDING_QUEUES:
        raise ValidationError(f"unknown queue {name}", f"{messages.GENERIC_ERROR}: {', '.join(PENDING_QUEUES)}")
    return name


def _queue_keyboard(queue: str, rows: List[Dict[str, Any]]) -> Optional[InlineKeyboardMarkup]:
    if queue in NEEDS_ARGUMENT:
        return None
    buttons = [
        [InlineKeyboardButton(f"✅ #{str(row['id'])[:8]}", callback_data=f"{APPROVE_CALLBACK_PREFIX}{queue}:{row['id']}")]
        for row in rows
        if row.get("id")
    ]
    return InlineKeyboardMarkup(buttons) if buttons else None


@safe_telegram_handler
async def pending_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/pending - counts per queue; /pending <queue> - the queue's rows"""
    _require_admin_chat(update)
    session = require_session(context)
    admin: AdminService = build_services(context)["admin"]

    if not context.args:
        counts = await admin.queue_counts(session.user_id)
        lines = ["<b>📋 الطلبات المعلقة</b>"] + [f"• {queue}: {count}" for queue, count in counts.items()]
        await update.effective_message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)
        return

    queue = _queue_arg(context.args[0])
    pending = await admin.pending_queue(session.user_id, queue, limit=20)
    amount_key = AMOUNT_KEYS.get(queue, "amount")
    lines = [f"<b>{queue}</b> ({pending.count})"]
    lines += [messages.summarize_row(row, amount_key) for row in pending.rows] or ["-"]
    await update.effective_message.reply_text(
        "\n".join(lines), parse_mode=ParseMode.HTML, reply_markup=_queue_keyboard(queue, pending.rows)
    )


@safe_telegram_handler
async def approve_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/approve <queue> <id> [amount|commission|exchange_rate|notes]"""
    _require_admin_chat(update)
    if len(context.args) < 2:
        raise ValidationError("usage", "/approve <queue> <id> [value]")
    queue = _queue_arg(context.args[0])
    request_id = context.args[1]
    extra = " ".join(context.args[2:]) or None
    if queue in NEEDS_ARGUMENT and extra is None:
        raise ValidationError("exchange rate required", "/approve diaspora <id> <exchange_rate>")

    session = require_session(context)
    await APPROVERS[queue](build_services(context)["admin"], session.user_id, request_id, extra)
    logger.info(f"✅ Telegram admin {update.effective_user.id} approved {queue}/{request_id}")
    await update.effective_message.reply_text(messages.REQUEST_APPROVED)


@safe_telegram_handler
async def reject_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/reject <queue> <id> <reason...>"""
    _require_admin_chat(update)
    if len(context.args) < 2:
        raise ValidationError("usage", "/reject <queue> <id> <reason>")
    queue = _queue_arg(context.args[0])
    request_id = context.args[1]
    reason = " ".join(context.args[2:])

    session = require_session(context)
    await REJECTORS[queue](build_services(context)["admin"], session.user_id, request_id, reason)
    logger.info(f"❌ Telegram admin {update.effective_user.id} rejected {queue}/{request_id}")
    await update.effective_message.reply_text(messages.REQUEST_REJECTED)


@safe_telegram_handler
async def approve_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """One-tap approval from a /pending listing"""
    query = update.callback_query
    await safe_answer_callback_query(query)
    _require_admin_chat(update)
    queue, _, request_id = query.data[len(APPROVE_CALLBACK_PREFIX):].partition(":")
    _queue_arg(queue)
    if queue in NEEDS_ARGUMENT:
        raise ValidationError("approval needs an argument", f"/approve {queue} {request_id} <value>")

    session = require_session(context)
    await APPROVERS[queue](build_services(context)["admin"], session.user_id, request_id, None)
    await safe_edit_message_text(query, f"{messages.REQUEST_APPROVED} #{request_id[:8]}")


@safe_telegram_handler
async def recalc_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/recalc [user_id] - rebuild one wallet balance, or all of them"""
    _require_admin_chat(update)
    session = require_session(context)
    admin: AdminService = build_services(context)["admin"]
    if context.args:
        result = await admin.recalculate_user_balance(session.user_id, context.args[0])
        balance = result.get_decimal("balance")
        text = f"🔄 {context.args[0]}: {MonetaryDecimal.format_dzd(balance)}" if balance is not None else "🔄 ✅"
    else:
        await admin.recalculate_all_balances(session.user_id)
        text = "🔄 ✅"
    await update.effective_message.reply_text(text)


@safe_telegram_handler
async def refresh_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/refresh - reload platform settings changed from the dashboard"""
    _require_admin_chat(update)
    session = require_session(context)
    admin: AdminService = build_services(context)["admin"]
    result = await admin.refresh_reference_data(session.user_id)
    await update.effective_message.reply_text(messages.SETTINGS_REFRESHED.format(count=result["dropped"]))


def parse_settings_args(args: List[str], current: FlexyDepositSettings) -> FlexyDepositSettings:
    """key=value pairs over the current settings"""
    values = current.to_row()
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or key not in values:
            raise ValidationError(f"bad setting {arg}", f"{messages.GENERIC_ERROR}: {', '.join(values)}")
        values[key] = value.strip().lower() in ("1", "true", "yes", "on") if key == "enabled" else value.strip()
    return FlexyDepositSettings.from_row(values, defaults=current)


@safe_telegram_handler
async def flexy_settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/flexy_settings [key=value ...]"""
    _require_admin_chat(update)
    session = require_session(context)
    flexy = build_services(context)["flexy"]
    settings = await flexy.get_settings()
    if context.args:
        settings = await flexy.update_settings(session.user_id, parse_settings_args(context.args, settings))
        await update.effective_message.reply_text(f"✅ {messages.FLEXY_SETTINGS_SAVED}")

    await update.effective_message.reply_text(
        f"📲 enabled={settings.enabled}\n"
        f"receiving_number={settings.receiving_number or '-'}\n"
        f"fee_percentage={settings.fee_percentage}\n"
        f"min_amount={settings.min_amount}\n"
        f"max_amount={settings.max_amount}\n"
        f"daily_limit={settings.daily_limit}"
    )


ADMIN_HANDLERS = [
    CommandHandler("pending", pending_command),
    CommandHandler("approve", approve_command),
    CommandHandler("reject", reject_command),
    CommandHandler("recalc", recalc_command),
    CommandHandler("refresh", refresh_command),
    CommandHandler("flexy_settings", flexy_settings_command),
    CallbackQueryHandler(approve_callback, pattern=f"^{APPROVE_CALLBACK_PREFIX}"),
]


def register_admin_handlers(application: Application) -> None:
    for handler in ADMIN_HANDLERS:
        application.add_handler(handler)
