"""
Top-up and shop handlers

Phone airtime, betting deposits, digital cards, AliExpress quotes, card
delivery fees, merchant requests and diaspora transfer requests. Paid actions
show a fee preview first and only run after the confirm button.
"""

import logging
from typing import Any, Dict

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from handlers.session import build_services, require_session
from utils import messages
from utils.callback_utils import safe_answer_callback_query, safe_edit_message_text
from utils.decimal_precision import MonetaryDecimal
from utils.exception_handler import ValidationError, safe_telegram_handler

logger = logging.getLogger(__name__)

PENDING_ORDER_KEY = "pending_order"


def _confirm_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("✅ تأكيد", callback_data="order_confirm"),
        InlineKeyboardButton("✖️ إلغاء", callback_data="order_cancel"),
    ]])


def _usage(text: str) -> ValidationError:
    return ValidationError("usage", text)


@safe_telegram_handler
async def operators_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    require_session(context)
    operators = await build_services(context)["topup"].list_operators()
    lines = [
        f"• {op.name} (<code>{op.slug or op.id}</code>) {MonetaryDecimal.format_dzd(op.min_amount)}"
        f" - {MonetaryDecimal.format_dzd(op.max_amount) if op.max_amount else '∞'}"
        for op in operators
    ]
    await update.effective_message.reply_text("\n".join(lines) or "-", parse_mode=ParseMode.HTML)


@safe_telegram_handler
async def topup_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/topup <operator> <phone> <amount>"""
    require_session(context)
    if len(context.args) != 3:
        raise _usage("/topup <operator> <phone> <amount>")
    operator_key, phone, amount = context.args
    topup = build_services(context)["topup"]
    operator = next(
        (op for op in await topup.list_operators() if operator_key in (op.id, op.slug)), None
    )
    if operator is None:
        raise ValidationError(f"unknown operator {operator_key}", messages.GENERIC_ERROR)

    quote = await topup.preview_phone_topup(operator.id, phone, amount)
    context.user_data[PENDING_ORDER_KEY] = {
        "kind": "phone_topup", "operator_id": operator.id, "phone": quote.phone_number, "amount": quote.fee.amount,
    }
    await update.effective_message.reply_text(
        f"📱 {operator.name} • {quote.phone_number}\n\n"
        + messages.fee_breakdown_text(quote.fee.amount, quote.fee.fee, quote.total, "المجموع"),
        reply_markup=_confirm_keyboard(),
    )


@safe_telegram_handler
async def betting_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/betting <platform_id> <player_id> <amount>"""
    require_session(context)
    if len(context.args) != 3:
        raise _usage("/betting <platform_id> <player_id> <amount>")
    platform_id, player_id, amount = context.args
    topup = build_services(context)["topup"]
    await topup.verify_betting_account(platform_id, player_id)
    fee = topup.preview_betting_deposit(amount)
    context.user_data[PENDING_ORDER_KEY] = {
        "kind": "betting", "platform_id": platform_id, "player_id": player_id, "amount": fee.amount,
    }
    await update.effective_message.reply_text(
        f"🎯 {player_id}\n\n" + messages.fee_breakdown_text(fee.amount, fee.fee, fee.net),
        reply_markup=_confirm_keyboard(),
    )


@safe_telegram_handler
async def card_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/card <card_type_id> <account_id> <amount_usd>"""
    require_session(context)
    shop = build_services(context)["shop"]
    if len(context.args) != 3:
        card_types = await shop.list_card_types()
        lines = [f"• {c.get('name')} (<code>{c.get('id')}</code>)" for c in card_types]
        await update.effective_message.reply_text(
            "\n".join(lines + ["", "/card <card_type_id> <account_id> <amount_usd>"]), parse_mode=ParseMode.HTML
        )
        return
    card_type_id, account_id, amount_usd = context.args
    card_type = next((c for c in await shop.list_card_types() if str(c.get("id")) == card_type_id), None)
    if card_type is None:
        raise ValidationError(f"unknown card type {card_type_id}", messages.GENERIC_ERROR)
    fee = await shop.preview_digital_card(amount_usd, card_type.get("exchange_rate"))
    context.user_data[PENDING_ORDER_KEY] = {
        "kind": "digital_card", "card_type_id": card_type_id, "account_id": account_id, "amount_usd": amount_usd,
    }
    await update.effective_message.reply_text(
        f"💳 {card_type.get('name')} • ${amount_usd}\n\n"
        + messages.fee_breakdown_text(fee.amount, fee.fee, fee.total, "المجموع"),
        reply_markup=_confirm_keyboard(),
    )


@safe_telegram_handler
async def aliexpress_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/aliexpress <product url>"""
    require_session(context)
    if len(context.args) != 1:
        raise _usage("/aliexpress <url>")
    shop = build_services(context)["shop"]
    product = await shop.scrape_aliexpress(context.args[0])
    quote = await shop.aliexpress_quote(product.get("price"), product.get("shipping"))
    context.user_data[PENDING_ORDER_KEY] = {
        "kind": "aliexpress",
        "url": context.args[0],
        "title": product.get("title") or "",
        "image": product.get("image"),
        "quote": quote,
    }
    await update.effective_message.reply_text(
        f"🛒 {product.get('title', '')}\n"
        f"{MonetaryDecimal.format_usd(quote.price_usd)} + {MonetaryDecimal.format_usd(quote.shipping_usd)}"
        f" × {quote.exchange_rate}\n"
        f"💰 {MonetaryDecimal.format_dzd(quote.final_total_dzd)}",
        reply_markup=_confirm_keyboard(),
    )


@safe_telegram_handler
async def delivery_fee_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/delivery [wilaya]"""
    require_session(context)
    wilaya = " ".join(context.args) or None
    fee = await build_services(context)["shop"].delivery_fee(wilaya)
    await update.effective_message.reply_text(f"🚚 {wilaya or ''} {MonetaryDecimal.format_dzd(fee)}".strip())


@safe_telegram_handler
async def merchant_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/merchant <phone> <business_type> <business name...>"""
    session = require_session(context)
    merchant = build_services(context)["merchant"]
    if len(context.args) < 3:
        existing = await merchant.get_my_request(session.user_id)
        if existing:
            await update.effective_message.reply_text(messages.status_label(existing.get("status")))
        else:
            await update.effective_message.reply_text("/merchant <phone> <business_type> <business name>")
        return
    phone, business_type = context.args[0], context.args[1]
    await merchant.submit_request(session.user_id, " ".join(context.args[2:]), business_type, phone)
    await update.effective_message.reply_text(f"✅ {messages.status_label('pending')}")


@safe_telegram_handler
async def diaspora_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/diaspora <phone> | <amount> | <country> | [city] | [recipient name] | [note]"""
    session = require_session(context)
    diaspora = build_services(context)["diaspora"]
    fields = [part.strip() for part in " ".join(context.args).split("|")] if context.args else []
    if len(fields) < 3:
        latest = await diaspora.get_latest_transfer(session.user_id)
        if not latest:
            raise _usage(messages.DIASPORA_USAGE)
        await update.effective_message.reply_text(
            f"🌍 {latest.get('amount')} → {latest.get('recipient_phone')}: {messages.status_label(latest.get('status'))}"
            f"\n\n{messages.DIASPORA_USAGE}"
        )
        return
    fields += [""] * (6 - len(fields))
    phone, amount, country, city, name = fields[:5]
    note = " | ".join(fields[5:])
    await diaspora.create_transfer(
        session.user_id, phone, amount, country, sender_city=city, recipient_name=name, note=note
    )
    await update.effective_message.reply_text(f"✅ {messages.DIASPORA_SUBMITTED}")


async def _execute_order(order: Dict[str, Any], session, services: Dict[str, Any]) -> str:
    kind = order["kind"]
    if kind == "phone_topup":
        await services["topup"].create_phone_topup(order["operator_id"], order["phone"], order["amount"])
    elif kind == "betting":
        await services["topup"].create_betting_deposit(order["platform_id"], order["player_id"], order["amount"])
    elif kind == "digital_card":
        await services["shop"].purchase_digital_card(order["card_type_id"], order["account_id"], order["amount_usd"])
    elif kind == "aliexpress":
        await services["shop"].create_aliexpress_order(
            session.user_id, order["url"], order["title"], order["quote"], order.get("image")
        )
    else:
        raise ValidationError(f"unknown order kind {kind}", messages.GENERIC_ERROR)
    return messages.status_label("pending") if kind == "aliexpress" else messages.status_label("completed")


@safe_telegram_handler
async def order_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await safe_answer_callback_query(query)
    order = context.user_data.pop(PENDING_ORDER_KEY, None)
    if query.data == "order_cancel" or order is None:
        await safe_edit_message_text(query, messages.CANCELLED if order else messages.NOTHING_TO_CANCEL)
        return
    session = require_session(context)
    result = await _execute_order(order, session, build_services(context))
    logger.info(f"✅ {order['kind']} order placed by {session.user_id}")
    await safe_edit_message_text(query, result)


TOPUP_HANDLERS = [
    CommandHandler("operators", operators_command),
    CommandHandler("topup", topup_command),
    CommandHandler("betting", betting_command),
    CommandHandler("card", card_command),
    CommandHandler("aliexpress", aliexpress_command),
    CommandHandler("delivery", delivery_fee_command),
    CommandHandler("merchant", merchant_command),
    CommandHandler("diaspora", diaspora_command),
    CallbackQueryHandler(order_callback, pattern="^order_(confirm|cancel)$"),
]


def register_topup_handlers(application: Application) -> None:
    for handler in TOPUP_HANDLERS:
        application.add_handler(handler)
