"""
Utility functions for handling callback queries safely
"""

import html
import logging
import re
from typing import Optional, Tuple

from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
HTML_TAG = re.compile(r"<[^>]+>")


def fit_message(text: str, parse_mode: Optional[str] = ParseMode.HTML) -> Tuple[str, Optional[str]]:
    """
    Keep a message within Telegram's length limit.

    Cutting HTML can leave a tag open, so an oversized HTML message is
    reduced to its plain text first and sent without a parse mode.
    """
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text, parse_mode
    if parse_mode == ParseMode.HTML:
        text = html.unescape(HTML_TAG.sub("", text))
        parse_mode = None
    if len(text) > MAX_MESSAGE_LENGTH:
        text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text, parse_mode


async def safe_answer_callback_query(query, text: Optional[str] = None, show_alert: bool = False):
    """
    Answer a callback query first thing, so the button spinner stops.

    Failures (query too old, network) are logged and ignored; the button
    action itself still runs.
    """
    if not query:
        return
    try:
        if text:
            await query.answer(text, show_alert=show_alert)
        else:
            await query.answer()
    except TelegramError as answer_error:
        logger.debug(f"Callback answer failed (non-critical): {answer_error}")


async def safe_edit_message_text(query, text: str, **kwargs) -> bool:
    """Edit the message behind a callback query; False when it cannot be edited"""
    if not query or not getattr(query, "message", None):
        return False

    text, kwargs["parse_mode"] = fit_message(text, kwargs.get("parse_mode", ParseMode.HTML))

    try:
        await query.edit_message_text(text, **kwargs)
        return True
    except BadRequest as e:
        if "message is not modified" in str(e).lower():
            return True
        logger.warning(f"⚠️ Edit failed, sending new message instead: {e}")
    except TelegramError as e:
        logger.warning(f"⚠️ Edit failed, sending new message instead: {e}")

    try:
        await query.message.reply_text(text, **kwargs)
        return True
    except TelegramError as e:
        logger.error(f"❌ Could not deliver message: {e}")
        return False
