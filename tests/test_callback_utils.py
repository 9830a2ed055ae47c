"""Callback helpers: message length limit and edit fallbacks"""

from unittest.mock import AsyncMock, Mock

import pytest
from telegram.constants import ParseMode
from telegram.error import BadRequest

from utils.callback_utils import MAX_MESSAGE_LENGTH, fit_message, safe_edit_message_text


def callback_query():
    return Mock(edit_message_text=AsyncMock(), message=Mock(reply_text=AsyncMock()))


class TestFitMessage:

    def test_short_html_untouched(self):
        assert fit_message("<b>رصيدك</b>") == ("<b>رصيدك</b>", ParseMode.HTML)

    def test_long_html_sent_as_plain_text(self):
        row = "<b>إيداع</b> &amp; <code>1013</code>\n"
        text, parse_mode = fit_message(row * 400)

        assert parse_mode is None
        assert len(text) <= MAX_MESSAGE_LENGTH
        assert "<" not in text
        assert text.startswith("إيداع & 1013\n")
        assert text.endswith("...")

    def test_tags_stripped_before_cutting(self):
        # markup alone pushes it over the limit, the visible text fits
        text, parse_mode = fit_message("<b>x</b>" * 600)
        assert text == "x" * 600
        assert parse_mode is None

    def test_long_plain_text_cut(self):
        text, parse_mode = fit_message("a" * 5000, None)
        assert len(text) == MAX_MESSAGE_LENGTH
        assert parse_mode is None


class TestSafeEdit:

    @pytest.mark.asyncio
    async def test_oversized_edit_has_no_parse_mode(self):
        query = callback_query()
        assert await safe_edit_message_text(query, "<i>سجل</i>\n" * 1000)

        kwargs = query.edit_message_text.call_args.kwargs
        assert kwargs["parse_mode"] is None
        assert "<i>" not in query.edit_message_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_not_modified_counts_as_success(self):
        query = callback_query()
        query.edit_message_text.side_effect = BadRequest("Message is not modified")
        assert await safe_edit_message_text(query, "<b>ok</b>")
        query.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_new_message(self):
        query = callback_query()
        query.edit_message_text.side_effect = BadRequest("Message can't be edited")
        assert await safe_edit_message_text(query, "<b>ok</b>")
        query.message.reply_text.assert_awaited_once_with("<b>ok</b>", parse_mode=ParseMode.HTML)
