"""
bot/transport.py — ChatTransport implemented on a pyrogram Client.
"""
from __future__ import annotations

import logging
from typing import Optional

from pyrogram import Client
from pyrogram.errors import MessageNotModified
from pyrogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ungbot.bot.replies import Keyboard

logger = logging.getLogger(__name__)


def to_markup(buttons: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton(b.text, url=b.url) if b.url
            else InlineKeyboardButton(b.text, callback_data=b.callback_data)
            for b in row
        ]
        for row in buttons
    ])


class PyrogramTransport:
    def __init__(self, client: Client) -> None:
        self.client = client

    async def send_text(self, chat_id: int, text: str) -> None:
        await self.client.send_message(chat_id, text, disable_web_page_preview=True)

    async def send_buttons(self, chat_id: int, text: str, buttons: Keyboard) -> None:
        await self.client.send_message(
            chat_id, text,
            reply_markup=to_markup(buttons),
            disable_web_page_preview=True,
        )

    async def edit_text(self, chat_id: int, message_id: int, text: str,
                        buttons: Optional[Keyboard] = None) -> None:
        try:
            await self.client.edit_message_text(
                chat_id, message_id, text,
                reply_markup=to_markup(buttons),
                disable_web_page_preview=True,
            )
        except MessageNotModified:
            logger.debug("Message %s in chat %s already up to date", message_id, chat_id)

    async def answer_callback(self, callback_id: str, text: str = "",
                              show_alert: bool = False) -> None:
        await self.client.answer_callback_query(
            callback_id, text=text or None, show_alert=show_alert,
        )
