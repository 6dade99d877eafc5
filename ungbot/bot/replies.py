"""
Transport-neutral reply types and the chat transport interface.

Handlers build ``Reply`` objects and hand them to a ``ChatTransport``. The
pyrogram adapter lives in ``ungbot.bot.transport``; tests use a fake.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class Button:
    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


Keyboard = List[List[Button]]


@dataclass
class Reply:
    text: str
    buttons: Keyboard = field(default_factory=list)


class ChatTransport(Protocol):
    async def send_text(self, chat_id: int, text: str) -> None: ...

    async def send_buttons(self, chat_id: int, text: str, buttons: Keyboard) -> None: ...

    async def edit_text(self, chat_id: int, message_id: int, text: str,
                        buttons: Optional[Keyboard] = None) -> None: ...

    async def answer_callback(self, callback_id: str, text: str = "",
                              show_alert: bool = False) -> None: ...


async def send_reply(transport: ChatTransport, chat_id: int, reply: Reply) -> None:
    if reply.buttons:
        await transport.send_buttons(chat_id, reply.text, reply.buttons)
    else:
        await transport.send_text(chat_id, reply.text)
