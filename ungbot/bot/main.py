from pyrogram import Client, filters
from pyrogram.types import CallbackQuery, Message

from ungbot.api import get_api_client
from ungbot.bot.accounts import AccountStore
from ungbot.bot.dispatcher import Dispatcher, InboundCallback, InboundMessage
from ungbot.bot.session_manager import SessionStore
from ungbot.bot.transport import PyrogramTransport
from ungbot.config import API_HASH, API_ID, BOT_TOKEN, SESSION_TIMEOUT
from ungbot.database.db import add_user, get_accounts_collection

app = Client(
    "ung_bot",
    api_id=API_ID,
    api_hash=API_HASH,
    bot_token=BOT_TOKEN
)

sessions = SessionStore(ttl_seconds=SESSION_TIMEOUT)
accounts = AccountStore(get_accounts_collection())

dispatcher = Dispatcher(
    transport=PyrogramTransport(app),
    api=get_api_client(),
    sessions=sessions,
    accounts=accounts,
    on_start=add_user,
)


def display_name(user):
    if user is None:
        return ""
    return " ".join(p for p in (user.first_name, user.last_name) if p) or (user.username or "")


@app.on_message(filters.private & (filters.text | filters.document))
async def on_message(client: Client, message: Message):
    user = message.from_user
    if user is None:
        return
    await dispatcher.handle_message(InboundMessage(
        user_id=user.id,
        chat_id=message.chat.id,
        text=message.text or message.caption or "",
        display_name=display_name(user),
        username=user.username or "",
        has_document=message.document is not None,
    ))
    message.stop_propagation()


@app.on_callback_query()
async def on_callback(client: Client, callback_query: CallbackQuery):
    message = callback_query.message
    await dispatcher.handle_callback(InboundCallback(
        callback_id=callback_query.id,
        user_id=callback_query.from_user.id,
        chat_id=message.chat.id if message else callback_query.from_user.id,
        message_id=message.id if message else 0,
        data=callback_query.data or "",
        display_name=display_name(callback_query.from_user),
    ))
