"""
bot/dispatcher.py — Routes every inbound message and button press.

Routing
-------
Message:
    /skip                    -> the active flow's current step
    any other /command       -> clears the active flow, then runs the command
    plain text, session      -> the active flow's current step
    plain text, timed out    -> "start again with /<command>"
    plain text, no session   -> "didn't understand" hint

Callback (see ungbot.bot.states for the payload grammar):
    sel:<flow>:<step>:<v>    -> the active flow, if it is still on that step
    start:<flow>[:<seed>]    -> clears the active flow, starts another
    action / menu / login / help / cancel -> top-level, clears the active flow

Each event runs under its user's session lock, so one user's events are
handled one at a time while different users proceed concurrently.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from ungbot.api.client import UngAPIClient
from ungbot.bot import auth, commands, states
from ungbot.bot.accounts import AccountStore
from ungbot.bot.flow_runner import FlowRunner
from ungbot.bot.replies import ChatTransport, send_reply
from ungbot.bot.session_manager import SessionStore
from ungbot.config import WEB_APP_URL
from ungbot.flows.definitions import FLOWS, LOGIN, entry_command
from ungbot.flows.engine import SKIP, Flow, FlowContext, UnknownStepError

logger = logging.getLogger(__name__)

UNKNOWN_COMMAND = "Unknown command. Try /help"
NOT_UNDERSTOOD = "I didn't understand that. Try /help for available commands."
SESSION_LOST = "⚠️ Session expired. Please start again."
SESSION_LOST_FOR = "⚠️ Session expired. Please start again with {command}"
GENERIC_ERROR = "⚠️ Something went wrong. Please try again."


@dataclass
class InboundMessage:
    user_id: int
    chat_id: int
    text: str = ""
    display_name: str = ""
    username: str = ""
    has_document: bool = False


@dataclass
class InboundCallback:
    callback_id: str
    user_id: int
    chat_id: int
    message_id: int
    data: str
    display_name: str = ""


class Dispatcher:
    def __init__(
        self,
        transport: ChatTransport,
        api: UngAPIClient,
        sessions: SessionStore,
        accounts: AccountStore,
        flows: Optional[Dict[str, Flow]] = None,
        on_start: Optional[Callable[[int, str], Awaitable[None]]] = None,
    ) -> None:
        self.transport = transport
        self.api = api
        self.sessions = sessions
        self.accounts = accounts
        self.flows = FLOWS if flows is None else flows
        self.flows_by_command = {f.command: f for f in self.flows.values() if f.command}
        self.runner = FlowRunner(transport, sessions)
        self.on_start = on_start

    async def _context(self, user_id: int, display_name: str = "") -> FlowContext:
        return FlowContext(
            api=self.api,
            accounts=self.accounts,
            user_id=user_id,
            display_name=display_name,
            account=await self.accounts.get(user_id),
        )

    # --------------------------------------------------------------- messages

    async def handle_message(self, msg: InboundMessage) -> None:
        self.sessions.purge_expired()
        async with self.sessions.hold(msg.user_id):
            try:
                await self._route_message(msg)
            except Exception:
                logger.exception("Error handling message from user %s", msg.user_id)
                await self.transport.send_text(msg.chat_id, GENERIC_ERROR)

    async def _route_message(self, msg: InboundMessage) -> None:
        text = (msg.text or "").strip()

        if msg.has_document and not text:
            await self.transport.send_text(
                msg.chat_id,
                f"📎 File uploads aren't supported in chat yet. Use the web app: {WEB_APP_URL}",
            )
            return

        if text.startswith("/"):
            command = text.split()[0][1:].split("@")[0].lower()
            if command != SKIP[1:]:
                had_session = self.sessions.get(msg.user_id) is not None
                self.sessions.clear(msg.user_id)
                await self._command(command, msg, had_session)
                return

        session = self.sessions.get(msg.user_id)
        if session is None:
            expired = self.flows.get(self.sessions.pop_expired(msg.user_id) or "")
            if expired is not None:
                await self.transport.send_text(msg.chat_id, SESSION_LOST_FOR.format(command=entry_command(expired)))
            else:
                await self.transport.send_text(msg.chat_id, NOT_UNDERSTOOD)
            return

        flow = self.flows.get(session.flow_name)
        ctx = await self._context(msg.user_id, msg.display_name)
        if flow is None:
            self.sessions.clear(msg.user_id)
            await self.transport.send_text(msg.chat_id, SESSION_LOST)
            return
        if flow.requires_auth and ctx.account is None:
            self.sessions.clear(msg.user_id)
            await send_reply(self.transport, msg.chat_id, auth.auth_required_reply())
            return

        try:
            await self.runner.handle_text(flow, session, ctx, msg.chat_id, text)
        except UnknownStepError:
            logger.warning("User %s had unknown state %s", msg.user_id, session.state)
            self.sessions.clear(msg.user_id)
            await self.transport.send_text(msg.chat_id, SESSION_LOST_FOR.format(command=entry_command(flow)))

    async def _command(self, command: str, msg: InboundMessage, had_session: bool) -> None:
        chat_id = msg.chat_id

        if command == "start":
            if self.on_start is not None:
                await self.on_start(msg.user_id, msg.username)
            account = await self.accounts.get(msg.user_id)
            if account:
                await send_reply(self.transport, chat_id, auth.main_menu_reply(account.display_name))
            else:
                await send_reply(self.transport, chat_id, commands.welcome_reply())
        elif command == "help":
            await send_reply(self.transport, chat_id, commands.help_reply())
        elif command == "menu":
            await self._menu(msg.user_id, chat_id)
        elif command == "cancel":
            text = "❌ Cancelled." if had_session else "Nothing to cancel."
            if had_session:
                logger.info("User %s cancelled their flow", msg.user_id)
            await self.transport.send_text(chat_id, text)
        elif command == "logout":
            await send_reply(self.transport, chat_id, await auth.logout(self.accounts, msg.user_id))
        elif command in commands.VIEWS:
            await self._view(command, msg.user_id, chat_id)
        elif command in self.flows_by_command:
            flow = self.flows_by_command[command]
            args = msg.text.strip().split(None, 1)[1:] if flow.inline_answer else []
            await self._start_flow(
                flow, msg.user_id, chat_id, msg.display_name, answer=args[0] if args else ""
            )
        else:
            await self.transport.send_text(chat_id, UNKNOWN_COMMAND)

    async def _menu(self, user_id: int, chat_id: int) -> None:
        account = await self.accounts.get(user_id)
        reply = auth.main_menu_reply(account.display_name) if account else commands.welcome_reply()
        await send_reply(self.transport, chat_id, reply)

    async def _view(self, name: str, user_id: int, chat_id: int) -> None:
        account = await self.accounts.get(user_id)
        if account is None:
            await send_reply(self.transport, chat_id, auth.auth_required_reply())
            return
        await send_reply(self.transport, chat_id, await commands.run_view(self.api, account.api_token, name))

    async def _start_flow(
        self, flow: Flow, user_id: int, chat_id: int, display_name: str, seed=None, answer: str = ""
    ) -> None:
        ctx = await self._context(user_id, display_name)
        if flow.requires_auth and ctx.account is None:
            await send_reply(self.transport, chat_id, auth.auth_required_reply())
            return
        await self.runner.start(flow, ctx, chat_id, seed, answer)

    # -------------------------------------------------------------- callbacks

    async def handle_callback(self, cb: InboundCallback) -> None:
        self.sessions.purge_expired()
        async with self.sessions.hold(cb.user_id):
            try:
                await self._route_callback(cb)
            except Exception:
                logger.exception("Error handling callback %r from user %s", cb.data, cb.user_id)
                await self.transport.answer_callback(cb.callback_id, GENERIC_ERROR, show_alert=True)

    async def _route_callback(self, cb: InboundCallback) -> None:
        parts = states.parse_callback(cb.data)
        kind = parts[0] if parts else ""

        if kind == states.Callback.SELECT and len(parts) == 4:
            await self._select(cb, parts[1], parts[2], parts[3])
            return

        # Everything else is top-level: it replaces whatever flow was active.
        self.sessions.clear(cb.user_id)

        if kind == states.Callback.START and len(parts) >= 2:
            flow = self.flows.get(parts[1])
            if flow is None:
                await self.transport.answer_callback(cb.callback_id, "Unknown action")
                return
            seed = _parse_seed(parts[2]) if len(parts) > 2 else None
            if flow.seed_key and seed is None:
                await self.transport.answer_callback(cb.callback_id, "Unknown action")
                return
            await self.transport.answer_callback(cb.callback_id)
            await self._start_flow(flow, cb.user_id, cb.chat_id, cb.display_name, seed)
        elif kind == states.Callback.LOGIN:
            await self.transport.answer_callback(cb.callback_id)
            await self._start_flow(LOGIN, cb.user_id, cb.chat_id, cb.display_name)
        elif kind == states.Callback.CANCEL:
            await self.transport.answer_callback(cb.callback_id, "Cancelled")
            await self.transport.edit_text(cb.chat_id, cb.message_id, "❌ Cancelled.")
        elif kind == states.Callback.MENU:
            await self.transport.answer_callback(cb.callback_id)
            await self._menu(cb.user_id, cb.chat_id)
        elif kind == states.Callback.HELP:
            await self.transport.answer_callback(cb.callback_id)
            await send_reply(self.transport, cb.chat_id, commands.help_reply())
        elif kind == states.Callback.ACTION and len(parts) == 2 and parts[1] in commands.VIEWS:
            await self.transport.answer_callback(cb.callback_id)
            await self._view(parts[1], cb.user_id, cb.chat_id)
        else:
            await self.transport.answer_callback(cb.callback_id, "Unknown action")

    async def _select(self, cb: InboundCallback, flow_name: str, step_key: str, value: str) -> None:
        flow = self.flows.get(flow_name)
        if flow is None:
            await self.transport.answer_callback(cb.callback_id, "Unknown action")
            return

        session = self.sessions.get(cb.user_id)
        if session is None or session.flow_name != flow_name:
            self.sessions.pop_expired(cb.user_id)
            await self.transport.answer_callback(
                cb.callback_id,
                f"Session expired. Please start again with {entry_command(flow)}",
                show_alert=True,
            )
            return

        ctx = await self._context(cb.user_id, cb.display_name)
        if flow.requires_auth and ctx.account is None:
            self.sessions.clear(cb.user_id)
            await self.transport.answer_callback(cb.callback_id)
            await send_reply(self.transport, cb.chat_id, auth.auth_required_reply())
            return

        try:
            await self.runner.handle_choice(
                flow, session, ctx, cb.chat_id, cb.message_id, cb.callback_id, step_key, value
            )
        except UnknownStepError:
            logger.warning("User %s had unknown state %s", cb.user_id, session.state)
            self.sessions.clear(cb.user_id)
            await self.transport.answer_callback(
                cb.callback_id, SESSION_LOST_FOR.format(command=entry_command(flow)), show_alert=True
            )


def _parse_seed(raw: str):
    return int(raw) if raw.isdigit() else raw
