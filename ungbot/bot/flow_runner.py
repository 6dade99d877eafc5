"""
bot/flow_runner.py — Drives a Flow over a chat transport.

The engine decides *what* happens to a session; the runner does the talking:
sending prompts (with buttons for selection steps), re-prompting after a
rejected answer, and on completion clearing the session and running the
flow's finalize action exactly once.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from ungbot.api.client import APIError
from ungbot.bot import states
from ungbot.bot.keyboards import get_cancel_keyboard, rows
from ungbot.bot.replies import Button, ChatTransport, send_reply
from ungbot.bot.session_manager import Session, SessionStore
from ungbot.flows import engine
from ungbot.flows.engine import Flow, FlowContext, InputKind, Option, Result, Step

logger = logging.getLogger(__name__)


class FlowRunner:
    def __init__(self, transport: ChatTransport, sessions: SessionStore) -> None:
        self.transport = transport
        self.sessions = sessions

    # ------------------------------------------------------------------ start

    async def start(
        self, flow: Flow, ctx: FlowContext, chat_id: int, seed: Any = None, answer: str = ""
    ) -> Optional[Session]:
        """
        Open a new session for ``flow`` (replacing any other) and ask the
        first question. A non-empty ``answer`` is fed to that question
        instead of asking it.
        """
        state, data = engine.begin(flow, seed)
        session = self.sessions.set(ctx.user_id, state, data)
        logger.info("User %s started flow %s", ctx.user_id, flow.name)

        if answer:
            await self.handle_text(flow, session, ctx, chat_id, answer)
            return self.sessions.get(ctx.user_id)

        if not await self._prompt(flow, session, flow.steps[0], ctx, chat_id, header=flow.intro):
            return None
        return session

    # ------------------------------------------------------------------ input

    async def handle_text(self, flow: Flow, session: Session, ctx: FlowContext, chat_id: int, text: str) -> None:
        outcome = engine.submit_text(flow, session, text)

        if outcome.result is Result.REJECTED:
            # Selection steps re-send their buttons; text steps repeat the prompt.
            await self._prompt(flow, session, outcome.step, ctx, chat_id, header=outcome.error)
            return

        await self._after_accept(flow, session, ctx, chat_id, outcome)

    async def handle_choice(
        self,
        flow: Flow,
        session: Session,
        ctx: FlowContext,
        chat_id: int,
        message_id: int,
        callback_id: str,
        step_key: str,
        value: str,
    ) -> None:
        step_before = engine.current_step(flow, session)
        asked = step_before.render(session.data)
        outcome = engine.submit_choice(flow, session, step_key, value)

        if outcome.result is Result.REJECTED:
            await self.transport.answer_callback(callback_id, outcome.error, show_alert=True)
            return

        await self.transport.answer_callback(callback_id, f"✅ {outcome.label}")
        await self.transport.edit_text(chat_id, message_id, f"{asked}\n\n✅ **{outcome.label}**")
        await self._after_accept(flow, session, ctx, chat_id, outcome)

    async def _after_accept(self, flow: Flow, session: Session, ctx: FlowContext, chat_id: int, outcome) -> None:
        if outcome.result is Result.COMPLETE:
            await self._complete(flow, session, ctx, chat_id)
            return
        self.sessions.update(session)
        await self._prompt(flow, session, outcome.step, ctx, chat_id)

    # ---------------------------------------------------------------- prompts

    async def _prompt(
        self,
        flow: Flow,
        session: Session,
        step: Step,
        ctx: FlowContext,
        chat_id: int,
        header: str = "",
    ) -> bool:
        """Ask ``step``. Returns False if the flow had to end instead."""
        text = step.render(session.data)
        if header:
            text = f"{header}\n\n{text}"

        if step.kind is not InputKind.SELECT:
            await self.transport.send_buttons(chat_id, text, get_cancel_keyboard())
            return True

        options = list(step.options) or [Option(v, l) for v, l in session.choices.items()]
        if not options and step.options_loader is not None:
            try:
                options = await step.options_loader(ctx)
            except APIError as e:
                self.sessions.clear(session.user_id)
                await self.transport.send_text(chat_id, f"❌ {flow.failure_text}: {e}")
                return False

        if not options:
            self.sessions.clear(session.user_id)
            await self.transport.send_text(chat_id, step.empty_text or "Nothing to choose from yet.")
            return False

        session.choices = {o.value: o.label for o in options}
        self.sessions.update(session)

        keyboard = rows(
            (Button(o.label, states.select(flow.name, step.key, o.value)) for o in options),
            step.columns,
        )
        for label, other_flow in step.shortcuts:
            keyboard.append([Button(label, states.start_flow(other_flow))])
        keyboard.extend(get_cancel_keyboard())
        await self.transport.send_buttons(chat_id, text, keyboard)
        return True

    # --------------------------------------------------------------- finalize

    async def _complete(self, flow: Flow, session: Session, ctx: FlowContext, chat_id: int) -> None:
        # Cleared before the remote call: a failure means starting over.
        self.sessions.clear(session.user_id)
        data = dict(session.data)
        try:
            reply = await flow.finalize(ctx, data)
        except APIError as e:
            logger.warning("Flow %s for user %s failed: %s", flow.name, ctx.user_id, e)
            await self.transport.send_text(chat_id, f"❌ {flow.failure_text}: {e}")
            return

        logger.info("User %s completed flow %s", ctx.user_id, flow.name)
        await send_reply(self.transport, chat_id, reply)
