"""
flows/engine.py — Generic step engine for multi-step chat flows.

A Flow is a static, ordered tuple of Steps. The engine knows nothing about
Telegram or the backend: it takes the user's Session plus one input (a line
of text or a button payload), validates it against the current Step, and
either advances the session or rejects the input leaving the session exactly
as it was.

State tags
----------
The state stored in a Session is ``"<flow name>:<step key>"``. The set of
valid tags is closed: it is derived from the flow table at import time.

Lifecycle
---------
    begin()          -> (first state, initial data)
    submit_text()    -> ADVANCED | REJECTED | COMPLETE
    submit_choice()  -> ADVANCED | REJECTED | COMPLETE

On COMPLETE the caller clears the session and runs ``flow.finalize``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

from ungbot.flows.validators import ValidationError

if TYPE_CHECKING:
    from ungbot.api.client import UngAPIClient
    from ungbot.bot.accounts import AccountStore, LinkedAccount
    from ungbot.bot.replies import Reply
    from ungbot.bot.session_manager import Session

logger = logging.getLogger(__name__)

SKIP = "/skip"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

class InputKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"


@dataclass(frozen=True)
class Option:
    value: str
    label: str


@dataclass
class FlowContext:
    """What a finalize action or options loader may touch."""
    api: "UngAPIClient"
    accounts: "AccountStore"
    user_id: int
    display_name: str = ""
    account: Optional["LinkedAccount"] = None

    @property
    def token(self) -> str:
        return self.account.api_token if self.account else ""


OptionsLoader = Callable[[FlowContext], Awaitable[List[Option]]]
Finalize = Callable[[FlowContext, Dict[str, Any]], Awaitable["Reply"]]
Prompt = Union[str, Callable[[Dict[str, Any]], str]]


@dataclass(frozen=True)
class Step:
    key: str
    prompt: Prompt
    kind: InputKind = InputKind.TEXT
    validator: Optional[Callable[[str], Any]] = None
    optional: bool = False
    options: Tuple[Option, ...] = ()
    # Selection steps whose options come from the backend (e.g. the user's clients)
    options_loader: Optional[OptionsLoader] = None
    # Shown instead of the prompt when options_loader returns nothing; ends the flow
    empty_text: str = ""
    # Store the chosen option's label under this key as well
    label_key: Optional[str] = None
    # Extra (label, flow name) buttons that start another flow
    shortcuts: Tuple[Tuple[str, str], ...] = ()
    columns: int = 1

    def render(self, data: Dict[str, Any]) -> str:
        text = self.prompt(data) if callable(self.prompt) else self.prompt
        if self.optional:
            text += f"\n\n__Send {SKIP} to leave it empty.__"
        return text


@dataclass(frozen=True)
class Flow:
    name: str
    title: str
    steps: Tuple[Step, ...]
    finalize: Finalize
    command: Optional[str] = None
    requires_auth: bool = True
    # Value carried in by the entry button (e.g. the gig a task belongs to)
    seed_key: Optional[str] = None
    failure_text: str = "Request failed"
    intro: str = ""
    # "/command <text>" answers the first step straight away
    inline_answer: bool = False
    _index: Dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError(f"flow {self.name!r} has no steps")
        for i, step in enumerate(self.steps):
            if step.key in self._index:
                raise ValueError(f"flow {self.name!r} repeats step {step.key!r}")
            if step.kind is InputKind.SELECT and not (step.options or step.options_loader):
                raise ValueError(f"select step {self.name}:{step.key} has no options")
            self._index[step.key] = i

    def state(self, step_key: str) -> str:
        return f"{self.name}:{step_key}"

    @property
    def states(self) -> Tuple[str, ...]:
        return tuple(self.state(step.key) for step in self.steps)

    def step(self, key: str) -> Step:
        try:
            return self.steps[self._index[key]]
        except KeyError:
            raise UnknownStepError(self.state(key)) from None

    def next_step(self, key: str) -> Optional[Step]:
        i = self._index[key] + 1
        return self.steps[i] if i < len(self.steps) else None


class UnknownStepError(LookupError):
    """Session state does not name a step of the flow."""


class Result(str, Enum):
    ADVANCED = "advanced"
    REJECTED = "rejected"
    COMPLETE = "complete"


@dataclass
class Outcome:
    result: Result
    # ADVANCED: the step now awaited. REJECTED: the step still awaited.
    step: Optional[Step] = None
    error: str = ""
    value: Any = None
    label: str = ""


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def begin(flow: Flow, seed: Any = None) -> Tuple[str, Dict[str, Any]]:
    data: Dict[str, Any] = {}
    if flow.seed_key:
        if seed is None:
            raise ValueError(f"flow {flow.name!r} needs a {flow.seed_key}")
        data[flow.seed_key] = seed
    return flow.state(flow.steps[0].key), data


def current_step(flow: Flow, session: "Session") -> Step:
    if session.flow_name != flow.name:
        raise UnknownStepError(session.state)
    return flow.step(session.step_key)


def _advance(flow: Flow, session: "Session", step: Step, value: Any, label: str = "") -> Outcome:
    session.data[step.key] = value
    if step.label_key:
        session.data[step.label_key] = label
    session.choices = {}

    nxt = flow.next_step(step.key)
    if nxt is None:
        return Outcome(Result.COMPLETE, value=value, label=label)
    session.state = flow.state(nxt.key)
    return Outcome(Result.ADVANCED, step=nxt, value=value, label=label)


def submit_text(flow: Flow, session: "Session", raw: str) -> Outcome:
    """Feed one text message to the step the session is waiting on."""
    step = current_step(flow, session)
    text = (raw or "").strip()

    if text.lower() == SKIP:
        if step.optional:
            return _advance(flow, session, step, "")
        return Outcome(Result.REJECTED, step=step, error="This field is required and can't be skipped.")

    if step.kind is InputKind.SELECT:
        return Outcome(Result.REJECTED, step=step, error="Please choose one of the options below.")

    if step.validator is None:
        value: Any = text
    else:
        try:
            value = step.validator(raw or "")
        except ValidationError as e:
            logger.debug("Rejected %r at %s: %s", text, session.state, e)
            return Outcome(Result.REJECTED, step=step, error=str(e))

    return _advance(flow, session, step, value)


def submit_choice(flow: Flow, session: "Session", step_key: str, value: str) -> Outcome:
    """
    Feed a button payload. The payload carries the chosen value itself, so
    no text validation happens; it only has to target the awaited step and
    name one of the options that step offered.
    """
    step = current_step(flow, session)
    if step.key != step_key or step.kind is not InputKind.SELECT:
        return Outcome(Result.REJECTED, step=step, error="This button is no longer active.")

    allowed = {o.value: o.label for o in step.options} or session.choices
    if allowed and value not in allowed:
        return Outcome(Result.REJECTED, step=step, error="That option is not available.")

    parsed: Any = value
    if step.validator is not None:
        try:
            parsed = step.validator(value)
        except ValidationError as e:
            return Outcome(Result.REJECTED, step=step, error=str(e))

    return _advance(flow, session, step, parsed, allowed.get(value, value))
