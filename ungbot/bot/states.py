"""
Callback payloads carried by inline buttons.

    start:<flow>[:<seed>]          begin a flow (seed e.g. a gig id)
    sel:<flow>:<step>:<value>      answer a selection step
    action:<name>                  top-level action (list clients, ...)
    cancel | menu | login | help

Telegram limits callback data to 64 bytes; values are ids or short codes.
"""
from typing import List, Optional


class Callback:
    START = "start"
    SELECT = "sel"
    ACTION = "action"
    CANCEL = "cancel"
    MENU = "menu"
    LOGIN = "login"
    HELP = "help"


MAX_CALLBACK_BYTES = 64


def build_callback(kind: str, *parts: object) -> str:
    data = ":".join([kind, *(str(p) for p in parts)])
    if len(data.encode()) > MAX_CALLBACK_BYTES:
        raise ValueError(f"callback data too long: {data!r}")
    return data


def parse_callback(data: Optional[str]) -> List[str]:
    """Split a payload into [kind, *parts]. The last SELECT part may contain ':'."""
    if not data:
        return []
    if data.startswith(Callback.SELECT + ":"):
        return data.split(":", 3)
    return data.split(":")


def start_flow(flow_name: str, seed: object = None) -> str:
    if seed is None:
        return build_callback(Callback.START, flow_name)
    return build_callback(Callback.START, flow_name, seed)


def select(flow_name: str, step_key: str, value: object) -> str:
    return build_callback(Callback.SELECT, flow_name, step_key, value)


def action(name: str) -> str:
    return build_callback(Callback.ACTION, name)
